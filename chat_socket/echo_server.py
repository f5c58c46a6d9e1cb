#!/usr/bin/env python3
"""SimpleChat echo/relay server

A Socket.IO server on aiohttp that plays the chat peer during development and
tests. Frames are opaque strings: the server never decodes them.

Modes:
- echo: every `message` event is sent back to its sender
- relay: every `message` event is forwarded to all other connected clients
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import socketio
from aiohttp import web

# Ensure the project root is in the Python path when run as a script
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from utils.config_loader import config as config_manager

logger = logging.getLogger(__name__)

MODES = ("echo", "relay")
DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024 * 1024


def create_echo_server(mode: str = "echo",
                       max_message_size: Optional[int] = None) -> Tuple[socketio.AsyncServer, web.Application]:
    """Build a Socket.IO server and the aiohttp application it is attached to."""
    if mode not in MODES:
        raise ValueError(f"Unknown echo server mode: {mode}")
    if max_message_size is None:
        max_message_size = config_manager.get('echo_server', 'max_message_size', default=DEFAULT_MAX_MESSAGE_SIZE)

    sio = socketio.AsyncServer(async_mode='aiohttp', cors_allowed_origins='*',
                               max_http_buffer_size=max_message_size)
    app = web.Application()
    sio.attach(app)
    connected_clients: Dict[str, Dict[str, Any]] = {}

    @sio.event
    async def connect(sid: str, environ: Dict, auth=None):
        client_ip = environ.get('REMOTE_ADDR', 'Unknown IP')
        connected_clients[sid] = {
            "address": client_ip,
            "connect_time": datetime.now().isoformat(),
        }
        logger.info(f"Client connected: {sid} ({client_ip})")

    @sio.event
    async def disconnect(sid: str, *args):
        client_info = connected_clients.pop(sid, None)
        if client_info is None:
            logger.warning(f"Disconnect event received for unknown SID: {sid}")
            return
        logger.info(f"Client disconnected: {sid} ({client_info.get('address', 'Unknown IP')})")

    @sio.event
    async def message(sid: str, data):
        logger.debug(f"Frame from {sid}: {str(data)[:100]}")
        if mode == "echo":
            await sio.send(data, to=sid)
        else:
            for other_sid in list(connected_clients):
                if other_sid != sid:
                    await sio.send(data, to=other_sid)

    return sio, app


async def start_echo_server(host: str, port: int, mode: str = "echo",
                            max_message_size: Optional[int] = None) -> web.AppRunner:
    """Start serving and return the runner; call `runner.cleanup()` to stop."""
    _, app = create_echo_server(mode, max_message_size)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Echo server ({mode}) running on {host}:{port}")
    return runner


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="SimpleChat echo/relay server")
    parser.add_argument('--host', type=str, default=config_manager.get('echo_server', 'host', default='0.0.0.0'),
                        help='Host IP address to bind the server to.')
    parser.add_argument('--port', type=int, default=config_manager.get('echo_server', 'port', default=5348),
                        help='Port number to bind the server to.')
    parser.add_argument('--mode', choices=MODES, default=config_manager.get('echo_server', 'mode', default='echo'),
                        help='Echo frames back to the sender or relay them to other clients.')
    parser.add_argument('--log-level', default=config_manager.get('logging', 'level', default='INFO'))
    return parser.parse_args(argv)


async def serve_forever(host: str, port: int, mode: str) -> None:
    runner = await start_echo_server(host, port, mode)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def main(argv=None) -> int:
    args = parse_args(argv)
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=args.log_level.upper(),
                            format=config_manager.get('logging', 'format'))
    try:
        asyncio.run(serve_forever(args.host, args.port, args.mode))
    except KeyboardInterrupt:
        logger.info("Server stopped by user (KeyboardInterrupt).")
    return 0


if __name__ == '__main__':
    sys.exit(main())
