#!/usr/bin/env python3
"""SimpleChat console client

Wires a ChatSession to a TransportManager and drives it from the terminal.

Commands:
- plain text line: send as a text message
- /image <path> [<path> ...] [-- caption]: send images with an optional caption
- /file <path>: send a document
- /retry: reconnect after a connection error
- /quit: disconnect and exit
"""
import argparse
import logging
import mimetypes
import os
import sys
from pathlib import Path

# Ensure the project root is in the Python path when run as a script
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from chat_socket.manager import TransportManager
from core.chat_session import ChatSession
from core.message_store import JsonFileStore, MessageRecord
from utils.config_loader import config as config_manager
from utils.path_config import get_history_file, get_logs_dir


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure file logging for the client; the terminal is kept for chat output."""
    log_file = os.path.join(get_logs_dir(), "client.log")
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(
        config_manager.get('logging', 'format',
                           default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    ))
    root = logging.getLogger()
    root.handlers = []
    root.addHandler(file_handler)
    root.setLevel(level.upper())
    logging.getLogger("socketio").setLevel(logging.ERROR)
    logging.getLogger("engineio").setLevel(logging.ERROR)
    return logging.getLogger("simplechat.client")


def format_record(record: MessageRecord) -> str:
    who = "you" if record.is_from_user else "peer"
    stamp = record.timestamp.astimezone().strftime("%H:%M:%S")
    parts = []
    if record.is_text_only or record.is_text_and_image:
        parts.append(record.text)
    if record.is_image_only or record.is_text_and_image:
        parts.append(f"[{len(record.images)} image(s)]")
    if record.document is not None:
        parts.append(f"[file {record.document.file_name}, {record.document.mime_type}]")
    return f"{stamp} {who}: {' '.join(parts) or '(empty)'}"


def read_file(path: str) -> bytes:
    with open(os.path.expanduser(path), "rb") as f:
        return f.read()


def handle_command(session: ChatSession, line: str) -> bool:
    """Run one input line. Returns False when the client should exit."""
    if line == "/quit":
        return False
    if line == "/retry":
        session.retry()
    elif line.startswith("/image "):
        args = line[len("/image "):]
        paths, _, caption = args.partition(" -- ")
        images = [read_file(path) for path in paths.split()]
        session.send_images(caption.strip(), images)
    elif line.startswith("/file "):
        path = line[len("/file "):].strip()
        mime_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        session.send_document(read_file(path), os.path.basename(path), mime_type)
    else:
        session.send_text(line)
    return True


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='SimpleChat console client')
    parser.add_argument('--url', default=config_manager.get('transport', 'url'),
                        help='Chat server URL')
    parser.add_argument('--history', default=None,
                        help='Path of the chat history file')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    logger = setup_logging("DEBUG" if args.debug else config_manager.get('logging', 'level', default='INFO'))

    history_file = args.history or get_history_file(
        config_manager.get('storage', 'history_file', default='chat_history.json'))
    transport = TransportManager(url=args.url)
    session = ChatSession(
        transport,
        store=JsonFileStore(history_file),
        on_update=lambda record: print(format_record(record)),
        on_error=lambda message: print(f"! {message} (type /retry to reconnect)"),
    )

    try:
        session.start()
        for record in session.messages:
            print(format_record(record))
        for raw in sys.stdin:
            line = raw.rstrip("\n")
            if not line:
                continue
            try:
                if not handle_command(session, line):
                    break
            except (OSError, ValueError) as e:
                print(f"! {e}")
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    finally:
        session.stop()
        transport.dispatcher.flush(timeout=2)
        transport.dispatcher.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())
