#!/usr/bin/env python3
"""SimpleChat transport manager

This module owns the single Socket.IO connection of the chat client. It encodes
outbound content into frames, decodes inbound frames and hands decoded content
and connection errors to the registered listener.

Key Features:
- One logical connection to a fixed endpoint, re-enterable after any failure
- Fire-and-forget sends, transmitted in call order
- Malformed frames are logged and dropped without ending the session
- Serialized listener delivery through a dispatcher
- Listener held by weak reference
"""
import abc
import logging
import threading
import weakref
from typing import Any, Callable, List, Optional, Sequence

import socketio

from chat_socket.socket_client import LoopSocketClient
from core.content import Content, is_content
from core.dispatcher import SerialDispatcher
from utils.config_loader import config as config_manager
from utils.event_utils import (
    ConnectionState, describe_connection_error, describe_disconnect, describe_send_error
)
from utils.message_utils import decode_frame, describe_content, encode_content, encode_text_and_images

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10


class TransportListener(abc.ABC):
    """Receives decoded content and connection errors from a TransportManager."""

    @abc.abstractmethod
    def on_content_received(self, content: Content) -> None:
        ...

    @abc.abstractmethod
    def on_error(self, message: str) -> None:
        ...


def default_client_factory(connect_timeout: float) -> LoopSocketClient:
    """Build a Socket.IO client; reconnecting is left to the application."""
    return LoopSocketClient(
        reconnection=False,
        logger=False,
        engineio_logger=False,
        request_timeout=connect_timeout,
        # aiohttp caps websocket messages at 4 MB unless told otherwise
        websocket_extra_options={'max_msg_size': 0},
    )


class TransportManager:
    def __init__(self,
                 url: Optional[str] = None,
                 listener: Optional[TransportListener] = None,
                 dispatcher=None,
                 connect_timeout: Optional[float] = None,
                 transports: Optional[List[str]] = None,
                 socketio_path: Optional[str] = None,
                 client_factory: Optional[Callable[[float], Any]] = None):
        self.url = url or config_manager.get('transport', 'url', default='http://localhost:5348')
        if connect_timeout is None:
            connect_timeout = config_manager.get('transport', 'connect_timeout', default=DEFAULT_CONNECT_TIMEOUT)
        self.connect_timeout = connect_timeout
        self.transports = transports or config_manager.get('transport', 'transports', default=['websocket'])
        self.socketio_path = socketio_path or config_manager.get('transport', 'socketio_path', default='socket.io')
        self.dispatcher = dispatcher or SerialDispatcher()
        self._client_factory = client_factory or default_client_factory

        self._lock = threading.RLock()
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self._listener_ref: Optional[weakref.ref] = None
        if listener is not None:
            self.set_listener(listener)

    # --- Listener ---

    @property
    def listener(self) -> Optional[TransportListener]:
        ref = self._listener_ref
        return ref() if ref is not None else None

    @listener.setter
    def listener(self, listener: Optional[TransportListener]) -> None:
        self.set_listener(listener)

    def set_listener(self, listener: Optional[TransportListener]) -> None:
        """Register the listener, replacing any previous one. Not kept alive."""
        self._listener_ref = weakref.ref(listener) if listener is not None else None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    # --- Connection lifecycle ---

    def connect(self) -> None:
        """Start connecting in the background. No-op while connecting or connected."""
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                logger.debug(f"connect() ignored while {self._state.value}")
                return
            # Fresh handle per attempt
            client = self._client_factory(self.connect_timeout)
            self._register_handlers(client)
            self._client = client
            self._state = ConnectionState.CONNECTING

        logger.info(f"Connecting to {self.url}")
        client.start_background_task(self._connect_worker, client)

    def _register_handlers(self, client) -> None:
        client.on('connect', lambda: self._mark_connected(client))
        client.on('disconnect', lambda reason=None: self._on_disconnect(client, reason))
        client.on('connect_error', lambda data=None: self._on_connect_error(client, data))
        client.on('message', lambda data: self._on_frame(client, data))

    def _connect_worker(self, client) -> None:
        try:
            client.connect(
                self.url,
                transports=self.transports,
                socketio_path=self.socketio_path,
                wait_timeout=self.connect_timeout,
            )
        except socketio.exceptions.ConnectionError as e:
            self._connection_lost(client, describe_connection_error(e))
            return
        except Exception as e:
            logger.error(f"Unexpected error while connecting to {self.url}: {e}", exc_info=True)
            self._connection_lost(client, describe_connection_error(e))
            return

        with self._lock:
            current = client is self._client
        if not current:
            # disconnect() or a newer connect() replaced this handle mid-handshake
            self._close_client(client)
            return
        self._mark_connected(client)

    def _mark_connected(self, client) -> None:
        with self._lock:
            if client is not self._client or self._state is not ConnectionState.CONNECTING:
                return
            self._state = ConnectionState.CONNECTED
        logger.info(f"Connected to {self.url}")

    def _on_connect_error(self, client, data) -> None:
        # The handshake worker reports the failure once connect() raises.
        logger.debug(f"Connection error event: {data}")

    def _on_disconnect(self, client, reason=None) -> None:
        self._connection_lost(client, describe_disconnect(reason))

    def _connection_lost(self, client, message: str) -> None:
        with self._lock:
            if client is not self._client or self._state is ConnectionState.DISCONNECTED:
                return
            self._client = None
            self._state = ConnectionState.DISCONNECTED
        logger.warning(message)
        self._notify_error(message)

    def disconnect(self) -> None:
        """Close the active connection. Safe to call when already disconnected."""
        with self._lock:
            client = self._client
            self._client = None
            if self._state is ConnectionState.DISCONNECTED:
                return
            self._state = ConnectionState.DISCONNECTED
        if client is not None:
            self._close_client(client)
        message = describe_disconnect("client disconnect")
        logger.info(message)
        self._notify_error(message)

    def _close_client(self, client) -> None:
        try:
            client.disconnect()
        except Exception as e:
            logger.warning(f"Error while closing socket: {e}")

    # --- Outbound ---

    def send(self, content: Content) -> bool:
        """
        Encode `content` and transmit it as one frame.

        Fire-and-forget: nothing is raised to the caller. Returns True when the
        frame was handed to the socket.
        """
        if not is_content(content):
            logger.error(f"Refusing to send unsupported value of type {type(content).__name__}")
            return False
        frame = encode_content(content)
        if frame is None:
            return False
        return self._send_frame(frame, describe_content(content))

    def send_text_and_images(self, text: str, images: Sequence[bytes] = ()) -> bool:
        """Send text with optional images, choosing the frame type from what is present."""
        frame = encode_text_and_images(text, images)
        if frame is None:
            return False
        return self._send_frame(frame, f"text with {len(images or ())} images")

    def _send_frame(self, frame: str, summary: str) -> bool:
        with self._lock:
            client = self._client
            if client is None or self._state is not ConnectionState.CONNECTED:
                logger.warning(f"Dropping outbound {summary}: not connected")
                return False
            try:
                client.send(frame)
            except socketio.exceptions.SocketIOError as e:
                error = e
            else:
                logger.debug(f"Sent {summary}")
                return True
        message = describe_send_error(error)
        logger.error(message)
        self._notify_error(message)
        return False

    # --- Inbound ---

    def _on_frame(self, client, data) -> None:
        with self._lock:
            if client is not self._client:
                return
        if not isinstance(data, str):
            logger.warning(f"Dropping non-text frame of type {type(data).__name__}")
            return
        # Queued before decoding so a slow frame cannot be overtaken
        self.dispatcher.dispatch(self._deliver_frame, data)

    def _deliver_frame(self, data: str) -> None:
        content = decode_frame(data)
        if content is None:
            return
        logger.debug(f"Received {describe_content(content)}")
        self._deliver_content(content)

    def _notify_error(self, message: str) -> None:
        self.dispatcher.dispatch(self._deliver_error, message)

    def _deliver_content(self, content: Content) -> None:
        listener = self.listener
        if listener is None:
            logger.debug("No listener registered; dropping received content")
            return
        listener.on_content_received(content)

    def _deliver_error(self, message: str) -> None:
        listener = self.listener
        if listener is None:
            logger.debug(f"No listener registered; dropping error: {message}")
            return
        listener.on_error(message)
