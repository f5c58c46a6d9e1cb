"""Socket package for the SimpleChat client.

This package provides the real-time transport of the chat client and the
development peer it talks to.

Components:
- manager: TransportManager owning the Socket.IO connection, and the
  TransportListener interface
- socket_client: LoopSocketClient running socketio.AsyncClient on its own
  event-loop thread
- echo_server: Socket.IO echo/relay server used as the chat peer
- client: console chat client
"""

from .manager import TransportListener, TransportManager

__all__ = [
    'TransportListener',
    'TransportManager'
]
