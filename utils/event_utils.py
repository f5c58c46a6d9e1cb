import enum
from typing import Optional


class ConnectionState(enum.Enum):
    """
    Lifecycle states of the single transport connection.
    DISCONNECTED is both the initial state and the state every failure returns to;
    connect() may be issued again from it at any time.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def describe_disconnect(reason: Optional[str] = None, code: Optional[int] = None) -> str:
    """Human-readable description of a closed connection."""
    message = f"Disconnected: {reason or 'connection closed'}"
    if code is not None:
        message += f" (code: {code})"
    return message


def describe_connection_error(error: Exception) -> str:
    """Human-readable description of a failed connection attempt."""
    detail = str(error) or error.__class__.__name__
    return f"Connection failed: {detail}"


def describe_send_error(error: Exception) -> str:
    detail = str(error) or error.__class__.__name__
    return f"Send failed: {detail}"
