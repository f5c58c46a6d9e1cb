"""Core functionality for the SimpleChat client.

This package provides the application-side model of the chat client.

Components:
- content: the chat content variants exchanged over the transport
- dispatcher: serialized delivery of transport notifications
- message_store: chat records, the history buffer and persistence
- chat_session: the transport listener that keeps and persists the history
  (import it directly: it depends on chat_socket)
"""

from .content import Content, ContentError, Document, Image, ImageWithText, Text
from .dispatcher import ImmediateDispatcher, SerialDispatcher
from .message_store import DocumentAttachment, JsonFileStore, MessageBuffer, MessageRecord, PersistenceStore

__all__ = [
    'Content', 'ContentError', 'Document', 'Image', 'ImageWithText', 'Text',
    'ImmediateDispatcher', 'SerialDispatcher',
    'DocumentAttachment', 'JsonFileStore', 'MessageBuffer', 'MessageRecord', 'PersistenceStore',
]
