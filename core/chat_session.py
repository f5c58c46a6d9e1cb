"""Chat session for the SimpleChat client.

The session is the listener of a TransportManager: it turns received content
into chat records, keeps the history in a MessageBuffer, persists it after every
change and offers the send/retry operations a user interface calls.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from chat_socket.manager import TransportListener
from core.content import Content, Document, Image, ImageWithText, Text
from core.message_store import DocumentAttachment, MessageBuffer, MessageRecord, PersistenceStore

logger = logging.getLogger(__name__)


def record_from_content(content: Content, is_from_user: bool = False) -> MessageRecord:
    """Build the chat record shown for a content value."""
    now = datetime.now(timezone.utc)
    if isinstance(content, Text):
        return MessageRecord(text=content.body, timestamp=now, is_from_user=is_from_user)
    if isinstance(content, Image):
        return MessageRecord(text="", timestamp=now, is_from_user=is_from_user,
                             images=list(content.payloads))
    if isinstance(content, ImageWithText):
        return MessageRecord(text=content.body, timestamp=now, is_from_user=is_from_user,
                             images=list(content.payloads))
    if isinstance(content, Document):
        attachment = DocumentAttachment(content.payload, content.file_name, content.mime_type)
        return MessageRecord(text="", timestamp=now, is_from_user=is_from_user, document=attachment)
    raise TypeError(f"Unsupported content type: {type(content).__name__}")


class ChatSession(TransportListener):
    def __init__(self,
                 transport,
                 store: Optional[PersistenceStore] = None,
                 on_update: Optional[Callable[[MessageRecord], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None):
        self.transport = transport
        self.store = store
        self.history = MessageBuffer()
        self.last_error: Optional[str] = None
        self._on_update = on_update
        self._on_error = on_error

    @property
    def messages(self) -> List[MessageRecord]:
        return self.history.get_all()

    def start(self) -> None:
        """Load saved history, register as the transport listener and connect."""
        self.load_history()
        self.transport.set_listener(self)
        self.transport.connect()

    def stop(self) -> None:
        self.transport.disconnect()

    def retry(self) -> None:
        """Reconnect after a reported connection error."""
        self.last_error = None
        self.transport.connect()

    # --- History ---

    def load_history(self) -> None:
        records = self.store.load() if self.store else None
        self.history.clear()
        if records:
            self.history.extend(records)
            logger.info(f"Loaded {len(records)} messages from history")
        self.save_history()

    def save_history(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.history.get_all())
        except OSError as e:
            logger.error(f"Failed to save chat history: {e}", exc_info=True)

    def _append(self, record: MessageRecord) -> MessageRecord:
        self.history.add(record)
        self.save_history()
        if self._on_update:
            self._on_update(record)
        return record

    # --- Outbound ---

    def send_text(self, text: str) -> Optional[MessageRecord]:
        """Send a text message. Empty input is ignored."""
        if not text:
            return None
        record = MessageRecord(text=text, is_from_user=True)
        self.transport.send_text_and_images(text, [])
        return self._append(record)

    def send_images(self, text: str, images: Sequence[bytes]) -> Optional[MessageRecord]:
        """Send images with an optional caption. Ignored when both are empty."""
        images = list(images or [])
        if not text and not images:
            return None
        record = MessageRecord(text=text or "", is_from_user=True, images=images or None)
        self.transport.send_text_and_images(text or "", images)
        return self._append(record)

    def send_document(self, data: bytes, file_name: str, mime_type: str) -> MessageRecord:
        document = Document(data, file_name, mime_type)
        record = record_from_content(document, is_from_user=True)
        self.transport.send(document)
        return self._append(record)

    # --- TransportListener ---

    def on_content_received(self, content: Content) -> None:
        self._append(record_from_content(content, is_from_user=False))

    def on_error(self, message: str) -> None:
        self.last_error = message
        logger.warning(f"Transport error: {message}")
        if self._on_error:
            self._on_error(message)
