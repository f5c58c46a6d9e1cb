"""Chat history for the SimpleChat client.

This module provides the chat message record, a thread-safe in-memory buffer
of records and the persistence contract used to save and load the history as a
single JSON blob.
"""
import abc
import base64
import json
import logging
import os
import tempfile
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class DocumentAttachment:
    """A single file attached to a message."""
    data: bytes = field(repr=False)
    file_name: str
    mime_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"data": _b64(self.data), "fileName": self.file_name, "mimeType": self.mime_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentAttachment":
        return cls(
            data=base64.b64decode(data["data"]),
            file_name=data["fileName"],
            mime_type=data["mimeType"],
        )


@dataclass
class MessageRecord:
    """One chat entry, either sent by the local user or received from the peer."""
    text: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_from_user: bool = False
    images: Optional[List[bytes]] = None
    document: Optional[DocumentAttachment] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_image_only(self) -> bool:
        return not self.text and self.images is not None

    @property
    def is_text_only(self) -> bool:
        return bool(self.text) and self.images is None

    @property
    def is_text_and_image(self) -> bool:
        return bool(self.text) and self.images is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the history blob's field names."""
        data: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "isFromUser": self.is_from_user,
        }
        if self.images is not None:
            data["imagesData"] = [_b64(image) for image in self.images]
        if self.document is not None:
            data["documentData"] = self.document.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageRecord":
        images = data.get("imagesData")
        document = data.get("documentData")
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            text=data.get("text"),
            timestamp=timestamp,
            is_from_user=bool(data.get("isFromUser", False)),
            images=[base64.b64decode(image) for image in images] if images is not None else None,
            document=DocumentAttachment.from_dict(document) if document is not None else None,
        )


class MessageBuffer:
    """Thread-safe ordered buffer of chat records."""
    def __init__(self, max_size: Optional[int] = None):
        self.buffer = deque(maxlen=max_size)
        self.lock = threading.RLock()

    def add(self, record: MessageRecord) -> None:
        """Add a record to the buffer."""
        with self.lock:
            self.buffer.append(record)

    def extend(self, records: Sequence[MessageRecord]) -> None:
        with self.lock:
            self.buffer.extend(records)

    def get_all(self) -> List[MessageRecord]:
        """Get all records in the buffer."""
        with self.lock:
            return list(self.buffer)

    def clear(self) -> None:
        """Clear all records from the buffer."""
        with self.lock:
            self.buffer.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self.buffer)


class PersistenceStore(abc.ABC):
    """Saves and loads the ordered chat history as an opaque blob."""

    @abc.abstractmethod
    def save(self, records: Sequence[MessageRecord]) -> None:
        ...

    @abc.abstractmethod
    def load(self) -> Optional[List[MessageRecord]]:
        """Return the saved history, or None when there is nothing usable."""
        ...


class JsonFileStore(PersistenceStore):
    """Persists the history as a JSON array in a single file."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def save(self, records: Sequence[MessageRecord]) -> None:
        payload = json.dumps([record.to_dict() for record in records])
        directory = os.path.dirname(os.path.abspath(self.path))
        with self._lock:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".history-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(payload)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        logger.debug(f"Saved {len(records)} messages to {self.path}")

    def load(self) -> Optional[List[MessageRecord]]:
        with self._lock:
            if not os.path.exists(self.path):
                return None
            try:
                with open(self.path, "r") as f:
                    raw = json.load(f)
                return [MessageRecord.from_dict(item) for item in raw]
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Error loading messages from {self.path}: {e}")
                return None
