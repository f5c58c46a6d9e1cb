"""Chat content model.

Content is a closed set of immutable values: plain text, a set of images,
images with a caption, or a single document. Values validate themselves on
construction so the wire codec and the chat session can rely on their shape.
"""
from dataclasses import dataclass, field
from typing import Iterable, Tuple, Union


class ContentError(ValueError):
    """Raised when a content value is constructed with invalid fields."""


def _as_bytes(value, what: str) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    raise ContentError(f"{what} must be bytes-like, got {type(value).__name__}")


def _as_payloads(values: Iterable) -> Tuple[bytes, ...]:
    if values is None:
        return ()
    if isinstance(values, (bytes, bytearray, memoryview, str)):
        raise ContentError("Image payloads must be a sequence of byte buffers")
    return tuple(_as_bytes(v, f"Image payload #{i}") for i, v in enumerate(values))


def _require_str(value, what: str) -> None:
    if not isinstance(value, str):
        raise ContentError(f"{what} must be a string, got {type(value).__name__}")


@dataclass(frozen=True)
class Text:
    body: str

    def __post_init__(self):
        _require_str(self.body, "Text body")


@dataclass(frozen=True)
class Image:
    payloads: Tuple[bytes, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "payloads", _as_payloads(self.payloads))


@dataclass(frozen=True)
class ImageWithText:
    body: str
    payloads: Tuple[bytes, ...] = ()

    def __post_init__(self):
        _require_str(self.body, "Caption")
        object.__setattr__(self, "payloads", _as_payloads(self.payloads))


@dataclass(frozen=True)
class Document:
    payload: bytes = field(repr=False)
    file_name: str
    mime_type: str

    def __post_init__(self):
        object.__setattr__(self, "payload", _as_bytes(self.payload, "Document payload"))
        _require_str(self.file_name, "Document file name")
        _require_str(self.mime_type, "Document MIME type")
        if not self.file_name:
            raise ContentError("Document file name must not be empty")
        if not self.mime_type:
            raise ContentError("Document MIME type must not be empty")


Content = Union[Text, Image, ImageWithText, Document]

CONTENT_TYPES = (Text, Image, ImageWithText, Document)


def is_content(value) -> bool:
    """True if `value` is one of the content variants."""
    return isinstance(value, CONTENT_TYPES)
