"""Utilities for creating and decoding chat frames.

A frame is one Socket.IO `message` event whose payload is a single JSON string.
Every JSON frame carries a `type` discriminator; binary payloads travel as
base64 strings.
"""

import base64
import binascii
import enum
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from core.content import (
    Content, ContentError, Document, Image, ImageWithText, Text, is_content
)

logger = logging.getLogger(__name__)

IMAGE_DATA_URI_PREFIX = re.compile(r"^data:image/\w+;base64,")
DATA_URI_PREFIX = re.compile(r"^data:.*;base64,")


class MessageType(enum.Enum):
    """
    Enumerates the `type` discriminators of chat frames.
    """
    TEXT = "text"
    IMAGE = "image"
    IMAGE_TEXT = "image+text"
    DOCUMENT = "document"


class FrameDecodeError(ValueError):
    """Raised when a JSON frame cannot be turned into content."""


### Encoding

def _b64encode(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def create_text_and_images_message(text: str, images: Sequence[bytes]) -> Dict[str, Any]:
    """
    Creates the frame for a generic "text plus optional images" value.

    Text and images -> image+text, images only -> image, anything else -> text
    (an empty text is still sent as a text frame).
    """
    encoded = [_b64encode(image) for image in images or ()]
    if encoded and text:
        return {"type": MessageType.IMAGE_TEXT.value, "text": text, "images": encoded}
    if encoded:
        return {"type": MessageType.IMAGE.value, "images": encoded}
    return {"type": MessageType.TEXT.value, "text": text or ""}


def create_socket_message(content: Content) -> Dict[str, Any]:
    """
    Creates the frame dictionary for a content value.

    Raises:
        TypeError: if `content` is not a content variant.
    """
    if isinstance(content, Text):
        return {"type": MessageType.TEXT.value, "text": content.body}
    if isinstance(content, Image):
        return create_text_and_images_message("", content.payloads)
    if isinstance(content, ImageWithText):
        return create_text_and_images_message(content.body, content.payloads)
    if isinstance(content, Document):
        return {
            "type": MessageType.DOCUMENT.value,
            "fileName": content.file_name,
            "mimeType": content.mime_type,
            "data": _b64encode(content.payload),
        }
    raise TypeError(f"Unsupported content type: {type(content).__name__}")


def encode_content(content: Content) -> Optional[str]:
    """
    Serializes a content value into a frame string.

    Returns None (and logs) when the value cannot be serialized.
    """
    try:
        return json.dumps(create_socket_message(content), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode outbound content: {e}")
        return None


def encode_text_and_images(text: str, images: Sequence[bytes]) -> Optional[str]:
    try:
        return json.dumps(create_text_and_images_message(text, images), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode outbound text/images: {e}")
        return None


### Decoding

def strict_b64decode(value: str) -> bytes:
    """
    Decodes base64, rejecting foreign characters, bad padding and
    non-canonical encodings.

    Raises:
        binascii.Error: if `value` is not canonical base64.
    """
    decoded = base64.b64decode(value, validate=True)
    if _b64encode(decoded) != value:
        raise binascii.Error("Non-canonical base64 encoding")
    return decoded


def _require_string(frame: Dict[str, Any], key: str) -> str:
    value = frame.get(key)
    if not isinstance(value, str):
        raise FrameDecodeError(f"'{key}' must be a string")
    return value


def _decode_images(frame: Dict[str, Any]) -> List[bytes]:
    """Decode every image element independently; bad elements are skipped."""
    elements = frame.get("images")
    if not isinstance(elements, list) or not all(isinstance(e, str) for e in elements):
        raise FrameDecodeError("'images' must be a list of strings")

    images = []
    for index, element in enumerate(elements):
        cleaned = IMAGE_DATA_URI_PREFIX.sub("", element, count=1)
        try:
            images.append(strict_b64decode(cleaned))
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Skipping image #{index}: failed to decode base64 ({e})")

    if not images:
        raise FrameDecodeError("no decodable images in frame")
    return images


def _decode_document(frame: Dict[str, Any]) -> Document:
    file_name = _require_string(frame, "fileName")
    mime_type = _require_string(frame, "mimeType")
    data = DATA_URI_PREFIX.sub("", _require_string(frame, "data"), count=1)
    try:
        payload = strict_b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise FrameDecodeError(f"failed to decode document data: {e}") from e
    try:
        return Document(payload, file_name, mime_type)
    except ContentError as e:
        raise FrameDecodeError(str(e)) from e


def parse_frame(frame: str) -> Content:
    """
    Turns a received frame into content.

    A frame that is not a JSON object is delivered verbatim as text, so a
    plain-text echo peer keeps working.

    Raises:
        FrameDecodeError: if the JSON frame is missing fields, carries an
        unknown discriminator or holds no decodable payload.
    """
    try:
        data = json.loads(frame)
    except (ValueError, RecursionError):
        return Text(frame)
    if not isinstance(data, dict):
        return Text(frame)

    raw_type = data.get("type")
    if not isinstance(raw_type, str):
        raise FrameDecodeError("frame has no 'type' discriminator")
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        raise FrameDecodeError(f"unknown frame type '{raw_type}'") from None

    if message_type is MessageType.TEXT:
        return Text(_require_string(data, "text"))
    if message_type is MessageType.IMAGE:
        return Image(_decode_images(data))
    if message_type is MessageType.IMAGE_TEXT:
        text = _require_string(data, "text")
        return ImageWithText(text, _decode_images(data))
    return _decode_document(data)


def decode_frame(frame: str) -> Optional[Content]:
    """Decode a frame, logging and returning None when it has to be dropped."""
    try:
        return parse_frame(frame)
    except FrameDecodeError as e:
        logger.warning(f"Dropping inbound frame: {e}")
        return None


def describe_content(content: Content) -> str:
    """Short summary of a content value for logs."""
    if not is_content(content):
        return type(content).__name__
    if isinstance(content, Text):
        return f"text ({len(content.body)} chars)"
    if isinstance(content, Image):
        return f"image ({len(content.payloads)} items)"
    if isinstance(content, ImageWithText):
        return f"image+text ({len(content.payloads)} items)"
    return f"document {content.file_name} ({content.mime_type}, {len(content.payload)} bytes)"
