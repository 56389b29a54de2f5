"""Entity records for the organizer store.

Messages, reminders and stickers are plain dataclasses.  Each knows how to
turn itself into the JSON-friendly dict used on disk, in archives and in
API responses (``to_dict``), and how to rebuild itself from one
(``from_dict``).  Wire keys keep the camelCase names the web client uses
(``type``, ``fileName``, ``triggerAt`` ...).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from ._utils import format_timestamp, generate_id, parse_timestamp, utcnow

DEFAULT_AUTHOR = "User"

_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


class MessageKind(str, Enum):
    """Content category of a message."""

    TEXT = "text"
    LINK = "link"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"

    @classmethod
    def coerce(cls, value: Any) -> "MessageKind | None":
        """Return the matching kind for *value*, or ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None


@dataclass
class Attachment:
    """Metadata for one file attached to a message."""

    id: str = ""
    file_name: str = ""
    file_size: int = 0
    mime_type: str = ""
    # Keys we don't model (dimensions, duration, fileExtension ...)
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("id", "fileName", "fileSize", "mimeType")

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "fileName": self.file_name,
                "fileSize": self.file_size,
                "mimeType": self.mime_type,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Attachment":
        try:
            size = int(data.get("fileSize") or 0)
        except (TypeError, ValueError, OverflowError):
            size = 0
        return cls(
            id=str(data.get("id") or ""),
            file_name=str(data.get("fileName") or ""),
            file_size=size,
            mime_type=str(data.get("mimeType") or ""),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


def coerce_attachments(raw: Any) -> list[Attachment]:
    """Normalize *raw* metadata (list, single dict, or None) to attachments."""
    if raw is None:
        return []
    if isinstance(raw, (Attachment, dict)):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[Attachment] = []
    for item in raw:
        if isinstance(item, Attachment):
            out.append(item)
        elif isinstance(item, dict):
            out.append(Attachment.from_dict(item))
    return out


def kind_for_mime(mime_type: str) -> MessageKind:
    """Map an attachment MIME type to a message kind.

    Media prefixes map directly; PDFs, archives, documents and anything
    unrecognised count as a generic file.
    """
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return MessageKind.IMAGE
    if mime.startswith("video/"):
        return MessageKind.VIDEO
    if mime.startswith("audio/"):
        return MessageKind.AUDIO
    return MessageKind.FILE


def infer_kind(content: str | None, metadata: Iterable[Attachment] | None = None) -> MessageKind:
    """Infer a message kind from its attachments, then from its content."""
    for attachment in metadata or ():
        if attachment.mime_type:
            return kind_for_mime(attachment.mime_type)
    if _URL_RE.match((content or "").strip()):
        return MessageKind.LINK
    return MessageKind.TEXT


@dataclass
class Message:
    """A stored organizer message."""

    content: str
    kind: MessageKind = MessageKind.TEXT
    author: str = DEFAULT_AUTHOR
    id: str = field(default_factory=generate_id)
    timestamp: datetime = field(default_factory=utcnow)
    metadata: list[Attachment] = field(default_factory=list)
    encrypted: bool = False
    pinned: bool = False
    favorite: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Stable response/persistence shape (timestamp as ISO string)."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "author": self.author,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
            "metadata": [a.to_dict() for a in self.metadata],
            "encrypted": bool(self.encrypted),
            "pinned": bool(self.pinned),
            "favorite": bool(self.favorite),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Rebuild a message from its dict form.

        A missing or unknown ``type`` is re-inferred from the content and
        attachments, so records written before kinds existed heal on load.
        Raises ``ValueError`` when the timestamp can't be parsed.
        """
        metadata = coerce_attachments(data.get("metadata"))
        content = data.get("content")
        content = "" if content is None else str(content)
        kind = MessageKind.coerce(data.get("type")) or infer_kind(content, metadata)
        raw_ts = data.get("timestamp")
        return cls(
            id=str(data.get("id") or generate_id()),
            kind=kind,
            author=str(data.get("author") or DEFAULT_AUTHOR),
            content=content,
            timestamp=utcnow() if raw_ts is None else parse_timestamp(raw_ts),
            metadata=metadata,
            encrypted=bool(data.get("encrypted", False)),
            pinned=bool(data.get("pinned", False)),
            favorite=bool(data.get("favorite", False)),
        )


@dataclass
class Reminder:
    """A reminder; ``notified`` is only ever set by an external scheduler."""

    text: str
    trigger_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utcnow)
    notified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "triggerAt": format_timestamp(self.trigger_at),
            "createdAt": format_timestamp(self.created_at),
            "notified": bool(self.notified),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reminder":
        trigger = data.get("triggerAt")
        created = data.get("createdAt")
        return cls(
            id=str(data.get("id") or generate_id()),
            text=str(data.get("text") or ""),
            trigger_at=utcnow() if trigger is None else parse_timestamp(trigger),
            created_at=utcnow() if created is None else parse_timestamp(created),
            notified=bool(data.get("notified", False)),
        )


@dataclass
class Sticker:
    """A custom sticker: a literal glyph or a path to an image."""

    name: str = "unnamed"
    content: str = ""
    category: str = "general"
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "category": self.category,
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Sticker":
        created = data.get("createdAt")
        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name") or "unnamed"),
            content=str(data.get("content") or ""),
            category=str(data.get("category") or "general"),
            created_at=utcnow() if created is None else parse_timestamp(created),
        )
