"""Pure filtering, sorting and paging helpers for stored entities.

Nothing here mutates its input; every helper returns a new list.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence, TypeVar

from ._utils import utcnow
from .models import Message, MessageKind, Reminder, Sticker

T = TypeVar("T")

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

_MESSAGE_SORT_KEYS = {
    "timestamp": lambda m: m.timestamp,
    "type": lambda m: m.kind.value,
    "kind": lambda m: m.kind.value,
    "author": lambda m: m.author.lower(),
}

_REMINDER_SORT_KEYS = {
    "triggerAt": lambda r: r.trigger_at,
    "createdAt": lambda r: r.created_at,
    "text": lambda r: r.text.lower(),
}


def parse_kinds(value: str | Iterable[str] | None) -> set[MessageKind] | None:
    """Turn ``"image, video"`` (or a list of names) into a set of kinds.

    Unknown names are ignored; ``None`` means "no kind filter".
    """
    if value is None:
        return None
    parts = value.split(",") if isinstance(value, str) else list(value)
    kinds = {k for k in (MessageKind.coerce(p) for p in parts) if k is not None}
    return kinds or None


def message_matches(message: Message, query: str) -> bool:
    """Case-insensitive match on content or any attachment file name."""
    needle = query.lower().strip()
    if needle in (message.content or "").lower():
        return True
    return any(needle in (a.file_name or "").lower() for a in message.metadata)


def search_messages(
    messages: Iterable[Message],
    query: str | None = None,
    kinds: set[MessageKind] | None = None,
) -> list[Message]:
    """Messages matching *query* (if any) and one of *kinds* (if any)."""
    has_query = bool(query and query.strip())
    out = []
    for message in messages:
        if has_query and not message_matches(message, query):  # type: ignore[arg-type]
            continue
        if kinds and message.kind not in kinds:
            continue
        out.append(message)
    return out


def filter_favorites(messages: Iterable[Message]) -> list[Message]:
    return [m for m in messages if m.favorite]


def filter_by_date(
    messages: Iterable[Message],
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Message]:
    """Messages with ``date_from <= timestamp <= date_to``.

    An open lower bound is the epoch, an open upper bound is now.
    """
    start = date_from or _EPOCH
    end = date_to or utcnow()
    return [m for m in messages if start <= m.timestamp <= end]


def sort_messages(
    messages: Iterable[Message], by: str = "timestamp", order: str = "desc"
) -> list[Message]:
    """Sort by *by*; ties keep insertion order, reversed for ``desc``."""
    key = _MESSAGE_SORT_KEYS.get(by, _MESSAGE_SORT_KEYS["timestamp"])
    items = list(messages)
    if order == "desc":
        return sorted(reversed(items), key=key, reverse=True)
    return sorted(items, key=key)


def paginate(items: Sequence[T], offset: int = 0, limit: int = 10) -> list[T]:
    offset = max(offset, 0)
    limit = max(limit, 0)
    return list(items[offset : offset + limit])


def filter_reminders_by_date(
    reminders: Iterable[Reminder],
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Reminder]:
    start = date_from or _EPOCH
    end = date_to or utcnow()
    return [r for r in reminders if start <= r.trigger_at <= end]


def sort_reminders(
    reminders: Iterable[Reminder], by: str = "triggerAt", order: str = "asc"
) -> list[Reminder]:
    key = _REMINDER_SORT_KEYS.get(by, _REMINDER_SORT_KEYS["triggerAt"])
    return sorted(reminders, key=key, reverse=order == "desc")


def filter_stickers_by_category(
    stickers: Iterable[Sticker], category: str | None
) -> list[Sticker]:
    if not category:
        return list(stickers)
    return [s for s in stickers if s.category == category]


def search_stickers(stickers: Iterable[Sticker], query: str | None) -> list[Sticker]:
    """Stickers whose name or content contains *query* (case-insensitive)."""
    if not query:
        return list(stickers)
    needle = query.lower()
    return [
        s for s in stickers if needle in s.name.lower() or needle in s.content.lower()
    ]
