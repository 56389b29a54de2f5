"""Whole-store export/import archives.

An archive is the persisted snapshot plus a ``meta`` block::

    {
      "meta": {"exportedAt", "version", "totalMessages", "totalReminders",
               "totalStickers", "favoritesCount", "pinnedMessageId"},
      "messages": [...], "reminders": [...], "stickers": [...],
      "favorites": [...], "pinnedMessage": {...} | null
    }

Import is forgiving per entry (malformed messages are skipped and
counted) but strict about structure: an archive without a ``messages``
list is rejected with :class:`ArchiveError`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from ._utils import format_timestamp, utcnow
from .log import logger
from .models import Message, Reminder, Sticker

if TYPE_CHECKING:
    from .store import MessageStore

ARCHIVE_VERSION = "1.0"
ARCHIVE_FILENAME = "chaos-organizer-backup.json"

# Message keys that must be present and non-empty for an import to accept it.
REQUIRED_MESSAGE_FIELDS = ("id", "type", "content", "timestamp")


class ArchiveError(ValueError):
    """The archive is structurally unusable (not an object / no messages list)."""


@dataclass
class ImportCounts:
    """Per-collection totals after an import."""

    messages: int = 0
    favorites: int = 0
    reminders: int = 0
    stickers: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def build_archive(store: MessageStore) -> dict[str, Any]:
    """Assemble a point-in-time archive of *store*."""
    snapshot = store.snapshot()
    pinned = snapshot["pinnedMessage"]
    meta = {
        "exportedAt": format_timestamp(utcnow()),
        "version": ARCHIVE_VERSION,
        "totalMessages": len(snapshot["messages"]),
        "totalReminders": len(snapshot["reminders"]),
        "totalStickers": len(snapshot["stickers"]),
        "favoritesCount": len(snapshot["favorites"]),
        "pinnedMessageId": pinned["id"] if pinned else None,
    }
    return {"meta": meta, **snapshot}


def validate_archive(archive: Any) -> dict[str, Any]:
    """Return *archive* if it can be applied, else raise :class:`ArchiveError`."""
    if not isinstance(archive, dict):
        raise ArchiveError("archive must be a JSON object")
    if not isinstance(archive.get("messages"), list):
        raise ArchiveError("archive must contain a 'messages' list")
    return archive


def _parse_message(entry: Any) -> Message | None:
    if not isinstance(entry, dict):
        return None
    if not all(entry.get(key) for key in REQUIRED_MESSAGE_FIELDS):
        return None
    try:
        return Message.from_dict(entry)
    except (TypeError, ValueError):
        return None


def _parse_list(raw: Any, factory) -> tuple[list, int]:
    if not isinstance(raw, list):
        return [], 0
    parsed, skipped = [], 0
    for entry in raw:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        try:
            parsed.append(factory(entry))
        except (TypeError, ValueError):
            skipped += 1
    return parsed, skipped


def apply_archive(store: MessageStore, archive: dict[str, Any]) -> ImportCounts:
    """Replace the contents of *store* with *archive*.

    Only messages carrying non-empty ``id``, ``type``, ``content`` and a
    parseable ``timestamp`` are imported.  Every imported message starts
    unpinned; ``pinnedMessage`` is honoured only if it names an imported
    message.  Favorites naming unknown ids are dropped.
    """
    validate_archive(archive)

    messages: list[Message] = []
    skipped = 0
    for entry in archive["messages"]:
        message = _parse_message(entry)
        if message is None:
            skipped += 1
            continue
        messages.append(message)

    reminders, bad_reminders = _parse_list(archive.get("reminders"), Reminder.from_dict)
    stickers, bad_stickers = _parse_list(archive.get("stickers"), Sticker.from_dict)
    skipped += bad_reminders + bad_stickers

    raw_favorites = archive.get("favorites")
    favorites = (
        [str(fid) for fid in raw_favorites if fid is not None]
        if isinstance(raw_favorites, list)
        else []
    )

    pinned = archive.get("pinnedMessage")
    pinned_id = pinned.get("id") if isinstance(pinned, dict) else None

    store.replace_all(messages, favorites, reminders, stickers, pinned_id)

    totals = store.counts()
    counts = ImportCounts(
        messages=totals["messages"],
        favorites=totals["favorites"],
        reminders=totals["reminders"],
        stickers=totals["stickers"],
        skipped=skipped,
    )
    if skipped:
        logger.debug("archive import skipped %d malformed entries", skipped)
    logger.info(
        "imported %d messages, %d reminders, %d stickers",
        counts.messages,
        counts.reminders,
        counts.stickers,
    )
    return counts
