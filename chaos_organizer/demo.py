"""Sample content for a fresh install (``--demo``)."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from ._utils import utcnow
from .log import logger

if TYPE_CHECKING:
    from .store import MessageStore

_HOUR = timedelta(hours=1)


def seed_demo_data(store: MessageStore) -> bool:
    """Fill an empty *store* with a few messages, stickers and reminders.

    Does nothing (and returns ``False``) if the store already has messages.
    """
    if store.counts()["messages"]:
        return False

    now = utcnow()
    store.add_message(
        "Welcome to Chaos Organizer!", author="System", timestamp=now - 48 * _HOUR
    )
    store.add_message(
        "https://github.com/chaos-organizer", timestamp=now - 24 * _HOUR, favorite=True
    )
    store.add_message(
        "/uploads/demo-image.jpg",
        timestamp=now - 12 * _HOUR,
        metadata=[
            {
                "fileName": "demo-image.jpg",
                "fileSize": 512 * 1024,
                "mimeType": "image/jpeg",
                "dimensions": {"width": 800, "height": 600},
            }
        ],
        pinned=True,
    )
    store.add_message(
        "/uploads/demo-audio.mp3",
        timestamp=now - 6 * _HOUR,
        metadata=[
            {"fileName": "demo-audio.mp3", "fileSize": 3 * 1024 * 1024, "mimeType": "audio/mpeg"}
        ],
        favorite=True,
    )
    store.add_message(
        "/uploads/document.pdf",
        timestamp=now - 2 * _HOUR,
        metadata=[
            {"fileName": "document.pdf", "fileSize": 200 * 1024, "mimeType": "application/pdf"}
        ],
    )
    store.add_message("Don't forget to check your reminders!", author="System")

    store.add_sticker("smile", "\U0001f60a", "faces")
    store.add_sticker("heart", "❤️", "symbols")
    store.add_sticker("thumbs-up", "\U0001f44d", "gestures")

    store.add_reminder("Team meeting", now + 2 * _HOUR)
    store.add_reminder("Last day of summer", now + 24 * _HOUR)

    logger.info("seeded demo data")
    return True
