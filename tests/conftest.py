"""Shared test fixtures for the chaos-organizer test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from chaos_organizer.persistence import SnapshotStore
from chaos_organizer.preferences import Preferences
from chaos_organizer.service import Organizer
from chaos_organizer.store import MessageStore


@pytest.fixture
def store() -> MessageStore:
    """A store with no persistence attached."""
    return MessageStore()


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "data" / "organizer.json"


@pytest.fixture
def snapshot(data_file: Path) -> SnapshotStore:
    """Snapshot store whose timer never fires on its own during a test."""
    return SnapshotStore(data_file, delay=60)


@pytest.fixture
def persisted_store(snapshot: SnapshotStore):
    """``(store, snapshot)`` pair wired together."""
    s = MessageStore(snapshot)
    yield s, snapshot
    snapshot.cancel()


@pytest.fixture
def organizer(data_file: Path):
    """Organizer writing under tmp_path, with a long debounce."""
    prefs = Preferences()
    prefs.storage.data_file = data_file
    prefs.storage.debounce_seconds = 60
    org = Organizer(prefs)
    yield org
    org.persistence.cancel()


# -- Sample data --------------------------------------------------------------


@pytest.fixture
def sample_archive():
    """A well-formed export archive with two messages, one pinned + favorite."""
    return {
        "meta": {
            "exportedAt": "2026-01-15T10:30:00.000Z",
            "version": "1.0",
            "totalMessages": 2,
            "totalReminders": 1,
            "totalStickers": 1,
            "favoritesCount": 1,
            "pinnedMessageId": "m2",
        },
        "messages": [
            {
                "id": "m1",
                "type": "text",
                "author": "User",
                "content": "first",
                "timestamp": "2026-01-15T09:00:00.000Z",
                "metadata": [],
                "encrypted": False,
                "pinned": False,
                "favorite": False,
            },
            {
                "id": "m2",
                "type": "image",
                "author": "User",
                "content": "/uploads/cat.png",
                "timestamp": "2026-01-15T09:05:00.000Z",
                "metadata": [
                    {"id": "f1", "fileName": "cat.png", "fileSize": 1024, "mimeType": "image/png"}
                ],
                "encrypted": False,
                "pinned": True,
                "favorite": True,
            },
        ],
        "reminders": [
            {
                "id": "r1",
                "text": "Call mom",
                "triggerAt": "2026-01-16T18:00:00.000Z",
                "createdAt": "2026-01-15T09:10:00.000Z",
                "notified": False,
            }
        ],
        "stickers": [
            {
                "id": "s1",
                "name": "smile",
                "content": "\U0001f60a",
                "category": "faces",
                "createdAt": "2026-01-15T09:11:00.000Z",
            }
        ],
        "favorites": ["m2"],
        "pinnedMessage": {"id": "m2"},
    }


@pytest.fixture
def fixed_time() -> datetime:
    return datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
