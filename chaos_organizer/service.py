"""Organizer lifecycle: construct, hydrate, serve, flush.

``Organizer`` owns the one ``MessageStore`` of a running process together
with its ``SnapshotStore`` and ``ChangeNotifier``.  The web server calls
:meth:`Organizer.start` on startup and :meth:`Organizer.shutdown` on exit;
shutdown cancels the debounce timer and writes synchronously so the
mutations of the last window survive.
"""

from __future__ import annotations

from pathlib import Path

from .demo import seed_demo_data
from .log import logger
from .notifier import ChangeNotifier
from .persistence import SnapshotStore
from .preferences import Preferences
from .store import MessageStore


class Organizer:
    """Store + persistence + notifier for one process."""

    def __init__(
        self,
        preferences: Preferences | None = None,
        *,
        data_file: Path | None = None,
    ) -> None:
        self.preferences = preferences or Preferences()
        storage = self.preferences.storage
        self.persistence = SnapshotStore(
            data_file or storage.data_file, delay=storage.debounce_seconds
        )
        self.store = MessageStore(
            self.persistence, default_author=self.preferences.default_author
        )
        self.notifier = ChangeNotifier(max_pending=self.preferences.max_pending)
        self.started = False
        self.stopped = False

    def start(self, *, seed_demo: bool = False) -> bool:
        """Hydrate from disk.  Returns whether a snapshot was loaded."""
        if self.started:
            return False
        self.started = True
        loaded = self.persistence.load(self.store)
        if not loaded and seed_demo:
            seed_demo_data(self.store)
        logger.info("organizer started (data file %s)", self.persistence.path)
        return loaded

    def shutdown(self) -> None:
        """Flush pending writes and drop subscribers.  Safe to call twice."""
        if self.stopped:
            return
        self.stopped = True
        self.notifier.close_all()
        if self.persistence.flush():
            logger.info("organizer stopped, state flushed to %s", self.persistence.path)
        else:
            logger.warning("organizer stopped, final flush to %s failed", self.persistence.path)
