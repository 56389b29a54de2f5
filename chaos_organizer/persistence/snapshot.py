"""Debounced whole-store snapshot file.

On-disk format::

    {
      "messages": [message_dict, ...],
      "reminders": [reminder_dict, ...],
      "stickers": [sticker_dict, ...],
      "favorites": [message_id, ...],
      "pinnedMessage": message_dict | null
    }

Mutations call :meth:`SnapshotStore.schedule`, which (re)arms a
``threading.Timer``; a burst of calls inside the delay collapses into one
write.  :meth:`SnapshotStore.flush` is the shutdown path: it cancels the
timer and writes synchronously so the last window is not lost.  Write
errors are logged and swallowed; the in-memory store stays authoritative.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from ..log import logger
from ..models import Message, Reminder, Sticker
from ._base import JsonStore

if TYPE_CHECKING:
    from ..store import MessageStore

DEFAULT_DEBOUNCE_SECONDS = 0.8


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _parse_entries(raw: Any, factory: Callable[[dict], Any], label: str) -> list:
    out = []
    for entry in _as_list(raw):
        if not isinstance(entry, dict):
            logger.warning("skipping non-object %s entry in snapshot", label)
            continue
        try:
            out.append(factory(entry))
        except (TypeError, ValueError) as exc:
            logger.warning("skipping unreadable %s %r: %s", label, entry.get("id"), exc)
    return out


class SnapshotStore(JsonStore):
    """Durable mirror of a :class:`~chaos_organizer.store.MessageStore`."""

    def __init__(self, path: Path, delay: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        super().__init__(path)
        self.delay = delay
        self.write_count = 0
        self._snapshot_fn: Callable[[], dict] | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0
        # Set by schedule(), cleared only when a write starts from fresh state
        self._dirty = False
        self._timer_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def _default(self) -> None:
        return None

    def attach(self, snapshot_fn: Callable[[], dict]) -> None:
        """Bind the callable that produces the state to write."""
        self._snapshot_fn = snapshot_fn

    @property
    def pending(self) -> bool:
        """True while a debounced write is waiting to fire."""
        with self._timer_lock:
            return self._timer is not None

    # -- loading --------------------------------------------------------------

    def load(self, store: MessageStore) -> bool:
        """Hydrate *store* from disk.

        Returns ``False`` (leaving *store* untouched) when the file is missing
        or unreadable; a missing file is the normal first-run case.
        """
        if not self.path.exists():
            logger.debug("no snapshot at %s, starting empty", self.path)
            return False
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("could not read snapshot %s", self.path, exc_info=True)
            return False
        if not isinstance(raw, dict):
            logger.warning("snapshot %s is not a JSON object, ignoring it", self.path)
            return False

        messages = _parse_entries(raw.get("messages"), Message.from_dict, "message")
        reminders = _parse_entries(raw.get("reminders"), Reminder.from_dict, "reminder")
        stickers = _parse_entries(raw.get("stickers"), Sticker.from_dict, "sticker")

        if isinstance(raw.get("favorites"), list):
            favorites = {str(fid) for fid in raw["favorites"] if fid is not None}
        else:
            favorites = {m.id for m in messages if m.favorite}

        pinned = raw.get("pinnedMessage")
        pinned_id = pinned.get("id") if isinstance(pinned, dict) else None

        store.replace_all(
            messages, favorites, reminders, stickers, pinned_id, persist=False
        )
        counts = store.counts()
        logger.info(
            "loaded %d messages, %d reminders, %d stickers from %s",
            counts["messages"],
            counts["reminders"],
            counts["stickers"],
            self.path,
        )
        return True

    # -- writing --------------------------------------------------------------

    def schedule(self) -> None:
        """Mark the state dirty and arm (or re-arm) the debounce timer."""
        with self._timer_lock:
            self._dirty = True
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, generation: int) -> None:
        with self._timer_lock:
            # A newer schedule() or a flush() already superseded this timer.
            if generation != self._generation:
                return
            self._timer = None
        with self._write_lock:
            if self._dirty:
                self._write()

    def _write(self) -> bool:
        """Snapshot and save.  Caller holds ``_write_lock``."""
        snapshot_fn = self._snapshot_fn
        if snapshot_fn is None:
            logger.debug("snapshot store %s has no source attached", self.path)
            return False
        # Cleared before the snapshot so a mutation made during the write
        # leaves the store dirty again.
        with self._timer_lock:
            self._dirty = False
        try:
            self.save_raw(snapshot_fn())
        except (OSError, TypeError, ValueError):
            with self._timer_lock:
                self._dirty = True
            logger.warning("failed to persist snapshot to %s", self.path, exc_info=True)
            return False
        self.write_count += 1
        logger.debug("persisted snapshot to %s", self.path)
        return True

    def persist_sync(self) -> bool:
        """Snapshot and write now.  Returns ``False`` if the write failed."""
        with self._write_lock:
            return self._write()

    def persist_async(self) -> threading.Thread:
        """Run :meth:`persist_sync` on a background thread and return it."""
        thread = threading.Thread(
            target=self.persist_sync, name="snapshot-write", daemon=True
        )
        thread.start()
        return thread

    def cancel(self) -> None:
        """Drop a pending debounced write without writing."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._dirty = False

    def flush(self) -> bool:
        """Write synchronously if any change has not reached disk yet.

        Cancels the pending timer, then waits for a write already running
        on the timer thread.  Returns ``True`` when the file is up to date.
        """
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
        with self._write_lock:
            if not self._dirty:
                return True
            return self._write()
