"""In-memory organizer store.

``MessageStore`` is the only thing allowed to mutate messages, favorites,
the pinned reference, reminders and stickers.  Every public method runs
under one store-wide re-entrant lock, so the persistence timer thread never
snapshots a half-applied change.  Mutations finish by asking the attached
``SnapshotStore`` (if any) for a debounced write.

Invariants kept by every operation:

* at most one message has ``pinned`` set, and it is ``pinned_message``;
* ``favorites`` holds only ids of stored messages, and each message's
  ``favorite`` flag matches membership.

Unknown ids are reported through ``None``/``False`` results, never raised.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable

from ._utils import parse_timestamp, utcnow
from .log import logger
from .models import (
    DEFAULT_AUTHOR,
    Attachment,
    Message,
    MessageKind,
    Reminder,
    Sticker,
    coerce_attachments,
    infer_kind,
)

if TYPE_CHECKING:
    from .persistence.snapshot import SnapshotStore

# Fields update_message() may merge; flags go through set_favorite/toggle_pin.
_UPDATABLE = frozenset({"content", "author", "kind", "metadata", "encrypted", "timestamp"})
_FLAG_FIELDS = frozenset({"pinned", "favorite"})


class MessageStore:
    """Owns all organizer collections and enforces their invariants."""

    def __init__(
        self,
        persistence: SnapshotStore | None = None,
        *,
        default_author: str = DEFAULT_AUTHOR,
    ) -> None:
        self._lock = threading.RLock()
        self._messages: list[Message] = []
        self._favorites: set[str] = set()
        self._pinned: Message | None = None
        self._reminders: list[Reminder] = []
        self._stickers: list[Sticker] = []
        self.default_author = default_author
        self._persistence = persistence
        if persistence is not None:
            persistence.attach(self.snapshot)

    # -- internals ------------------------------------------------------------

    def _changed(self) -> None:
        if self._persistence is not None:
            self._persistence.schedule()

    def _find(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def _pin(self, message: Message) -> None:
        if self._pinned is not None and self._pinned is not message:
            self._pinned.pinned = False
        self._pinned = message
        message.pinned = True

    def _set_favorite(self, message: Message, desired: bool) -> bool:
        if desired:
            self._favorites.add(message.id)
        else:
            self._favorites.discard(message.id)
        message.favorite = desired
        return desired

    # -- read accessors -------------------------------------------------------

    @property
    def lock(self) -> threading.RLock:
        """The store-wide lock, for callers that need a consistent multi-read."""
        return self._lock

    @property
    def messages(self) -> list[Message]:
        """Messages in insertion order (a new list; entries are live)."""
        with self._lock:
            return list(self._messages)

    @property
    def reminders(self) -> list[Reminder]:
        with self._lock:
            return list(self._reminders)

    @property
    def stickers(self) -> list[Sticker]:
        with self._lock:
            return list(self._stickers)

    @property
    def favorites(self) -> set[str]:
        with self._lock:
            return set(self._favorites)

    @property
    def pinned_message(self) -> Message | None:
        with self._lock:
            return self._pinned

    def counts(self) -> dict[str, int]:
        """Sizes of every collection, read atomically."""
        with self._lock:
            return {
                "messages": len(self._messages),
                "favorites": len(self._favorites),
                "reminders": len(self._reminders),
                "stickers": len(self._stickers),
            }

    def find_message_by_id(self, message_id: str) -> Message | None:
        with self._lock:
            return self._find(message_id)

    def find_reminder_by_id(self, reminder_id: str) -> Reminder | None:
        with self._lock:
            return next((r for r in self._reminders if r.id == reminder_id), None)

    def find_sticker_by_id(self, sticker_id: str) -> Sticker | None:
        with self._lock:
            return next((s for s in self._stickers if s.id == sticker_id), None)

    # -- messages -------------------------------------------------------------

    def add_message(
        self,
        content: str = "",
        *,
        author: str | None = None,
        kind: MessageKind | str | None = None,
        metadata: Iterable[Attachment | dict] | dict | None = None,
        timestamp: datetime | None = None,
        encrypted: bool = False,
        pinned: bool = False,
        favorite: bool = False,
    ) -> Message:
        """Store a new message and return it.

        *kind* is inferred from *metadata* and *content* when not given.
        ``pinned=True`` displaces the currently pinned message.
        """
        attachments = coerce_attachments(metadata)
        content = content or ""
        resolved = MessageKind.coerce(kind) or infer_kind(content, attachments)
        message = Message(
            content=content,
            kind=resolved,
            author=author or self.default_author,
            timestamp=parse_timestamp(timestamp) if timestamp else utcnow(),
            metadata=attachments,
            encrypted=bool(encrypted),
        )
        with self._lock:
            self._messages.append(message)
            if pinned:
                self._pin(message)
            if favorite:
                self._set_favorite(message, True)
            self._changed()
        logger.debug("added %s message %s", message.kind.value, message.id)
        return message

    def update_message(self, message_id: str, **fields: Any) -> Message | None:
        """Merge *fields* into an existing message.

        Only content-like fields are accepted; ``pinned``/``favorite`` raise
        ``ValueError`` because they would bypass the aggregate invariants.
        """
        flags = _FLAG_FIELDS.intersection(fields)
        if flags:
            raise ValueError(
                f"use set_favorite()/toggle_pin() to change {', '.join(sorted(flags))}"
            )
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise TypeError(f"unknown message fields: {', '.join(sorted(unknown))}")
        with self._lock:
            message = self._find(message_id)
            if message is None:
                return None
            if "content" in fields:
                message.content = fields["content"] or ""
            if "author" in fields:
                message.author = fields["author"] or self.default_author
            if "metadata" in fields:
                message.metadata = coerce_attachments(fields["metadata"])
            if "encrypted" in fields:
                message.encrypted = bool(fields["encrypted"])
            if "timestamp" in fields and fields["timestamp"] is not None:
                message.timestamp = parse_timestamp(fields["timestamp"])
            if "kind" in fields:
                message.kind = MessageKind.coerce(fields["kind"]) or infer_kind(
                    message.content, message.metadata
                )
            self._changed()
            return message

    def delete_message(self, message_id: str) -> bool:
        """Remove a message, its pin and its favorite mark in one step."""
        with self._lock:
            message = self._find(message_id)
            if message is None:
                return False
            self._messages.remove(message)
            if self._pinned is message:
                self._pinned = None
            self._favorites.discard(message_id)
            self._changed()
        logger.debug("deleted message %s", message_id)
        return True

    def set_favorite(self, message_id: str, desired: bool) -> bool | None:
        """Set the favorite state; returns it, or ``None`` for an unknown id."""
        with self._lock:
            message = self._find(message_id)
            if message is None:
                return None
            state = self._set_favorite(message, bool(desired))
            self._changed()
            return state

    def toggle_favorite(self, message_id: str) -> bool | None:
        """Flip the favorite state; returns it, or ``None`` for an unknown id."""
        with self._lock:
            message = self._find(message_id)
            if message is None:
                return None
            state = self._set_favorite(message, message_id not in self._favorites)
            self._changed()
            return state

    def toggle_pin(self, message_id: str) -> bool | None:
        """Pin or unpin a message.

        Returns ``True`` when the message is now pinned, ``False`` when it was
        unpinned, and ``None`` when the id is unknown.
        """
        with self._lock:
            message = self._find(message_id)
            if message is None:
                return None
            if self._pinned is message:
                self._pinned = None
                message.pinned = False
                state = False
            else:
                self._pin(message)
                state = True
            self._changed()
            return state

    # -- reminders ------------------------------------------------------------

    def add_reminder(self, text: str, trigger_at: datetime | None = None) -> Reminder:
        trigger = parse_timestamp(trigger_at) if trigger_at else utcnow()
        reminder = Reminder(text=text or "", trigger_at=trigger)
        with self._lock:
            self._reminders.append(reminder)
            self._changed()
        return reminder

    def delete_reminder(self, reminder_id: str) -> bool:
        with self._lock:
            for index, reminder in enumerate(self._reminders):
                if reminder.id == reminder_id:
                    del self._reminders[index]
                    self._changed()
                    return True
        return False

    # -- stickers -------------------------------------------------------------

    def add_sticker(
        self, name: str = "unnamed", content: str = "", category: str = "general"
    ) -> Sticker:
        sticker = Sticker(
            name=name or "unnamed", content=content or "", category=category or "general"
        )
        with self._lock:
            self._stickers.append(sticker)
            self._changed()
        return sticker

    def delete_sticker(self, sticker_id: str) -> bool:
        with self._lock:
            for index, sticker in enumerate(self._stickers):
                if sticker.id == sticker_id:
                    del self._stickers[index]
                    self._changed()
                    return True
        return False

    # -- bulk -----------------------------------------------------------------

    def clear_all(self) -> None:
        """Empty every collection and drop the pinned reference."""
        with self._lock:
            self._messages.clear()
            self._favorites.clear()
            self._reminders.clear()
            self._stickers.clear()
            self._pinned = None
            self._changed()

    def replace_all(
        self,
        messages: Iterable[Message],
        favorites: Iterable[str] = (),
        reminders: Iterable[Reminder] = (),
        stickers: Iterable[Sticker] = (),
        pinned_id: str | None = None,
        *,
        persist: bool = True,
    ) -> None:
        """Swap the whole store contents in a single critical section.

        Stale ``pinned`` flags on incoming messages are cleared; only
        *pinned_id* (when present among *messages*) ends up pinned.
        Favorites are narrowed to known ids and every message's flag is
        synchronized with the resulting set.
        """
        incoming = list(messages)
        wanted = set(favorites)
        with self._lock:
            self._messages = []
            seen: set[str] = set()
            for message in incoming:
                if message.id in seen:
                    logger.debug("dropping duplicate message id %s", message.id)
                    continue
                seen.add(message.id)
                self._messages.append(message)
            self._favorites = wanted & seen
            self._pinned = None
            for message in self._messages:
                message.pinned = False
                message.favorite = message.id in self._favorites
            if pinned_id is not None:
                target = self._find(pinned_id)
                if target is not None:
                    self._pin(target)
            self._reminders = list(reminders)
            self._stickers = list(stickers)
            if persist:
                self._changed()

    def snapshot(self) -> dict[str, Any]:
        """Return the persisted-state dict for the current contents."""
        with self._lock:
            return {
                "messages": [m.to_dict() for m in self._messages],
                "reminders": [r.to_dict() for r in self._reminders],
                "stickers": [s.to_dict() for s in self._stickers],
                "favorites": sorted(self._favorites),
                "pinnedMessage": self._pinned.to_dict() if self._pinned else None,
            }
