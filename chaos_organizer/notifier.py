"""Best-effort fan-out of store changes to connected WebSocket clients.

Each subscriber gets a bounded queue drained by its own ``pump()`` task, so
``broadcast()`` never awaits a socket: a slow client only fills its own
queue, and a full or broken queue counts as the client leaving.  Frames
reach every subscriber in broadcast order.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any

from .log import logger

NEW_MESSAGE = "new_message"
MESSAGE_UPDATED = "message_updated"
MESSAGE_DELETED = "message_deleted"
STORE_RESET = "store_reset"

EVENTS = frozenset({NEW_MESSAGE, MESSAGE_UPDATED, MESSAGE_DELETED, STORE_RESET})

DEFAULT_MAX_PENDING = 100

# "Try Again Later": the client's backlog overflowed and it was dropped.
OVERFLOW_CLOSE_CODE = 1013


class Subscription:
    """One connected client: a queue of frames plus the task that sends them.

    Must be created on the event loop that owns *websocket*.
    """

    def __init__(
        self,
        websocket: Any,
        notifier: ChangeNotifier,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self.websocket = websocket
        self.closed = False
        self.overflowed = False
        self._notifier = notifier
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(
            maxsize=max_pending
        )

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def offer(self, frame: dict[str, Any]) -> bool:
        """Queue *frame* for sending without blocking.

        Safe to call from any thread; off-loop calls are handed to the
        subscriber's loop and report ``True`` optimistically.
        """
        if self.closed:
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            return self._put(frame)
        try:
            self._loop.call_soon_threadsafe(self._put, frame)
        except RuntimeError:
            # Loop already closed
            return False
        return True

    def _put(self, frame: dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.debug("subscriber backlog full, dropping subscriber")
            self.overflowed = True
            self._notifier.unsubscribe(self)
            return False
        return True

    def close(self) -> None:
        """Stop accepting frames and let ``pump()`` finish."""
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                # The sentinel must land; undelivered frames are worthless now
                self._queue.get_nowait()

    async def pump(self) -> None:
        """Send queued frames in order until closed or the socket fails."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                if self.overflowed:
                    await self._close_socket()
                return
            try:
                await self.websocket.send_json(frame)
            except Exception:
                logger.debug("WebSocket send failed", exc_info=True)
                self._notifier.unsubscribe(self)
                return

    async def _close_socket(self) -> None:
        """Tell a client that fell too far behind that it was dropped."""
        try:
            await self.websocket.close(code=OVERFLOW_CLOSE_CODE)
        except Exception:
            logger.debug("WebSocket close failed", exc_info=True)


class ChangeNotifier:
    """Process-wide set of subscribers and the broadcast entry point."""

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self.max_pending = max_pending
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, websocket: Any) -> Subscription:
        """Register *websocket*; call from the loop that serves it."""
        subscription = Subscription(websocket, self, self.max_pending)
        with self._lock:
            self._subscribers.add(subscription)
            total = len(self._subscribers)
        logger.info("subscriber connected (%d total)", total)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            known = subscription in self._subscribers
            self._subscribers.discard(subscription)
            total = len(self._subscribers)
        subscription.close()
        if known:
            logger.info("subscriber disconnected (%d left)", total)

    def broadcast(self, event: str, payload: Any) -> int:
        """Queue ``{"event": event, "payload": payload}`` for every subscriber.

        Returns how many subscribers accepted the frame.  Subscribers that
        can't take it are removed.
        """
        if event not in EVENTS:
            raise ValueError(f"unknown event kind: {event}")
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return 0
        frame = {"event": event, "payload": payload}
        delivered = 0
        for subscription in subscribers:
            if subscription.offer(frame):
                delivered += 1
            else:
                self.unsubscribe(subscription)
        return delivered

    def close_all(self) -> None:
        """Drop every subscriber (server shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            self.unsubscribe(subscription)
