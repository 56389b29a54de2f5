"""FastAPI server exposing the organizer store over HTTP and WebSocket."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from chaos_organizer import search
from chaos_organizer._utils import format_timestamp, parse_timestamp, utcnow
from chaos_organizer.archive import ARCHIVE_FILENAME, ArchiveError, apply_archive, build_archive
from chaos_organizer.models import MessageKind
from chaos_organizer.notifier import (
    MESSAGE_DELETED,
    MESSAGE_UPDATED,
    NEW_MESSAGE,
    STORE_RESET,
)
from chaos_organizer.service import Organizer

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------
class AttachmentIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    fileName: str = ""
    fileSize: int = 0
    mimeType: str = ""


class MessageCreate(BaseModel):
    content: str = ""
    author: str | None = None
    type: MessageKind | None = None
    metadata: list[AttachmentIn] = Field(default_factory=list)
    encrypted: bool = False
    pinned: bool = False
    favorite: bool = False


class MessageUpdate(BaseModel):
    content: str | None = None
    author: str | None = None
    type: MessageKind | None = None
    metadata: list[AttachmentIn] | None = None
    encrypted: bool | None = None


class FavoriteBody(BaseModel):
    favorite: bool | None = None


class ReminderCreate(BaseModel):
    text: str = ""
    triggerAt: datetime | None = None


class StickerCreate(BaseModel):
    name: str = "unnamed"
    content: str = ""
    category: str = "general"


def _error(status: int, text: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": text})


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    return parse_timestamp(value)


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------
def create_app(organizer: Organizer | None = None, *, seed_demo: bool = False) -> FastAPI:
    """Create and configure the FastAPI application.

    The app's lifespan hydrates *organizer* on startup and flushes it on
    shutdown.
    """
    organizer = organizer or Organizer()
    store = organizer.store
    notifier = organizer.notifier

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        organizer.start(seed_demo=seed_demo)
        try:
            yield
        finally:
            organizer.shutdown()

    app = FastAPI(title="Chaos Organizer", lifespan=lifespan)
    app.state.organizer = organizer

    @app.get("/")
    async def index() -> dict:
        """Health check plus a map of the API."""
        return {
            "message": "Chaos Organizer backend is running",
            "timestamp": format_timestamp(utcnow()),
            "endpoints": {
                "messages": "/api/messages",
                "search": "/api/search/messages",
                "reminders": "/api/reminders",
                "stickers": "/api/stickers",
                "export": "/api/export",
                "import": "/api/import",
                "events": "/ws",
            },
        }

    # -- messages ---------------------------------------------------------

    @app.get("/api/messages")
    async def list_messages(offset: int = 0, limit: int = 10) -> dict:
        """Newest-first page of messages."""
        ordered = search.sort_messages(store.messages, "timestamp", "desc")
        page = search.paginate(ordered, offset, limit)
        return {
            "messages": [m.to_dict() for m in page],
            "total": len(ordered),
            "offset": max(offset, 0),
            "limit": max(limit, 0),
        }

    @app.post("/api/messages", status_code=201)
    async def create_message(body: MessageCreate) -> dict:
        message = store.add_message(
            body.content,
            author=body.author,
            kind=body.type,
            metadata=[a.model_dump() for a in body.metadata],
            encrypted=body.encrypted,
            pinned=body.pinned,
            favorite=body.favorite,
        )
        formatted = message.to_dict()
        notifier.broadcast(NEW_MESSAGE, formatted)
        return formatted

    @app.get("/api/messages/{message_id}")
    async def get_message(message_id: str) -> Any:
        message = store.find_message_by_id(message_id)
        if message is None:
            return _error(404, "Message not found")
        return message.to_dict()

    @app.patch("/api/messages/{message_id}")
    async def update_message(message_id: str, body: MessageUpdate) -> Any:
        fields = body.model_dump(exclude_unset=True)
        if "type" in fields:
            fields["kind"] = fields.pop("type")
        message = store.update_message(message_id, **fields)
        if message is None:
            return _error(404, "Message not found")
        formatted = message.to_dict()
        notifier.broadcast(MESSAGE_UPDATED, formatted)
        return formatted

    @app.delete("/api/messages/{message_id}")
    async def delete_message(message_id: str) -> Any:
        if not store.delete_message(message_id):
            return _error(404, "Message not found")
        notifier.broadcast(MESSAGE_DELETED, {"id": message_id})
        return {"success": True}

    @app.patch("/api/messages/{message_id}/pin")
    async def toggle_pin(message_id: str) -> Any:
        """Pin or unpin; returns the full message so the UI can refresh it."""
        if store.toggle_pin(message_id) is None:
            return _error(404, "Message not found")
        message = store.find_message_by_id(message_id)
        if message is None:
            return _error(404, "Message not found")
        formatted = message.to_dict()
        notifier.broadcast(MESSAGE_UPDATED, formatted)
        return formatted

    @app.patch("/api/messages/{message_id}/favorite")
    async def favorite(message_id: str, body: FavoriteBody | None = None) -> Any:
        """Set ``favorite`` when the body carries it, otherwise toggle."""
        if body is not None and body.favorite is not None:
            state = store.set_favorite(message_id, body.favorite)
        else:
            state = store.toggle_favorite(message_id)
        message = store.find_message_by_id(message_id)
        if state is None or message is None:
            return _error(404, "Message not found")
        formatted = message.to_dict()
        notifier.broadcast(MESSAGE_UPDATED, formatted)
        return formatted

    @app.get("/api/search/messages")
    async def search_messages(
        q: str | None = None,
        type: str | None = None,  # noqa: A002
        dateFrom: str | None = None,  # noqa: N803
        dateTo: str | None = None,  # noqa: N803
        favorite: bool | None = None,
    ) -> Any:
        try:
            date_from = _parse_date(dateFrom)
            date_to = _parse_date(dateTo)
        except ValueError:
            return _error(400, "dateFrom/dateTo must be ISO-8601 dates")
        found = search.search_messages(store.messages, q, search.parse_kinds(type))
        if favorite:
            found = search.filter_favorites(found)
        if date_from or date_to:
            found = search.filter_by_date(found, date_from, date_to)
        found = search.sort_messages(found, "timestamp", "desc")
        return {"messages": [m.to_dict() for m in found], "total": len(found)}

    # -- reminders --------------------------------------------------------

    @app.get("/api/reminders")
    async def list_reminders() -> list:
        return [r.to_dict() for r in search.sort_reminders(store.reminders)]

    @app.post("/api/reminders", status_code=201)
    async def create_reminder(body: ReminderCreate) -> Any:
        if not body.text.strip():
            return _error(400, "Field 'text' is required")
        reminder = store.add_reminder(body.text, body.triggerAt)
        return reminder.to_dict()

    @app.delete("/api/reminders/{reminder_id}")
    async def delete_reminder(reminder_id: str) -> Any:
        if not store.delete_reminder(reminder_id):
            return _error(404, "Reminder not found")
        return {"success": True}

    # -- stickers ---------------------------------------------------------

    @app.get("/api/stickers")
    async def list_stickers(category: str | None = None, q: str | None = None) -> list:
        found = search.filter_stickers_by_category(store.stickers, category)
        found = search.search_stickers(found, q)
        return [s.to_dict() for s in found]

    @app.post("/api/stickers", status_code=201)
    async def create_sticker(body: StickerCreate) -> dict:
        return store.add_sticker(body.name, body.content, body.category).to_dict()

    @app.get("/api/stickers/{sticker_id}")
    async def get_sticker(sticker_id: str) -> Any:
        sticker = store.find_sticker_by_id(sticker_id)
        if sticker is None:
            return _error(404, "Sticker not found")
        return sticker.to_dict()

    @app.delete("/api/stickers/{sticker_id}")
    async def delete_sticker(sticker_id: str) -> Any:
        if not store.delete_sticker(sticker_id):
            return _error(404, "Sticker not found")
        return {"success": True}

    # -- archive ----------------------------------------------------------

    @app.get("/api/export")
    async def export_archive() -> Response:
        archive = build_archive(store)
        return Response(
            content=json.dumps(archive, indent=2, ensure_ascii=False),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{ARCHIVE_FILENAME}"'},
        )

    @app.post("/api/import")
    async def import_archive(request: Request) -> Any:
        """Replace everything with an uploaded archive.

        Accepts ``{"archive": {...}}`` or the archive object itself.
        """
        try:
            payload = await request.json()
        except (ValueError, UnicodeDecodeError):
            return _error(400, "Could not read archive: body must be valid JSON")
        archive = payload.get("archive", payload) if isinstance(payload, dict) else payload
        try:
            counts = apply_archive(store, archive)
        except ArchiveError as exc:
            return _error(400, f"Invalid archive: {exc}")
        imported = counts.to_dict()
        notifier.broadcast(STORE_RESET, imported)
        return {"success": True, "imported": imported}

    # -- events -----------------------------------------------------------

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        """Push store change events; answers ping with pong."""
        await ws.accept()
        subscription = notifier.subscribe(ws)
        pump = asyncio.create_task(subscription.pump())
        subscription.offer({"type": "connected", "status": "ready"})

        try:
            while True:
                data = await ws.receive_json()
                msg_type = data.get("type", "") if isinstance(data, dict) else ""
                if msg_type == "ping":
                    subscription.offer({"type": "pong"})
                else:
                    logger.debug("Unknown WebSocket message type: %s", msg_type)
        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected")
        except Exception:
            logger.exception("WebSocket error")
        finally:
            notifier.unsubscribe(subscription)
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

    return app
