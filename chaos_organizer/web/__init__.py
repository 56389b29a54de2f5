"""HTTP/WebSocket frontend for the organizer store."""

from __future__ import annotations

from chaos_organizer.service import Organizer


def main(
    organizer: Organizer,
    host: str = "127.0.0.1",
    port: int = 3000,
    seed_demo: bool = False,
) -> None:
    """Launch the web server.

    uvicorn turns SIGINT/SIGTERM into a lifespan shutdown, which flushes
    the store before the process exits.
    """
    import uvicorn

    from .server import create_app

    app = create_app(organizer, seed_demo=seed_demo)
    uvicorn.run(app, host=host, port=port, log_level="info")
