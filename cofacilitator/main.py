import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from cofacilitator.clients import EngineClient
from cofacilitator.config import settings
from cofacilitator.logging_setup import configure_logging
from cofacilitator.relay import SessionRegistry, TranscriptionRelay
from cofacilitator.routes import query, transcription
from cofacilitator.services.storage import ScratchStorage

logger = logging.getLogger(__name__)


def create_app(
    engine: EngineClient | None = None,
    storage: ScratchStorage | None = None,
) -> FastAPI:
    """Build the relay application.  *engine* and *storage* are injectable for tests."""
    storage = storage or ScratchStorage()
    # StaticFiles checks the directory when mounted, so it must exist first.
    storage.ensure_dir()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the engine client on startup; wait for in-flight chunks and close it on shutdown."""
        app.state.engine = engine or EngineClient()
        app.state.storage = storage
        app.state.registry = SessionRegistry()
        app.state.relay = TranscriptionRelay(app.state.engine, app.state.registry, storage)
        logger.info("Relay ready, forwarding to %s", app.state.engine.base_url)
        try:
            yield
        finally:
            await transcription.drain_pending(timeout=settings.engine_timeout_seconds)
            await app.state.engine.aclose()

    app = FastAPI(
        title="cofacilitator",
        description="Live lecture transcription relay with an AI question desk",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(transcription.router)
    app.include_router(query.router)

    # Uploaded recordings
    app.mount("/uploads", StaticFiles(directory=storage.root), name="uploads")

    return app


def main() -> None:
    configure_logging()
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
