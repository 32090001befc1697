import logging
from typing import Any

import httpx
from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cofacilitator.clients import EngineClient
from cofacilitator.errors import QueryUpstreamError
from cofacilitator.services.storage import ScratchStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["query"])


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class AIQuery(BaseModel):
    query: str
    context: Any = None
    history: list[dict] | None = None


# ------------------------------------------------------------------
# AI query proxy
# ------------------------------------------------------------------


@router.post("/ai-query")
async def ai_query(body: AIQuery, request: Request) -> Any:
    """Forward a question to the AI engine and return its JSON unchanged."""
    engine: EngineClient = request.app.state.engine
    try:
        return await engine.query_raw(body.model_dump(exclude_none=True))
    except QueryUpstreamError as exc:
        logger.warning("Error in AI query: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "An error occurred while processing your query"},
        )


# ------------------------------------------------------------------
# Uploads
# ------------------------------------------------------------------


@router.post("/upload")
async def upload_audio(request: Request, audio: UploadFile | None = File(None)) -> dict:
    """Store an uploaded recording under the scratch directory (served at /uploads)."""
    if audio is None:
        raise HTTPException(status_code=400, detail="No file uploaded.")
    storage: ScratchStorage = request.app.state.storage
    stored_name, path = storage.upload_path(audio.filename)
    await storage.write_bytes(path, await audio.read())
    logger.info("Stored upload %s as %s", audio.filename, stored_name)
    return {"filename": stored_name}


@router.post("/upload_content")
async def upload_content(request: Request, file: UploadFile = File(...)) -> Any:
    """Forward a course document to the engine's ingestion endpoint."""
    engine: EngineClient = request.app.state.engine
    content = await file.read()
    try:
        resp = await engine.upload_content(
            file.filename or "upload", content, file.content_type
        )
    except httpx.HTTPError as exc:
        logger.warning("Content upload failed: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to upload content")
    if resp.is_error:
        logger.warning("Engine rejected content upload: %d", resp.status_code)
        raise HTTPException(status_code=502, detail="Failed to upload content")
    try:
        return resp.json()
    except ValueError:
        raise HTTPException(status_code=502, detail="Engine returned invalid JSON")


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


@router.get("/health")
async def health(request: Request) -> dict:
    return {"status": "ok", "viewers": len(request.app.state.registry)}
