import logging
import os

import aiofiles
import httpx

from cofacilitator.config import settings
from cofacilitator.errors import QueryUpstreamError, RelayUpstreamError

logger = logging.getLogger(__name__)


class EngineClient:
    """Async wrapper around the external speech-to-text / AI engine.

    Usage::

        engine = EngineClient()                       # uses ENGINE_URL from env
        result = await engine.transcribe(wav_path)    # {"transcription": ...}
        answer = await engine.query("Why?", history)  # plain answer string

    One ``httpx.AsyncClient`` is shared by every call, so concurrent chunks
    reuse the same connection pool.  Pass *transport* to swap the network
    layer (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.engine_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.engine_timeout_seconds,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Speech-to-text
    # ------------------------------------------------------------------

    async def transcribe(
        self, wav_path: str, *, confidence_threshold: float | None = None
    ) -> dict:
        """Upload one WAV chunk as multipart field ``audio``.

        Returns the engine's JSON object verbatim.  Raises
        ``RelayUpstreamError`` on transport failure or a non-2xx status.
        """
        async with aiofiles.open(wav_path, "rb") as f:
            audio = await f.read()

        data = {}
        if confidence_threshold is not None:
            data["confidence_threshold"] = str(confidence_threshold)
        files = {"audio": (os.path.basename(wav_path), audio, "audio/wav")}

        try:
            resp = await self._client.post("/transcribe", files=files, data=data)
        except httpx.HTTPError as exc:
            raise RelayUpstreamError(f"Transcription request failed: {exc}") from exc

        if resp.is_error:
            raise RelayUpstreamError(
                f"Transcription engine returned {resp.status_code}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RelayUpstreamError("Transcription engine returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise RelayUpstreamError("Transcription engine returned a non-object body")
        return payload

    # ------------------------------------------------------------------
    # AI query
    # ------------------------------------------------------------------

    async def query(self, question: str, history: list[dict]) -> str:
        """Ask the AI engine *question* with the chat *history* as context."""
        payload = await self.query_raw({"query": question, "history": history})
        answer = payload.get("answer")
        if not isinstance(answer, str):
            raise QueryUpstreamError("AI engine response has no answer")
        return answer

    async def query_raw(self, body: dict) -> dict:
        """POST *body* to ``/query`` and return the JSON object unchanged."""
        try:
            resp = await self._client.post("/query", json=body)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise QueryUpstreamError(f"AI query failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise QueryUpstreamError("AI engine returned a non-object body")
        return payload

    # ------------------------------------------------------------------
    # Content ingestion
    # ------------------------------------------------------------------

    async def upload_content(
        self, filename: str, content: bytes, content_type: str | None = None
    ) -> httpx.Response:
        """Forward a document to ``/upload_content`` as multipart field ``file``.

        Returns the raw response; the caller decides what a non-2xx means.
        Transport failures propagate as ``httpx.HTTPError``.
        """
        files = {
            "file": (filename, content, content_type or "application/octet-stream")
        }
        return await self._client.post("/upload_content", files=files)
