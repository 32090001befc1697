import asyncio
import logging
from typing import Protocol

from cofacilitator.config import settings
from cofacilitator.errors import RelayUpstreamError
from cofacilitator.recording.audio_utils import describe_wav
from cofacilitator.relay.protocol import EVENT_ERROR, EVENT_RESULT
from cofacilitator.relay.registry import Connection, SessionRegistry
from cofacilitator.services.storage import ScratchStorage
from cofacilitator.session.state import clamp_threshold

logger = logging.getLogger(__name__)

TRANSCRIPTION_ERROR_MESSAGE = "Error transcribing audio"


class SpeechEngine(Protocol):
    async def transcribe(
        self, wav_path: str, *, confidence_threshold: float | None = None
    ) -> dict: ...


class TranscriptionRelay:
    """Forwards chunks to the speech-to-text engine and fans results out.

    Each ``transcribe`` call is independent: there is no queue and no
    ordering between chunks, so results reach the channel in the order the
    engine answers.  A failure is reported to the sending connection only.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        registry: SessionRegistry,
        storage: ScratchStorage | None = None,
        timeout: float | None = None,
        confidence_threshold: float | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.storage = storage or ScratchStorage()
        self.timeout = timeout or settings.engine_timeout_seconds
        self.confidence_threshold = clamp_threshold(
            settings.default_confidence_threshold
            if confidence_threshold is None
            else confidence_threshold
        )

    async def transcribe(
        self,
        origin: Connection,
        audio: bytes,
        epoch: int | None = None,
        run: str | None = None,
    ) -> bool:
        """Relay one chunk.  Returns True if a result was broadcast."""
        path = self.storage.chunk_path()
        # Threshold is read at submission time; later updates do not apply.
        threshold = self.confidence_threshold
        try:
            await self.storage.write_bytes(path, audio)
            info = await asyncio.to_thread(describe_wav, path)
            logger.info(
                "Relaying chunk %s: %d bytes, %.2f s", path, len(audio), info.duration_seconds
            )
            result = await asyncio.wait_for(
                self.engine.transcribe(path, confidence_threshold=threshold),
                timeout=self.timeout,
            )
        except (OSError, RuntimeError, asyncio.TimeoutError) as exc:
            # RelayUpstreamError and soundfile's decode errors are RuntimeErrors.
            level = logging.WARNING if isinstance(exc, RelayUpstreamError) else logging.ERROR
            logger.log(level, "Transcription failed for %s: %r", path, exc)
            await self.registry.send_to(
                origin, EVENT_ERROR, {"message": TRANSCRIPTION_ERROR_MESSAGE}
            )
            return False
        finally:
            self.storage.discard(path)

        payload = dict(result)
        if epoch is not None:
            payload["epoch"] = epoch
        if run is not None:
            payload["run"] = run
        logger.debug("Engine response: %s", payload)
        delivered = await self.registry.broadcast(EVENT_RESULT, payload)
        logger.info("Broadcast transcription result to %d connection(s)", delivered)
        return True

    def update_confidence_threshold(self, value: float) -> float:
        """Store the threshold for chunks submitted from now on.  Out-of-range values are clamped."""
        self.confidence_threshold = clamp_threshold(value)
        if self.confidence_threshold != value:
            logger.info("Confidence threshold %s clamped to %s", value, self.confidence_threshold)
        else:
            logger.info("Confidence threshold set to %s", self.confidence_threshold)
        return self.confidence_threshold
