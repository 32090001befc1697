import asyncio
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from cofacilitator.config import settings
from cofacilitator.errors import ProtocolError, TransportError
from cofacilitator.relay.protocol import (
    CHANNEL_PATH,
    EVENT_ERROR,
    EVENT_RESULT,
    EVENT_TRANSCRIBE,
    EVENT_UPDATE_THRESHOLD,
    SERVER_EVENTS,
    decode_frame,
    encode_frame,
)
from cofacilitator.session.state import TranscriptState

logger = logging.getLogger(__name__)


class TranscriptionChannel:
    """Client end of the ``/transcription`` subchannel.

    Usage::

        state = TranscriptState()
        channel = TranscriptionChannel(state)
        channel.on_result(lambda line: redraw(state.window))
        await channel.open()
        channel.send_chunk(wav_bytes)       # fire-and-forget
        ...
        await channel.close()

    Sends never block the caller: each frame is written by its own task and
    a failed write is reported to the error listeners as a
    ``TransportError`` message.  Reconnection is left to the caller.
    """

    def __init__(self, state: TranscriptState, relay_url: str | None = None) -> None:
        self.state = state
        self.url = (relay_url or settings.relay_url).rstrip("/") + CHANNEL_PATH
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._sends: set[asyncio.Task] = set()
        self._result_listeners: list[Callable[[str], None]] = []
        self._error_listeners: list[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_result(self, fn: Callable[[str], None]) -> None:
        """Register a callback receiving every cleaned line that entered the window."""
        self._result_listeners.append(fn)

    def on_error(self, fn: Callable[[str], None]) -> None:
        """Register a callback receiving transcription and transport error messages."""
        self._error_listeners.append(fn)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        if self._ws is not None:
            return
        # Chunks travel as JSON byte arrays, so frames are large.
        self._ws = await websockets.connect(self.url, max_size=None)
        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Connected to %s", self.url)

    async def close(self) -> None:
        self._result_listeners.clear()
        self._error_listeners.clear()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
            logger.info("Disconnected from %s", self.url)

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    # ------------------------------------------------------------------
    # Outgoing (fire-and-forget)
    # ------------------------------------------------------------------

    def send_chunk(self, chunk: bytes) -> None:
        """Queue one encoded chunk for the relay, tagged with the current capture run and epoch."""
        self._emit(
            EVENT_TRANSCRIBE,
            {"audio": list(chunk), "epoch": self.state.epoch, "run": self.state.run_id},
        )

    def set_confidence_threshold(self, value: float) -> float:
        """Clamp *value* locally, then push it to the relay.  Returns the clamped value."""
        threshold = self.state.set_threshold(value)
        self._emit(EVENT_UPDATE_THRESHOLD, {"value": threshold})
        return threshold

    def _emit(self, event: str, data: Any) -> None:
        task = asyncio.get_running_loop().create_task(self._send(event, encode_frame(event, data)))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def _send(self, event: str, frame: str) -> None:
        try:
            if self._ws is None:
                raise TransportError("channel is not open")
            await self._ws.send(frame)
        except (TransportError, ConnectionClosed) as exc:
            logger.warning("Could not send %s: %s", event, exc)
            self._notify_error(f"Transport error: {exc}")

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                self.handle_frame(raw)
        except ConnectionClosed as exc:
            logger.warning("Channel closed by relay: %s", exc)
            self._notify_error(f"Transport error: {exc}")

    def handle_frame(self, raw: str | bytes) -> None:
        """Apply one server frame to the local state and notify listeners."""
        try:
            event, data = decode_frame(raw, SERVER_EVENTS)
        except ProtocolError as exc:
            logger.warning("Ignoring frame from relay: %s", exc)
            return

        if event == EVENT_RESULT:
            data = data if isinstance(data, dict) else {}
            epoch = data.get("epoch")
            if not isinstance(epoch, int) or isinstance(epoch, bool):
                epoch = None
            run = data.get("run")
            if not isinstance(run, str) or not run:
                run = None
            if not self.state.append_line(data.get("transcription"), epoch=epoch, run_id=run):
                logger.debug("Dropped late result from capture run %s epoch %s", run, epoch)
                return
            line = self.state.window[-1]
            for fn in list(self._result_listeners):
                try:
                    fn(line)
                except Exception:
                    logger.exception("Result listener failed")
        elif event == EVENT_ERROR:
            message = data.get("message") if isinstance(data, dict) else data
            self._notify_error(str(message))

    def _notify_error(self, message: str) -> None:
        for fn in list(self._error_listeners):
            try:
                fn(message)
            except Exception:
                logger.exception("Error listener failed")
