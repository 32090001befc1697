import logging
import queue
import threading
from typing import Callable

import numpy as np
import sounddevice as sd

from cofacilitator.config import settings
from cofacilitator.errors import DeviceUnavailable
from cofacilitator.recording.audio_utils import encode_wav

logger = logging.getLogger(__name__)


class CaptureScheduler:
    """Samples the microphone and turns every N blocks into one WAV chunk.

    Threading model (three contexts, never blur them):

    1. **Audio callback**: runs in sounddevice's internal C audio thread.
       May ONLY append to the batch and, once the batch is full, hand it to
       the worker queue.  No I/O, no logging, no encoding.

    2. **Worker loop**: runs in a daemon Python thread.  Encodes full
       batches and fires ``on_chunk`` callbacks from this thread.

    3. **Event loop**: the client's asyncio loop.  Whoever registers a chunk
       callback bridges it with ``loop.call_soon_threadsafe``.
    """

    def __init__(
        self,
        sample_rate: int | None = None,
        block_size: int | None = None,
        blocks_per_chunk: int | None = None,
    ) -> None:
        self.sample_rate = sample_rate or settings.sample_rate
        self.block_size = block_size or settings.block_size
        self.blocks_per_chunk = blocks_per_chunk or settings.blocks_per_chunk

        # Current batch, guarded by _lock
        self._batch: list[np.ndarray] = []
        self._lock = threading.Lock()

        # Full batches waiting for the worker
        self._pending: queue.Queue[list[np.ndarray]] = queue.Queue()

        # Lifecycle
        self._running = False
        self._stream: sd.InputStream | None = None
        self._thread: threading.Thread | None = None

        # Callback registries
        self._chunk_callbacks: list[Callable[[bytes], None]] = []
        self._state_callbacks: list[Callable[[bool], None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_chunk(self, fn: Callable[[bytes], None]) -> None:
        """Register a callback invoked (from the worker thread) with every encoded chunk."""
        self._chunk_callbacks.append(fn)

    def on_state_change(self, fn: Callable[[bool], None]) -> None:
        """Register a callback invoked with the new running state on start and stop."""
        self._state_callbacks.append(fn)

    def start(self) -> None:
        """Open the microphone and start the worker loop.

        Raises ``DeviceUnavailable`` when there is no input device or
        PortAudio refuses to open it.  The scheduler then stays stopped.
        """
        if self._running:
            return
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                callback=self._audio_callback,
                blocksize=self.block_size,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailable(f"Cannot open audio input: {exc}") from exc

        with self._lock:
            self._batch = []
        self._stream = stream
        self._running = True
        self._thread = threading.Thread(target=self._worker_loop, daemon=True)
        self._thread.start()
        logger.info(
            "Capture started: %d Hz, %d frames/block, %d blocks/chunk",
            self.sample_rate,
            self.block_size,
            self.blocks_per_chunk,
        )
        self._notify_state(True)

    def stop(self) -> None:
        """Stop recording and drop the partial batch.  Full batches already queued are still sent."""
        if not self._running:
            return
        self._running = False
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        with self._lock:
            dropped = len(self._batch)
            self._batch = []
        if self._thread:
            self._thread.join(timeout=10)
            self._thread = None
        logger.info("Capture stopped (%d unsent blocks discarded)", dropped)
        self._notify_state(False)

    def toggle(self) -> bool:
        """Start if stopped, stop if running.  Returns the new running state."""
        if self._running:
            self.stop()
        else:
            self.start()
        return self._running

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def samples_per_chunk(self) -> int:
        return self.block_size * self.blocks_per_chunk

    # ------------------------------------------------------------------
    # Audio callback (C audio thread)
    # ------------------------------------------------------------------

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        timeinfo,  # noqa: ANN001
        status: sd.CallbackFlags,
    ) -> None:
        """sounddevice callback.  Must be fast: buffer only, no I/O."""
        if not self._running:
            return
        with self._lock:
            self._batch.append(indata[:, 0].copy() if indata.ndim > 1 else indata.copy())
            if len(self._batch) < self.blocks_per_chunk:
                return
            full, self._batch = self._batch, []
        self._pending.put(full)

    # ------------------------------------------------------------------
    # Worker loop (daemon thread)
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while self._running or not self._pending.empty():
            try:
                batch = self._pending.get(timeout=0.25)
            except queue.Empty:
                continue
            self._process_batch(batch)

    def _process_batch(self, batch: list[np.ndarray]) -> None:
        """Encode one full batch and fire the chunk callbacks."""
        chunk = encode_wav(batch, self.sample_rate)
        logger.debug("Encoded chunk: %d blocks, %d bytes", len(batch), len(chunk))
        for fn in self._chunk_callbacks:
            try:
                fn(chunk)
            except Exception:
                logger.exception("Chunk callback failed")

    def _notify_state(self, running: bool) -> None:
        for fn in self._state_callbacks:
            try:
                fn(running)
            except Exception:
                logger.exception("State callback failed")
