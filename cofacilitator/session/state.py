import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable

from cofacilitator.config import settings

WINDOW_SIZE = 3
THRESHOLD_MIN = -1.0
THRESHOLD_MAX = 0.0


@dataclass(frozen=True)
class Bookmark:
    timestamp: float  # seconds since the epoch
    text: str


def clean_line(text: object) -> str:
    """Collapse whitespace runs to single spaces and trim.  Non-strings become ``""``."""
    if not isinstance(text, str):
        return ""
    return " ".join(text.split())


def clamp_threshold(value: float) -> float:
    return min(THRESHOLD_MAX, max(THRESHOLD_MIN, float(value)))


class TranscriptState:
    """Client-side view of the shared transcript.

    Holds the rolling window of the last three lines, the bookmark list and
    the confidence threshold.  Every capture start or stop calls ``reset()``,
    which also advances ``epoch``.  Lines tagged with an older epoch of the
    same run are results of chunks recorded before the reset and are
    dropped.  ``run_id`` is fixed per process, so a restarted presenter
    starts a new run that viewers switch to.
    """

    def __init__(
        self,
        threshold: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window: deque[str] = deque(maxlen=WINDOW_SIZE)
        self._bookmarks: list[Bookmark] = []
        self._clock = clock
        self.epoch = 0
        # Names this process's capture run; a restarted presenter gets a new one.
        self.run_id = uuid.uuid4().hex
        # Run whose lines are in the window.
        self.current_run = self.run_id
        self._retired_runs: set[str] = set()
        self.threshold = clamp_threshold(
            settings.default_confidence_threshold if threshold is None else threshold
        )

    # ------------------------------------------------------------------
    # Rolling window
    # ------------------------------------------------------------------

    @property
    def window(self) -> list[str]:
        return list(self._window)

    def append_line(
        self, text: object, epoch: int | None = None, run_id: str | None = None
    ) -> bool:
        """Clean *text* and push it onto the window.  Returns False if the line was stale.

        Epochs are only compared within one run.  A line from an unseen run
        clears the window and adopts that run's epoch; lines from runs that
        were replaced are dropped.
        """
        if run_id is not None and run_id != self.current_run:
            if run_id in self._retired_runs:
                return False
            self._retired_runs.add(self.current_run)
            self.current_run = run_id
            self.epoch = epoch if epoch is not None else 0
            self._window.clear()
        elif epoch is not None:
            if epoch < self.epoch:
                return False
            if epoch > self.epoch:
                # The presenter reset its capture; the old window is stale.
                self._window.clear()
                self.epoch = epoch
        self._window.append(clean_line(text))
        return True

    def reset(self) -> None:
        self._window.clear()
        self.epoch += 1
        if self.current_run != self.run_id:
            # Our own capture takes over the window again.
            self._retired_runs.add(self.current_run)
            self._retired_runs.discard(self.run_id)
            self.current_run = self.run_id

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    @property
    def bookmarks(self) -> list[Bookmark]:
        return list(self._bookmarks)

    def add_bookmark(self, text: str) -> Bookmark:
        now = self._clock()
        if self._bookmarks and now < self._bookmarks[-1].timestamp:
            now = self._bookmarks[-1].timestamp  # wall clock stepped back
        bookmark = Bookmark(timestamp=now, text=text)
        self._bookmarks.append(bookmark)
        return bookmark

    def bookmark_window(self) -> Bookmark:
        """Presenter bookmark: the current window joined into one line."""
        return self.add_bookmark(" ".join(self._window))

    def bookmark_answer(self, answer: str | None) -> Bookmark | None:
        """Student bookmark: the latest AI answer, if there is one."""
        if answer is None:
            return None
        return self.add_bookmark(answer)

    # ------------------------------------------------------------------
    # Confidence threshold
    # ------------------------------------------------------------------

    def set_threshold(self, value: float) -> float:
        """Store *value* clamped to [-1, 0] and return what was stored."""
        self.threshold = clamp_threshold(value)
        return self.threshold
