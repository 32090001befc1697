import logging
import os
import time
import uuid

import aiofiles

from cofacilitator.config import settings

logger = logging.getLogger(__name__)


class ScratchStorage:
    """Short-lived files under ``scratch_dir`` (relay chunks, uploaded audio)."""

    def __init__(self, root: str | None = None) -> None:
        self.root = root or settings.scratch_dir

    def ensure_dir(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    def chunk_path(self) -> str:
        """A fresh path for one relayed chunk.

        The nanosecond clock alone can collide when two chunks land in the
        same tick, so a random suffix is added.
        """
        name = f"temp_{time.time_ns()}_{uuid.uuid4().hex[:8]}.wav"
        return os.path.join(self.root, name)

    def upload_path(self, filename: str | None) -> tuple[str, str]:
        """Return ``(stored_name, path)`` for an uploaded file."""
        ext = os.path.splitext(filename or "")[1].lower()
        stored_name = f"{uuid.uuid4().hex}{ext}"
        return stored_name, os.path.join(self.root, stored_name)

    async def write_bytes(self, path: str, data: bytes) -> None:
        self.ensure_dir()
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

    @staticmethod
    def discard(path: str) -> bool:
        """Delete *path*.  Returns False (and logs) if it could not be removed."""
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not remove scratch file %s: %s", path, exc)
            return False
        return True
