import asyncio
import logging
from typing import Any, Protocol

from cofacilitator.relay.protocol import encode_frame

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


class SessionRegistry:
    """Members of the transcription subchannel.

    Add and remove happen under a lock.  ``broadcast`` copies the member
    list under the same lock and sends to all members at once outside it, so
    a client joining or leaving mid-broadcast never changes the set being
    sent to, and a slow viewer does not hold up the others.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._members: list[Connection] = []

    async def add(self, conn: Connection) -> None:
        async with self._lock:
            if conn not in self._members:
                self._members.append(conn)

    async def remove(self, conn: Connection) -> None:
        async with self._lock:
            if conn in self._members:
                self._members.remove(conn)

    async def snapshot(self) -> list[Connection]:
        async with self._lock:
            return list(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, conn: object) -> bool:
        return conn in self._members

    async def broadcast(self, event: str, data: Any) -> int:
        """Send one frame to every member concurrently.  Returns how many sends succeeded."""
        frame = encode_frame(event, data)
        members = await self.snapshot()
        results = await asyncio.gather(*(self._send(conn, frame) for conn in members))
        return sum(results)

    async def send_to(self, conn: Connection, event: str, data: Any) -> bool:
        """Send one frame to *conn* if it is still subscribed."""
        if conn not in self._members:
            logger.debug("Dropping %s for a connection that already left", event)
            return False
        return await self._send(conn, encode_frame(event, data))

    async def _send(self, conn: Connection, frame: str) -> bool:
        try:
            await conn.send_text(frame)
        except Exception as exc:
            # Client may have already disconnected
            logger.debug("Send to channel member failed: %s", exc)
            return False
        return True
