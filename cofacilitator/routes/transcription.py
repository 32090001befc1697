import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from cofacilitator.errors import ProtocolError
from cofacilitator.relay import SessionRegistry, TranscriptionRelay
from cofacilitator.relay.protocol import (
    CHANNEL_PATH,
    CLIENT_EVENTS,
    EVENT_ERROR,
    EVENT_TRANSCRIBE,
    EVENT_UPDATE_THRESHOLD,
    decode_frame,
    parse_audio,
    parse_threshold,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transcription"])

# Strong references to in-flight relay tasks; asyncio only keeps weak ones.
_tasks: set[asyncio.Task] = set()


@router.websocket(CHANNEL_PATH)
async def transcription_channel(websocket: WebSocket) -> None:
    """Subchannel shared by the presenter and every viewer."""
    registry: SessionRegistry = websocket.app.state.registry
    relay: TranscriptionRelay = websocket.app.state.relay

    await websocket.accept()
    await registry.add(websocket)
    logger.info("Viewer connected to %s. Active: %d", CHANNEL_PATH, len(registry))

    try:
        while True:
            raw = await websocket.receive_text()
            await _dispatch(websocket, relay, raw)
    except WebSocketDisconnect:
        pass
    finally:
        # In-flight chunks from this connection still complete; their
        # output just has nowhere to go.
        await registry.remove(websocket)
        logger.info("Viewer disconnected from %s. Active: %d", CHANNEL_PATH, len(registry))


async def _dispatch(websocket: WebSocket, relay: TranscriptionRelay, raw: str) -> None:
    try:
        event, data = decode_frame(raw, CLIENT_EVENTS)
        if event == EVENT_TRANSCRIBE:
            audio, epoch, run = parse_audio(data)
            _spawn(relay.transcribe(websocket, audio, epoch, run))
        elif event == EVENT_UPDATE_THRESHOLD:
            relay.update_confidence_threshold(parse_threshold(data))
    except ProtocolError as exc:
        logger.warning("Rejected channel frame: %s", exc)
        await relay.registry.send_to(websocket, EVENT_ERROR, {"message": str(exc)})


def _spawn(coro) -> asyncio.Task:  # noqa: ANN001
    task = asyncio.create_task(coro)
    _tasks.add(task)
    task.add_done_callback(_tasks.discard)
    return task


async def drain_pending(timeout: float | None = None) -> None:
    """Wait for in-flight relay tasks (used on shutdown)."""
    if _tasks:
        await asyncio.wait(set(_tasks), timeout=timeout)
