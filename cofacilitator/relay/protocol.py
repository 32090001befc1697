"""Frame format of the ``/transcription`` channel.

Every frame is a JSON text message ``{"event": <name>, "data": <payload>}``.
Messages are one-way: nothing is acknowledged.
"""

import json
import math
from typing import Any

from cofacilitator.errors import ProtocolError

CHANNEL_PATH = "/transcription"

# client -> server
EVENT_TRANSCRIBE = "transcribe"
EVENT_UPDATE_THRESHOLD = "updateConfidenceThreshold"

# server -> client
EVENT_RESULT = "transcriptionResult"
EVENT_ERROR = "transcriptionError"

CLIENT_EVENTS = frozenset({EVENT_TRANSCRIBE, EVENT_UPDATE_THRESHOLD})
SERVER_EVENTS = frozenset({EVENT_RESULT, EVENT_ERROR})


def encode_frame(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data})


def decode_frame(raw: str | bytes, allowed: frozenset[str]) -> tuple[str, Any]:
    """Parse one frame and return ``(event, data)``.  Raises ``ProtocolError``."""
    try:
        msg = json.loads(raw)
    except ValueError as exc:
        raise ProtocolError(f"invalid JSON: {exc}") from exc

    if not isinstance(msg, dict):
        raise ProtocolError("frame must be a JSON object")

    event = msg.get("event")
    if not isinstance(event, str) or event not in allowed:
        raise ProtocolError(f"unknown event {event!r}")
    return event, msg.get("data")


def parse_audio(data: Any) -> tuple[bytes, int | None, str | None]:
    """Extract ``(audio bytes, epoch, run)`` from a ``transcribe`` payload.

    ``audio`` is a list of byte values, as a browser sends
    ``Array.from(new Uint8Array(buffer))``.  ``epoch`` counts capture resets
    within one presenter run, and ``run`` names that run.
    """
    if not isinstance(data, dict):
        raise ProtocolError("transcribe payload must be an object")
    audio = data.get("audio")
    if not isinstance(audio, list) or not audio:
        raise ProtocolError("transcribe payload missing 'audio' byte array")
    try:
        chunk = bytes(audio)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"'audio' is not a byte array: {exc}") from exc

    epoch = data.get("epoch")
    if epoch is not None and (not isinstance(epoch, int) or isinstance(epoch, bool)):
        raise ProtocolError("'epoch' must be an integer")
    run = data.get("run")
    if run is not None and (not isinstance(run, str) or not run):
        raise ProtocolError("'run' must be a non-empty string")
    return chunk, epoch, run


def parse_threshold(data: Any) -> float:
    """Extract the number from ``{value: n}`` or a bare ``n``."""
    value = data.get("value") if isinstance(data, dict) else data
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError("confidence threshold must be a number")
    value = float(value)
    if not math.isfinite(value):
        raise ProtocolError("confidence threshold must be finite")
    return value
