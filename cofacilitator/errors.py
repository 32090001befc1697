"""Error types shared by the capture client, the relay and the AI query path."""


class DeviceUnavailable(RuntimeError):
    """Raised when the audio input device cannot be opened."""


class TransportError(RuntimeError):
    """Raised when a frame cannot be sent over the transcription channel."""


class RelayUpstreamError(RuntimeError):
    """The speech-to-text engine failed or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueryUpstreamError(RuntimeError):
    """The AI query engine failed or answered with a non-2xx status."""


class ProtocolError(ValueError):
    """A channel frame could not be parsed."""
