from cofacilitator.clients.channel import TranscriptionChannel
from cofacilitator.clients.engine_client import EngineClient

__all__ = ["EngineClient", "TranscriptionChannel"]
