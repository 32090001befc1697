from cofacilitator.relay.registry import SessionRegistry
from cofacilitator.relay.relay import TranscriptionRelay

__all__ = ["SessionRegistry", "TranscriptionRelay"]
