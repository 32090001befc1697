# CaptureScheduler lives in recording.worker and is not re-exported here:
# importing sounddevice needs the PortAudio shared library, which the relay
# server does not.
from cofacilitator.recording.audio_utils import describe_wav, encode_wav

__all__ = ["describe_wav", "encode_wav"]
