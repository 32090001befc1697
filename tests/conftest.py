import numpy as np
import pytest

from cofacilitator.recording.audio_utils import encode_wav


@pytest.fixture
def wav_chunk():
    """A short valid WAV chunk; *value* makes distinct chunks distinguishable."""

    def _make(value: float = 0.25, samples: int = 160, sample_rate: int = 16000) -> bytes:
        return encode_wav(np.full(samples, value, dtype=np.float32), sample_rate)

    return _make
