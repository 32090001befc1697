import io
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import soundfile as sf

WAV_HEADER_SIZE = 44
INT16_SCALE = 32767  # 0x7FFF


@dataclass(frozen=True)
class WavInfo:
    sample_rate: int
    channels: int
    frames: int
    duration_seconds: float


def concat_blocks(blocks: np.ndarray | Sequence) -> np.ndarray:
    """Flatten a batch of sample blocks into one float32 vector."""
    if isinstance(blocks, np.ndarray):
        return blocks.astype(np.float32, copy=False).reshape(-1)
    if len(blocks) == 0:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(
        [np.asarray(block, dtype=np.float32).reshape(-1) for block in blocks]
    )


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1], scale by 32767 and truncate toward zero.

    The product is computed in float64 and converted with ``astype``, which
    truncates like ``DataView.setInt16`` does in a browser.  NaN becomes 0.
    """
    x = np.nan_to_num(samples.astype(np.float64), nan=0.0, posinf=1.0, neginf=-1.0)
    return (np.clip(x, -1.0, 1.0) * INT16_SCALE).astype("<i2")


def encode_wav(samples: np.ndarray | Sequence, sample_rate: int) -> bytes:
    """Encode float samples (or a batch of blocks) as a mono 16-bit WAV chunk.

    Pure function.  The samples are quantized by ``float_to_pcm16`` first, so
    soundfile writes the int16 values as they are.  The result is always
    ``44 + 2 * len(samples)`` bytes.
    """
    pcm = float_to_pcm16(concat_blocks(samples))
    buf = io.BytesIO()
    sf.write(buf, pcm, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def describe_wav(path: str) -> WavInfo:
    """Read a WAV header back.  Raises ``RuntimeError`` if it is not decodable audio."""
    info = sf.info(path)
    return WavInfo(
        sample_rate=info.samplerate,
        channels=info.channels,
        frames=info.frames,
        duration_seconds=info.duration,
    )
