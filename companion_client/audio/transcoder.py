"""Re-encode captured audio as a canonical PCM WAV container."""

from __future__ import annotations

import io
import wave
from dataclasses import dataclass

import numpy as np

_BYTES_PER_SAMPLE = 2  # pcm_s16le


@dataclass(slots=True)
class WavClip:
    """Encoded clip ready for upload."""

    data: bytes
    sample_rate: int
    channels: int

    @property
    def duration(self) -> float:
        payload = max(0, len(self.data) - 44)
        return payload / (self.sample_rate * self.channels * _BYTES_PER_SAMPLE)


def to_int16(samples: np.ndarray) -> np.ndarray:
    """Convert float or integer samples to clipped int16."""
    if samples.dtype == np.int16:
        return samples
    if np.issubdtype(samples.dtype, np.floating):
        clipped = np.clip(samples, -1.0, 1.0)
        return (clipped * 32767).astype(np.int16)
    return np.clip(samples, -32768, 32767).astype(np.int16)


def encode_wav(samples: np.ndarray, sample_rate: int) -> WavClip:
    """Encode ``samples`` (frames x channels, or mono 1-D) as a RIFF/WAVE file."""
    pcm = to_int16(np.asarray(samples))
    channels = 1 if pcm.ndim == 1 else int(pcm.shape[1])
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as writer:
        writer.setnchannels(channels)
        writer.setsampwidth(_BYTES_PER_SAMPLE)
        writer.setframerate(sample_rate)
        writer.writeframes(pcm.astype("<i2").tobytes())
    return WavClip(data=buffer.getvalue(), sample_rate=sample_rate, channels=channels)


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Decode a 16-bit PCM WAV file into (frames x channels int16, sample_rate)."""
    with wave.open(io.BytesIO(data), "rb") as reader:
        if reader.getsampwidth() != _BYTES_PER_SAMPLE:
            raise ValueError(f"Unsupported sample width: {reader.getsampwidth()}")
        channels = reader.getnchannels()
        sample_rate = reader.getframerate()
        frames = reader.readframes(reader.getnframes())
    samples = np.frombuffer(frames, dtype="<i2")
    return samples.reshape(-1, channels), sample_rate
