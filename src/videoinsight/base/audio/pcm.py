from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

__all__ = ["PcmBuffer", "downmix", "resample", "js_round"]


def js_round(value: float) -> int:
    """Round half up, matching the reference rounding used for buffer lengths."""
    return int(math.floor(value + 0.5))


@dataclass
class PcmBuffer:
    """
    Uncompressed float PCM audio held in memory

    Attributes:
        samples (np.ndarray): float32 samples in [-1, 1]. 1-D for mono, shaped (n, channels) otherwise
        sample_rate (int): Sample rate in Hz
        channels (int): Number of channels
    """

    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("Sample rate must be positive")
        if self.channels < 1:
            raise ValueError("Channel count must be at least 1")
        self.samples = np.asarray(self.samples, dtype=np.float32)
        if self.channels == 1 and self.samples.ndim != 1:
            raise ValueError(f"Mono samples must be 1-dimensional, got shape {self.samples.shape}")
        if self.channels > 1 and (self.samples.ndim != 2 or self.samples.shape[1] != self.channels):
            raise ValueError(f"Expected samples shaped (n, {self.channels}), got {self.samples.shape}")

    @classmethod
    def silence(cls, num_samples: int, sample_rate: int) -> PcmBuffer:
        """Create a zero-filled mono buffer."""
        return cls(np.zeros(max(num_samples, 0), dtype=np.float32), sample_rate=sample_rate, channels=1)

    @property
    def duration_seconds(self) -> float:
        return len(self) / self.sample_rate

    @property
    def is_silent(self) -> bool:
        """True if every sample is effectively zero."""
        return bool(np.all(np.abs(self.samples) < 1e-7))

    def to_mono(self) -> PcmBuffer:
        return downmix(self)

    def resample(self, target_sample_rate: int) -> PcmBuffer:
        return resample(self, target_sample_rate)

    def truncate(self, max_samples: int) -> PcmBuffer:
        """Keep at most `max_samples` leading sample frames."""
        if max_samples < 0:
            raise ValueError("max_samples must be non-negative")
        if len(self) <= max_samples:
            return self
        return PcmBuffer(self.samples[:max_samples].copy(), sample_rate=self.sample_rate, channels=self.channels)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    def __repr__(self) -> str:
        return f"PcmBuffer({self.sample_rate}Hz, channels={self.channels}, samples={len(self)})"


def downmix(buffer: PcmBuffer) -> PcmBuffer:
    """
    Average all channels into a single mono channel

    Mono input is returned as-is. Multi-channel input is accumulated channel by
    channel into a zeroed buffer, each contribution divided by the channel count.
    """
    if buffer.channels == 1:
        return buffer

    result = np.zeros(len(buffer), dtype=np.float32)
    for channel in range(buffer.channels):
        result += buffer.samples[:, channel] / np.float32(buffer.channels)

    return PcmBuffer(result, sample_rate=buffer.sample_rate, channels=1)


def resample(buffer: PcmBuffer, target_sample_rate: int) -> PcmBuffer:
    """
    Resample a buffer to a new sample rate using linear interpolation

    Args:
        buffer: Input audio
        target_sample_rate: New sample rate in Hz

    Returns:
        PcmBuffer: The input itself when rates already match, otherwise a new buffer
    """
    if target_sample_rate <= 0:
        raise ValueError("Target sample rate must be positive")
    if buffer.sample_rate == target_sample_rate:
        return buffer

    ratio = buffer.sample_rate / target_sample_rate
    length = len(buffer)
    new_length = js_round(length / ratio)

    if length == 0 or new_length == 0:
        shape = (0,) if buffer.channels == 1 else (0, buffer.channels)
        return PcmBuffer(np.zeros(shape, dtype=np.float32), sample_rate=target_sample_rate, channels=buffer.channels)

    positions = np.arange(new_length, dtype=np.float64) * ratio
    floor_idx = np.floor(positions).astype(np.int64)
    ceil_idx = np.minimum(floor_idx + 1, length - 1)
    t = positions - np.floor(positions)

    source = buffer.samples.astype(np.float64)
    if buffer.channels > 1:
        t = t[:, np.newaxis]
    resampled = source[floor_idx] * (1.0 - t) + source[ceil_idx] * t

    return PcmBuffer(resampled.astype(np.float32), sample_rate=target_sample_rate, channels=buffer.channels)
