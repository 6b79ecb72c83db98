"""Canonical 16-bit PCM RIFF/WAVE encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from videoinsight.base.audio.pcm import PcmBuffer
from videoinsight.base.exceptions import WavFormatError

__all__ = [
    "WavHeader",
    "WAV_HEADER_SIZE",
    "encode_wav",
    "encode_pcm_buffer",
    "read_wav_header",
    "decode_wav",
    "save_wav",
]

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
PCM_FORMAT_TAG = 1

# "<4sI4s4sIHHIIHH4sI": RIFF chunk, fmt sub-chunk, data sub-chunk header
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    """Parsed fields of a canonical 44-byte WAV header."""

    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int

    @property
    def frame_count(self) -> int:
        return self.data_length // self.block_align if self.block_align else 0


def _interleave(samples: np.ndarray, channels: int) -> np.ndarray:
    """Flatten (n, channels) samples frame-major: ch0, ch1, ..., ch0, ch1, ..."""
    samples = np.asarray(samples)
    if channels == 1:
        return samples.reshape(-1)
    if samples.ndim == 2:
        if samples.shape[1] != channels:
            raise ValueError(f"Expected samples shaped (n, {channels}), got {samples.shape}")
        return samples.reshape(-1)
    if samples.ndim == 1 and samples.shape[0] % channels == 0:
        # Already interleaved
        return samples
    raise ValueError(f"Cannot interleave samples of shape {samples.shape} into {channels} channels")


def _quantize(samples: np.ndarray) -> np.ndarray:
    """Map float samples to int16: negatives scale by 32768, the rest by 32767."""
    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return np.trunc(scaled).astype("<i2")


def encode_wav(samples: np.ndarray, sample_rate: int, channels: int = 1) -> bytes:
    """
    Encode float PCM samples as a canonical WAV byte stream

    Args:
        samples: Mono 1-D samples, (n, channels) samples, or an already interleaved 1-D array
        sample_rate: Sample rate in Hz
        channels: Number of channels

    Returns:
        bytes: 44-byte header followed by 16-bit little-endian PCM data
    """
    if channels < 1:
        raise ValueError("Channel count must be at least 1")
    if sample_rate <= 0:
        raise ValueError("Sample rate must be positive")

    pcm = _quantize(_interleave(samples, channels))

    block_align = channels * (BITS_PER_SAMPLE // 8)
    data_length = pcm.size * (BITS_PER_SAMPLE // 8)
    header = _HEADER_STRUCT.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )
    return header + pcm.tobytes()


def encode_pcm_buffer(buffer: PcmBuffer) -> bytes:
    return encode_wav(buffer.samples, buffer.sample_rate, buffer.channels)


def read_wav_header(data: bytes) -> WavHeader:
    """Parse and validate the canonical header at the start of `data`."""
    if len(data) < WAV_HEADER_SIZE:
        raise WavFormatError(f"WAV data too short: {len(data)} bytes")

    (
        riff,
        riff_size,
        wave,
        fmt,
        fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        data_id,
        data_length,
    ) = _HEADER_STRUCT.unpack_from(data, 0)

    if riff != b"RIFF" or wave != b"WAVE":
        raise WavFormatError("Missing RIFF/WAVE signature")
    if fmt != b"fmt " or fmt_size != 16:
        raise WavFormatError("Expected a 16-byte 'fmt ' sub-chunk")
    if data_id != b"data":
        raise WavFormatError("Expected 'data' sub-chunk at offset 36")
    if format_tag != PCM_FORMAT_TAG or bits != BITS_PER_SAMPLE:
        raise WavFormatError(f"Unsupported WAV encoding: format={format_tag}, bits={bits}")

    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_length=data_length,
    )


def decode_wav(data: bytes) -> PcmBuffer:
    """Decode a canonical 16-bit WAV back into a float PcmBuffer."""
    header = read_wav_header(data)
    payload = data[WAV_HEADER_SIZE : WAV_HEADER_SIZE + header.data_length]
    if len(payload) != header.data_length:
        raise WavFormatError(f"Truncated WAV payload: expected {header.data_length} bytes, got {len(payload)}")

    ints = np.frombuffer(payload, dtype="<i2").astype(np.float32)
    floats = np.where(ints < 0, ints / 0x8000, ints / 0x7FFF).astype(np.float32)
    if header.channels > 1:
        floats = floats.reshape(-1, header.channels)

    return PcmBuffer(floats, sample_rate=header.sample_rate, channels=header.channels)


def save_wav(buffer: PcmBuffer, file_path: str | Path) -> Path:
    """Write `buffer` to disk, forcing the `.wav` extension."""
    file_path = Path(file_path).with_suffix(".wav")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_bytes(encode_pcm_buffer(buffer))
    return file_path
