from __future__ import annotations

import io
import logging
import subprocess
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

import numpy as np

from videoinsight.base.audio.pcm import PcmBuffer
from videoinsight.base.audio.wav import save_wav
from videoinsight.base.exceptions import (
    AudioAcquisitionError,
    AudioDecodeError,
    MediaSourceError,
    VideoMetadataError,
)
from videoinsight.base.media import MediaSource, VideoMetadata
from videoinsight.base.progress import FractionCallback

__all__ = [
    "TARGET_SAMPLE_RATE",
    "AudioAcquisitionResult",
    "AudioDecoder",
    "FFmpegPipeDecoder",
    "FFmpegFileDecoder",
    "AudioAcquirer",
]

logger = logging.getLogger(__name__)

# Input rate expected by Whisper
TARGET_SAMPLE_RATE = 16_000


@dataclass
class AudioAcquisitionResult:
    """Mono 16 kHz audio ready for transcription.

    Attributes:
        samples: Mono PCM at `TARGET_SAMPLE_RATE`, at most `budget_seconds` long
        duration: Seconds of audio actually held in `samples`
        original_duration: Full length of the source audio in seconds
        truncated: True if the source was longer than the budget
        placeholder: True if no decoder succeeded and `samples` is zero-filled
        warning: Human readable note explaining a degraded result
    """

    samples: PcmBuffer
    duration: float
    original_duration: float
    truncated: bool
    placeholder: bool = False
    warning: str | None = None


class AudioDecoder(Protocol):
    """Decodes the audio track of a source at its native rate and channel count."""

    name: str

    def decode(self, source: MediaSource) -> PcmBuffer:
        """Raises AudioDecodeError when the container or codec cannot be handled."""
        ...


class _FFmpegDecoder:
    name = "ffmpeg"

    def __init__(self, ffmpeg_binary: str = "ffmpeg", timeout: float | None = 600.0) -> None:
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout = timeout

    def _command(self, input_arg: str) -> list[str]:
        return [
            self.ffmpeg_binary,
            "-hide_banner",
            "-loglevel",
            "error",
            "-i",
            input_arg,
            "-vn",
            "-map_metadata",
            "-1",
            "-f",
            "wav",
            "-acodec",
            "pcm_s16le",
            "pipe:1",
        ]

    def _run(self, cmd: list[str], stdin_data: bytes | None) -> bytes:
        try:
            process = subprocess.run(cmd, input=stdin_data, capture_output=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise AudioDecodeError(f"{self.ffmpeg_binary} is not installed: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise AudioDecodeError(f"{self.name} timed out after {self.timeout}s") from e

        if process.returncode != 0:
            raise AudioDecodeError(f"FFmpeg error: {process.stderr.decode(errors='replace').strip()}")
        if not process.stdout:
            raise AudioDecodeError("FFmpeg produced no audio output")
        return process.stdout

    @staticmethod
    def _parse_wav(wav_data: bytes) -> PcmBuffer:
        try:
            with io.BytesIO(wav_data) as wav_io:
                with wave.open(wav_io, "rb") as wav_file:
                    sample_width = wav_file.getsampwidth()
                    channels = wav_file.getnchannels()
                    sample_rate = wav_file.getframerate()
                    raw_data = wav_file.readframes(wav_file.getnframes())
        except (wave.Error, EOFError) as e:
            raise AudioDecodeError(f"Decoder output is not valid WAV: {e}") from e

        if sample_width != 2:
            raise AudioDecodeError(f"Unsupported sample width: {sample_width}")

        data = np.frombuffer(raw_data, dtype="<i2")
        # Drop a trailing partial frame, if any
        data = data[: (len(data) // channels) * channels]
        data = data.astype(np.float32) / float(np.iinfo(np.int16).max)
        data = np.clip(data, -1.0, 1.0)
        if channels > 1:
            data = data.reshape(-1, channels)

        return PcmBuffer(data, sample_rate=sample_rate, channels=channels)


class FFmpegPipeDecoder(_FFmpegDecoder):
    """Streams the source bytes into ffmpeg through stdin."""

    name = "ffmpeg-pipe"

    def decode(self, source: MediaSource) -> PcmBuffer:
        data = source.read_bytes()
        return self._parse_wav(self._run(self._command("pipe:0"), data))


class FFmpegFileDecoder(_FFmpegDecoder):
    """Decodes from a seekable file.

    Handles containers whose index sits at the end of the file (e.g. MP4
    without faststart), which cannot be parsed from a pipe.
    """

    name = "ffmpeg-file"

    def decode(self, source: MediaSource) -> PcmBuffer:
        with source.materialize() as path:
            return self._parse_wav(self._run(self._command(str(path)), None))


class AudioAcquirer:
    """Turns a video's audio track into a bounded mono 16 kHz buffer.

    Decoders are tried in order. If all of them fail, a zero-filled placeholder
    of the expected length is returned with a warning instead of an error.
    """

    def __init__(
        self,
        decoders: Sequence[AudioDecoder] | None = None,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
    ) -> None:
        self.decoders: list[AudioDecoder] = (
            list(decoders) if decoders is not None else [FFmpegPipeDecoder(), FFmpegFileDecoder()]
        )
        self.target_sample_rate = target_sample_rate

    def acquire(
        self,
        source: MediaSource,
        budget_seconds: float,
        progress: FractionCallback | None = None,
    ) -> AudioAcquisitionResult:
        """
        Decode, downmix, resample and truncate the audio of `source`

        Args:
            source: Video to read audio from
            budget_seconds: Maximum seconds of audio to keep
            progress: Optional callback receiving (fraction in [0, 1], message)

        Returns:
            AudioAcquisitionResult

        Raises:
            AudioAcquisitionError: If the source bytes cannot be read at all
        """
        if budget_seconds <= 0:
            raise ValueError("budget_seconds must be positive")

        def report(fraction: float, message: str) -> None:
            if progress is not None:
                progress(fraction, message)

        report(0.0, "Reading video data...")
        try:
            native = self._decode(source, report)
        except MediaSourceError as e:
            raise AudioAcquisitionError(f"Cannot read audio from {source.name}: {e}") from e

        if native is None:
            result = self._placeholder(source, budget_seconds)
            report(1.0, "Audio extraction degraded")
            return result

        report(0.5, "Converting audio to mono 16 kHz...")
        original_duration = native.duration_seconds
        mono = native.to_mono().resample(self.target_sample_rate)

        max_samples = int(round(budget_seconds * self.target_sample_rate))
        truncated = original_duration > budget_seconds
        if len(mono) > max_samples:
            logger.info(
                "Audio of %s is %.1fs long, keeping the first %.1fs", source.name, original_duration, budget_seconds
            )
            mono = mono.truncate(max_samples)
            report(1.0, f"Audio extraction complete (first {budget_seconds:g} seconds)")
        else:
            report(1.0, "Audio extraction complete")

        return AudioAcquisitionResult(
            samples=mono,
            duration=min(original_duration, budget_seconds),
            original_duration=original_duration,
            truncated=truncated,
        )

    def export_wav(self, source: MediaSource, file_path: str | Path) -> Path:
        """Write the full native-rate audio of `source` as a `.wav` file.

        Raises:
            AudioDecodeError: If no decoder can read the audio track
            AudioAcquisitionError: If the source bytes cannot be read
        """
        try:
            native = self._decode(source, None)
        except MediaSourceError as e:
            raise AudioAcquisitionError(f"Cannot read audio from {source.name}: {e}") from e
        if native is None:
            raise AudioDecodeError(f"No decoder could read the audio track of {source.name}")
        path = save_wav(native, file_path)
        logger.info("Audio exported: %s (%.1f KB)", path.name, path.stat().st_size / 1024)
        return path

    def _decode(self, source: MediaSource, report: FractionCallback | None) -> PcmBuffer | None:
        for index, decoder in enumerate(self.decoders):
            if report is not None:
                message = "Decoding audio track..." if index == 0 else "Using fallback audio decoder..."
                report(0.2, message)
            try:
                buffer = decoder.decode(source)
            except AudioDecodeError as e:
                logger.warning("Audio decoder %s failed for %s: %s", decoder.name, source.name, e)
                continue
            logger.debug("Audio decoded by %s: %r", decoder.name, buffer)
            return buffer
        return None

    def _placeholder(self, source: MediaSource, budget_seconds: float) -> AudioAcquisitionResult:
        duration = source.duration
        if duration is None:
            try:
                duration = VideoMetadata.from_source(source).total_seconds
            except (VideoMetadataError, MediaSourceError, FileNotFoundError) as e:
                logger.warning("Could not determine duration of %s: %s", source.name, e)
                duration = 0.0

        kept = min(duration, budget_seconds)
        warning = f"No audio could be decoded from {source.name}; substituted {kept:.1f}s of silence"
        if duration > budget_seconds:
            warning += f" (video is {duration:.1f}s long, audio extraction is limited to {budget_seconds:g}s)"
        logger.warning(warning)

        return AudioAcquisitionResult(
            samples=PcmBuffer.silence(int(self.target_sample_rate * kept), self.target_sample_rate),
            duration=kept,
            original_duration=duration,
            truncated=duration > budget_seconds,
            placeholder=True,
            warning=warning,
        )
