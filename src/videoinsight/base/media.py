from __future__ import annotations

import dataclasses
import json
import logging
import os
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Iterator

from videoinsight.base.exceptions import MediaSourceError, VideoMetadataError

__all__ = ["MediaSource", "VideoMetadata"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaSource:
    """Immutable handle to one input video.

    Either `path` or `data` carries the content. `duration` stays ``None`` until
    it has been probed; use `with_duration` to get an updated copy.
    """

    name: str
    size: int
    path: Path | None = None
    data: bytes | None = field(default=None, repr=False)
    duration: float | None = None

    def __post_init__(self) -> None:
        if self.path is None and self.data is None:
            raise ValueError("MediaSource needs either `path` or `data`")
        if self.size < 0:
            raise ValueError("size must be non-negative")

    @classmethod
    def from_path(cls, path: str | Path) -> MediaSource:
        """Create a source backed by a file on disk."""
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise MediaSourceError(f"Cannot read video file {path}: {e}") from e
        if not path.is_file():
            raise MediaSourceError(f"Not a regular file: {path}")
        return cls(name=path.name, size=size, path=path)

    @classmethod
    def from_bytes(cls, data: bytes, name: str) -> MediaSource:
        """Create a source from an in-memory upload."""
        return cls(name=name, size=len(data), data=bytes(data))

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix or ".mp4"

    def with_duration(self, duration: float) -> MediaSource:
        return dataclasses.replace(self, duration=duration)

    def read_bytes(self) -> bytes:
        """Return the full byte content.

        Raises:
            MediaSourceError: If the backing file can no longer be read.
        """
        if self.data is not None:
            return self.data
        assert self.path is not None
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise MediaSourceError(f"Cannot read video file {self.path}: {e}") from e

    @contextmanager
    def materialize(self) -> Iterator[Path]:
        """Yield a seekable filesystem path holding the content.

        File-backed sources yield their own path. In-memory sources are spilled
        to a temporary file that is removed on exit.
        """
        if self.path is not None:
            if not self.path.is_file():
                raise MediaSourceError(f"Video file disappeared: {self.path}")
            yield self.path
            return

        fd, tmp_name = tempfile.mkstemp(suffix=self.suffix, prefix="videoinsight_")
        tmp_path = Path(tmp_name)
        try:
            try:
                with os.fdopen(fd, "wb") as tmp_file:
                    tmp_file.write(self.read_bytes())
            except OSError as e:
                raise MediaSourceError(f"Cannot spill {self.name} to a temporary file: {e}") from e
            yield tmp_path
        finally:
            tmp_path.unlink(missing_ok=True)

    @contextmanager
    def on_disk(self) -> Iterator[MediaSource]:
        """Yield a file-backed copy of this source, spilling in-memory content once.

        Name, size and duration are kept, so later `materialize()` calls on the
        yielded source reuse the same file instead of writing new ones.
        """
        if self.path is not None:
            yield self
            return
        with self.materialize() as path:
            yield dataclasses.replace(self, path=path, data=None)


@dataclass
class VideoMetadata:
    """Class to store video metadata."""

    height: int
    width: int
    fps: float
    frame_count: int
    total_seconds: float
    has_audio: bool = True

    def __str__(self) -> str:
        return f"{self.width}x{self.height} @ {self.fps}fps, {self.total_seconds} seconds"

    def __repr__(self) -> str:
        return self.__str__()

    @staticmethod
    def _run_ffprobe(video_path: str | Path) -> dict:
        """Run ffprobe and return parsed JSON output."""
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-show_entries",
            "stream=codec_type,width,height,r_frame_rate,nb_frames",
            "-show_entries",
            "format=duration",
            "-print_format",
            "json",
            str(video_path),
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
            return json.loads(result.stdout)
        except FileNotFoundError as e:
            raise VideoMetadataError(f"ffprobe is not installed: {e}")
        except subprocess.CalledProcessError as e:
            raise VideoMetadataError(f"FFprobe error: {e.stderr}")
        except json.JSONDecodeError as e:
            raise VideoMetadataError(f"Error parsing FFprobe output: {e}")

    @classmethod
    def from_path(cls, video_path: str | Path) -> VideoMetadata:
        """Creates VideoMetadata object from video file using ffprobe."""
        if not Path(video_path).exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")

        probe_data = cls._run_ffprobe(video_path)

        try:
            streams = probe_data.get("streams", [])
            video_streams = [s for s in streams if s.get("codec_type") == "video"]
            if not video_streams:
                raise VideoMetadataError("No video stream found")
            stream_info = video_streams[0]

            width = int(stream_info["width"])
            height = int(stream_info["height"])

            try:
                fps = float(Fraction(stream_info["r_frame_rate"]))
            except (ValueError, ZeroDivisionError):
                raise VideoMetadataError(f"Invalid frame rate: {stream_info['r_frame_rate']}")

            duration = float(probe_data["format"]["duration"])
            if "nb_frames" in stream_info and str(stream_info["nb_frames"]).isdigit():
                frame_count = int(stream_info["nb_frames"])
            else:
                frame_count = int(round(duration * fps))

            has_audio = any(s.get("codec_type") == "audio" for s in streams)

            return cls(
                height=height,
                width=width,
                fps=fps,
                frame_count=frame_count,
                total_seconds=duration,
                has_audio=has_audio,
            )

        except VideoMetadataError:
            raise
        except KeyError as e:
            raise VideoMetadataError(f"Missing required metadata field: {e}")
        except (TypeError, ValueError) as e:
            raise VideoMetadataError(f"Error extracting video metadata: {e}")

    @classmethod
    def from_source(cls, source: MediaSource) -> VideoMetadata:
        with source.materialize() as path:
            metadata = cls.from_path(path)
        logger.debug("Probed %s: %s", source.name, metadata)
        return metadata
