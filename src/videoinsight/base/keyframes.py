"""Deterministic keyframe sampling with a single, sequentially seeked decoder."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

import cv2
import numpy as np

from videoinsight.base.exceptions import KeyframeExtractionError, MediaSourceError, VideoMetadataError
from videoinsight.base.media import MediaSource, VideoMetadata
from videoinsight.base.progress import FractionCallback, progress_iter

__all__ = ["Keyframe", "FrameDecoder", "KeyframeSampler", "keyframe_timestamps", "DEFAULT_JPEG_QUALITY"]

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 85


@dataclass
class Keyframe:
    """A still captured at `timestamp` seconds.

    Attributes:
        timestamp: Position in the video in seconds
        image: JPEG-encoded frame at native resolution
        width: Frame width in pixels
        height: Frame height in pixels
        frame: Decoded RGB pixels (H, W, 3), handed to image analyzers
    """

    timestamp: float
    image: bytes = field(repr=False)
    width: int
    height: int
    frame: np.ndarray | None = field(default=None, repr=False, compare=False)

    def to_data_url(self) -> str:
        return "data:image/jpeg;base64," + base64.b64encode(self.image).decode("ascii")

    def pixels(self) -> np.ndarray:
        """RGB pixels, decoded from `image` when `frame` was not kept."""
        if self.frame is not None:
            return self.frame
        decoded = cv2.imdecode(np.frombuffer(self.image, dtype=np.uint8), cv2.IMREAD_COLOR)
        if decoded is None:
            raise KeyframeExtractionError(f"Cannot decode keyframe image at {self.timestamp:.2f}s")
        return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGB)


def keyframe_timestamps(duration: float, count: int) -> list[float]:
    """
    Evenly spaced interior timestamps

    `duration / (count + 1) * i` for `i = 1..count`, so neither the first nor
    the last instant of the video is sampled.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    if duration <= 0:
        raise ValueError("duration must be positive")
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


class FrameDecoder:
    """Owned, single-consumer OpenCV decoder with an explicit `seek(t) -> frame`.

    Seeking changes shared decoder state, so one instance must never be used
    from more than one caller at a time.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._capture = cv2.VideoCapture(str(self.path))
        if not self._capture.isOpened():
            self._capture.release()
            raise KeyframeExtractionError(f"OpenCV could not open video: {self.path.name}")

    @property
    def fps(self) -> float:
        return float(self._capture.get(cv2.CAP_PROP_FPS))

    @property
    def frame_count(self) -> int:
        return int(self._capture.get(cv2.CAP_PROP_FRAME_COUNT))

    @property
    def duration(self) -> float:
        fps = self.fps
        return self.frame_count / fps if fps > 0 else 0.0

    def seek(self, timestamp: float) -> np.ndarray:
        """Seek to `timestamp` seconds and return the displayed frame as RGB."""
        self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
        ok, frame = self._capture.read()
        if not ok or frame is None:
            # Some containers ignore millisecond seeks, retry by frame index
            fps = self.fps
            if fps > 0:
                self._capture.set(cv2.CAP_PROP_POS_FRAMES, int(timestamp * fps))
                ok, frame = self._capture.read()
        if not ok or frame is None:
            raise KeyframeExtractionError(f"Could not capture a frame at {timestamp:.3f}s in {self.path.name}")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        self._capture.release()

    def __enter__(self) -> FrameDecoder:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def encode_jpeg(frame: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Encode an RGB frame as JPEG, keeping its native dimensions."""
    ok, buffer = cv2.imencode(".jpg", cv2.cvtColor(frame, cv2.COLOR_RGB2BGR), [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise KeyframeExtractionError("JPEG encoding failed")
    return buffer.tobytes()


class KeyframeSampler:
    """Captures `count` evenly spaced stills from a video."""

    def __init__(self, jpeg_quality: int = DEFAULT_JPEG_QUALITY, decoder_cls: type[FrameDecoder] = FrameDecoder):
        if not 1 <= jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")
        self.jpeg_quality = jpeg_quality
        self.decoder_cls = decoder_cls

    def probe_duration(self, source: MediaSource) -> float:
        """Open the source once just to read its duration."""
        try:
            with source.materialize() as path, self.decoder_cls(path) as decoder:
                return self._duration(path, decoder)
        except MediaSourceError as e:
            raise KeyframeExtractionError(f"Cannot open {source.name}: {e}") from e

    @staticmethod
    def _duration(path: Path, decoder: FrameDecoder) -> float:
        """Container duration from ffprobe, or OpenCV's frame count over fps when ffprobe fails."""
        try:
            duration = VideoMetadata.from_path(path).total_seconds
        except (VideoMetadataError, FileNotFoundError) as e:
            logger.debug("ffprobe could not read the duration of %s, using OpenCV: %s", path.name, e)
            return decoder.duration
        if duration > 0:
            return duration
        return decoder.duration

    def sample(
        self,
        source: MediaSource,
        count: int,
        progress: FractionCallback | None = None,
    ) -> list[Keyframe]:
        """
        Capture `count` keyframes from `source`

        Args:
            source: Video to sample. Its `duration` is used when already known
            count: Number of keyframes, at least 1
            progress: Optional callback receiving (fraction in [0, 1], message)

        Returns:
            Keyframes in strictly increasing timestamp order

        Raises:
            KeyframeExtractionError: If the video cannot be opened or a frame cannot be captured
        """
        if count < 1:
            raise ValueError("count must be >= 1")

        try:
            with source.materialize() as path, self.decoder_cls(path) as decoder:
                duration = source.duration if source.duration else self._duration(path, decoder)
                if duration <= 0:
                    raise KeyframeExtractionError(f"Video has zero duration: {source.name}")

                timestamps = keyframe_timestamps(duration, count)
                logger.info("Sampling %d keyframes from %s (%.2fs)", count, source.name, duration)

                keyframes: list[Keyframe] = []
                for index, timestamp in enumerate(progress_iter(timestamps, desc="Capturing keyframes", total=count)):
                    frame = decoder.seek(timestamp)
                    height, width = frame.shape[:2]
                    keyframes.append(
                        Keyframe(
                            timestamp=timestamp,
                            image=encode_jpeg(frame, self.jpeg_quality),
                            width=width,
                            height=height,
                            frame=frame,
                        )
                    )
                    if progress is not None:
                        progress((index + 1) / count, f"Captured keyframe {index + 1}/{count}")
        except MediaSourceError as e:
            raise KeyframeExtractionError(f"Cannot open {source.name}: {e}") from e

        return keyframes
