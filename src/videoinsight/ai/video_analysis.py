from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Any

from videoinsight.ai.capabilities import Capabilities, OutcomeStatus
from videoinsight.base.audio import AudioAcquirer, AudioAcquisitionResult
from videoinsight.base.description import DetectedObject
from videoinsight.base.exceptions import KeyframeExtractionError
from videoinsight.base.keyframes import Keyframe, KeyframeSampler
from videoinsight.base.media import MediaSource
from videoinsight.base.progress import ProgressCallback, ProgressReporter, progress_iter
from videoinsight.base.text import TranscriptionResult
from videoinsight.config import AnalysisConfig

__all__ = ["AnalysisStage", "FrameAnnotation", "AnalysisReport", "VideoAnalyzer"]

logger = logging.getLogger(__name__)

NO_SPEECH_TEXT = "[No speech recognized]"

_DATA_URL_PREFIX = "data:image/jpeg;base64,"

# Percent ranges of the overall run owned by each stage.
_INIT_BAND = (0, 55)
_FRAMES_BAND = (55, 60)
_ANNOTATE_BAND = (60, 80)
_AUDIO_BAND = (80, 90)
_ASR_BAND = (90, 100)


class AnalysisStage(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    EXTRACTING_FRAMES = "extracting_frames"
    ANNOTATING_FRAMES = "annotating_frames"
    TRANSCRIBING = "transcribing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class FrameAnnotation:
    """One keyframe with whatever the image analyzers found in it."""

    timestamp: float
    image: bytes = field(repr=False)
    objects: list[DetectedObject] = field(default_factory=list)
    text: str = ""

    def image_data_url(self) -> str:
        return _DATA_URL_PREFIX + base64.b64encode(self.image).decode("ascii")

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "image": self.image_data_url(),
            "objects": [item.to_dict() for item in self.objects],
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrameAnnotation:
        return cls(
            timestamp=float(data["timestamp"]),
            image=_decode_data_url(data.get("image", "")),
            objects=[DetectedObject.from_dict(item) for item in data.get("objects", [])],
            text=str(data.get("text", "")),
        )


@dataclass
class AnalysisReport:
    """Serializable result of one analysis run."""

    filename: str
    filesize: int
    timestamp: str
    transcription: TranscriptionResult
    keyframes: list[FrameAnnotation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "filesize": self.filesize,
            "timestamp": self.timestamp,
            "transcription": self.transcription.to_dict(),
            "keyframes": [item.to_dict() for item in self.keyframes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisReport:
        return cls(
            filename=str(data["filename"]),
            filesize=int(data["filesize"]),
            timestamp=str(data["timestamp"]),
            transcription=TranscriptionResult.from_dict(data["transcription"]),
            keyframes=[FrameAnnotation.from_dict(item) for item in data.get("keyframes", [])],
        )

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_json(cls, text: str) -> AnalysisReport:
        return cls.from_dict(json.loads(text))

    def save(self, path: str | Path, *, indent: int | None = 2) -> None:
        path_obj = Path(path)
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        path_obj.write_text(self.to_json(indent=indent), encoding="utf-8")

    @classmethod
    def load(cls, path: str | Path) -> AnalysisReport:
        return cls.from_json(Path(path).read_text(encoding="utf-8"))


class VideoAnalyzer:
    """Runs keyframe annotation and speech transcription over one video at a time.

    The analyzer owns a `Capabilities` object whose models are loaded on the
    first run and reused afterwards. Missing or failing models degrade the
    report (empty objects, empty text, a bracketed transcript diagnostic);
    only an unreadable source, keyframe extraction failure or unreadable
    audio input abort the run.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        capabilities: Capabilities | None = None,
        sampler: KeyframeSampler | None = None,
        acquirer: AudioAcquirer | None = None,
    ):
        self.config = config or AnalysisConfig()
        self.capabilities = capabilities or Capabilities.from_config(self.config)
        self.sampler = sampler or KeyframeSampler(jpeg_quality=self.config.jpeg_quality)
        self.acquirer = acquirer or AudioAcquirer()
        self.stage = AnalysisStage.IDLE
        self._run_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    def analyze_path(self, path: str | Path, on_progress: ProgressCallback | None = None) -> AnalysisReport:
        """Analyze a video file on disk."""
        return self.analyze(Path(path), on_progress=on_progress)

    def analyze(
        self,
        source: MediaSource | str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisReport:
        """Analyze `source` and build the report.

        Args:
            source: Video to analyze, or a path to one.
            on_progress: Called with `(percent, message)`; percent never decreases and 100 is sent once, last.

        Returns:
            AnalysisReport with annotated keyframes and the transcription.

        Raises:
            MediaSourceError: If `source` is a path that cannot be read.
            KeyframeExtractionError: If the video cannot be opened or sampled.
            AudioAcquisitionError: If the audio input bytes cannot be read.
        """
        with self._run_lock:
            reporter = ProgressReporter(on_progress)
            name = source.name if isinstance(source, MediaSource) else Path(source).name
            started = time.perf_counter()
            try:
                if not isinstance(source, MediaSource):
                    source = MediaSource.from_path(source)
                with source.on_disk() as local:
                    report = self._analyze(local, reporter)
            except Exception as exc:
                self.stage = AnalysisStage.FAILED
                reporter.fail(f"Analysis failed: {exc}")
                logger.exception("Analysis of %s failed", name)
                raise

            self.stage = AnalysisStage.DONE
            reporter.finish("Analysis complete")
            logger.info("Analyzed %s in %.1fs", name, time.perf_counter() - started)
            return report

    def analyze_async(
        self,
        source: MediaSource | str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> Future[AnalysisReport]:
        """Run `analyze` on a worker thread. Runs submitted to one analyzer execute one after another."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="videoinsight")
        return self._executor.submit(self.analyze, source, on_progress)

    def export_audio(self, source: MediaSource | str | Path, path: str | Path) -> Path:
        """Write the full native-rate audio of `source` to a `.wav` file."""
        if not isinstance(source, MediaSource):
            source = MediaSource.from_path(source)
        return self.acquirer.export_wav(source, path)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> VideoAnalyzer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def _analyze(self, source: MediaSource, reporter: ProgressReporter) -> AnalysisReport:
        self.stage = AnalysisStage.INITIALIZING
        init_band = reporter.band(*_INIT_BAND)
        init_band.enter("Initializing models...")
        self.capabilities.initialize(progress=init_band)
        logger.debug("Capabilities: %s", self.capabilities.status())

        self.stage = AnalysisStage.EXTRACTING_FRAMES
        frames_band = reporter.band(*_FRAMES_BAND)
        frames_band.enter("Extracting keyframes...")
        if source.duration is None:
            source = source.with_duration(self.sampler.probe_duration(source))
        keyframes = self.sampler.sample(source, self.config.keyframe_count, progress=frames_band)

        self.stage = AnalysisStage.ANNOTATING_FRAMES
        annotations = self._annotate_keyframes(keyframes, reporter)

        self.stage = AnalysisStage.TRANSCRIBING
        transcription = self._transcribe(source, reporter)

        return AnalysisReport(
            filename=source.name,
            filesize=source.size,
            timestamp=_utc_now_iso(),
            transcription=transcription,
            keyframes=annotations,
        )

    def _annotate_keyframes(self, keyframes: list[Keyframe], reporter: ProgressReporter) -> list[FrameAnnotation]:
        band = reporter.band(*_ANNOTATE_BAND)
        total = len(keyframes)
        annotations: list[FrameAnnotation] = []

        for index, keyframe in enumerate(progress_iter(keyframes, desc="Annotating keyframes", total=total)):
            band.update(index / total, f"Analyzing frame {index + 1}/{total}...")
            annotations.append(self._annotate_keyframe(keyframe))

        band.complete("Frame analysis complete")
        return annotations

    def _annotate_keyframe(self, keyframe: Keyframe) -> FrameAnnotation:
        annotation = FrameAnnotation(timestamp=keyframe.timestamp, image=keyframe.image)
        try:
            pixels = keyframe.pixels()
        except KeyframeExtractionError as exc:
            logger.warning("Skipping analyzers for frame at %.2fs: %s", keyframe.timestamp, exc)
            return annotation

        detection = self.capabilities.detect_objects(pixels)
        if detection.status is OutcomeStatus.FAILED:
            logger.warning("Object detection failed at %.2fs: %s", keyframe.timestamp, detection.reason)
        annotation.objects = detection.value_or([])

        recognition = self.capabilities.recognize_text(pixels)
        if recognition.status is OutcomeStatus.FAILED:
            logger.warning("Text recognition failed at %.2fs: %s", keyframe.timestamp, recognition.reason)
        annotation.text = recognition.value_or("")
        return annotation

    def _transcribe(self, source: MediaSource, reporter: ProgressReporter) -> TranscriptionResult:
        audio_band = reporter.band(*_AUDIO_BAND)
        audio_band.enter("Extracting audio...")
        audio = self.acquirer.acquire(source, self.config.audio_budget_seconds, progress=audio_band)

        if audio.placeholder:
            logger.warning("Skipping speech recognition, no audio decoded: %s", audio.warning)
            return TranscriptionResult(
                text=f"[Audio could not be decoded: {audio.warning}]",
                duration=audio.original_duration,
                warning=audio.warning,
                truncated=audio.truncated,
            )

        asr_band = reporter.band(*_ASR_BAND)
        asr_band.enter("Transcribing speech...")
        outcome = self.capabilities.transcribe(audio.samples)
        if outcome.status is OutcomeStatus.UNAVAILABLE:
            return _failed_transcription(f"speech recognition unavailable ({outcome.reason})", audio)
        if outcome.status is OutcomeStatus.FAILED or outcome.value is None:
            return _failed_transcription(outcome.reason or "no result", audio)

        speech = outcome.value
        text = speech.text.strip() or NO_SPEECH_TEXT
        if audio.truncated:
            text = _with_truncation_note(text, audio)
        asr_band.complete("Transcription complete")

        return TranscriptionResult(
            text=text,
            duration=audio.original_duration,
            chunks=list(speech.chunks),
            language=speech.language,
            truncated=audio.truncated,
        )


def _with_truncation_note(text: str, audio: AudioAcquisitionResult) -> str:
    return (
        f"[Transcribed only the first {audio.duration:g} seconds; "
        f"the original video is {audio.original_duration:.1f} seconds long]\n\n"
        f"{text}\n\n"
        "[Note: transcribing the full audio requires server-side processing or a dedicated tool]"
    )


def _failed_transcription(reason: str, audio: AudioAcquisitionResult) -> TranscriptionResult:
    result = TranscriptionResult.failed(reason)
    if audio.truncated:
        result.text = _with_truncation_note(result.text, audio)
        result.truncated = True
    return result


def _decode_data_url(value: str) -> bytes:
    payload = value.split(",", 1)[1] if value.startswith("data:") else value
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid keyframe image payload: {e}") from e


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
