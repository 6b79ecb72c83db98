"""Optional inference backends behind a single, lazily initialized context object."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Protocol, TypeVar

import numpy as np

from videoinsight.ai.exceptions import CapabilityUnavailableError
from videoinsight.ai.understanding.transcribe import SpeechResult
from videoinsight.base.audio import PcmBuffer
from videoinsight.base.description import DetectedObject
from videoinsight.base.progress import FractionCallback
from videoinsight.config import (
    ALL_CAPABILITY_IDS,
    OBJECT_DETECTION,
    SPEECH_RECOGNITION,
    TEXT_RECOGNITION,
    AnalysisConfig,
)

__all__ = [
    "OutcomeStatus",
    "Outcome",
    "ObjectDetectionAdapter",
    "TextRecognitionAdapter",
    "SpeechRecognitionAdapter",
    "Capabilities",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOADING_MESSAGES = {
    OBJECT_DETECTION: "Loading object detection model...",
    TEXT_RECOGNITION: "Initializing text recognition...",
    SPEECH_RECOGNITION: "Loading speech recognition model...",
}


class OutcomeStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one capability call: `OK(value) | UNAVAILABLE(reason) | FAILED(reason)`."""

    status: OutcomeStatus
    value: T | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, value: T) -> Outcome[T]:
        return cls(status=OutcomeStatus.OK, value=value)

    @classmethod
    def unavailable(cls, reason: str) -> Outcome[T]:
        return cls(status=OutcomeStatus.UNAVAILABLE, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> Outcome[T]:
        return cls(status=OutcomeStatus.FAILED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    def value_or(self, default: T) -> T:
        if self.status is OutcomeStatus.OK:
            return self.value  # type: ignore[return-value]
        return default


class ObjectDetectionAdapter(Protocol):
    def detect(self, image: np.ndarray) -> list[DetectedObject]: ...


class TextRecognitionAdapter(Protocol):
    def recognize(self, image: np.ndarray) -> str: ...


class SpeechRecognitionAdapter(Protocol):
    def transcribe(self, pcm: PcmBuffer) -> SpeechResult: ...


class Capabilities:
    """Holds the optional object detector, OCR engine and speech recognizer.

    Adapters are constructed at most once, on the first `initialize` call, and
    then shared read-only by every analysis run that uses this object. An
    adapter whose construction fails is recorded as unavailable together with
    the reason; every call against it then returns `Outcome.unavailable`.
    """

    def __init__(self, factories: dict[str, Callable[[], Any]], unavailable: dict[str, str] | None = None) -> None:
        unknown = sorted(set(factories) - set(ALL_CAPABILITY_IDS))
        if unknown:
            raise ValueError(f"Unknown capability ids: {unknown}")
        self._factories = dict(factories)
        self._adapters: dict[str, Any] = {}
        self._failures: dict[str, str] = dict(unavailable or {})
        self._initialized = False
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AnalysisConfig) -> Capabilities:
        """Factories for the local Whisper, YOLO and EasyOCR backends."""
        from videoinsight.ai.understanding import ObjectDetector, SpeechTranscriber, TextRecognizer

        all_factories: dict[str, Callable[[], Any]] = {
            OBJECT_DETECTION: lambda: ObjectDetector(
                model_size=config.detector_model_size,
                confidence_threshold=config.detection_confidence,
                device=config.device,
            ),
            TEXT_RECOGNITION: lambda: TextRecognizer(
                languages=config.ocr_languages,
                confidence_threshold=config.ocr_confidence,
                device=config.device,
            ),
            SPEECH_RECOGNITION: lambda: SpeechTranscriber(
                model_name=config.whisper_model,  # type: ignore[arg-type]
                language=config.language,
                device=config.device,
            ),
        }
        factories = {key: value for key, value in all_factories.items() if key in config.enabled_capabilities}
        disabled = {key: "Disabled in config" for key in ALL_CAPABILITY_IDS if key not in config.enabled_capabilities}
        return cls(factories, unavailable=disabled)

    @classmethod
    def from_adapters(
        cls,
        *,
        object_detector: ObjectDetectionAdapter | None = None,
        text_recognizer: TextRecognitionAdapter | None = None,
        speech_transcriber: SpeechRecognitionAdapter | None = None,
    ) -> Capabilities:
        """Wrap ready-made adapters. Missing ones are reported as not provided."""
        provided = {
            OBJECT_DETECTION: object_detector,
            TEXT_RECOGNITION: text_recognizer,
            SPEECH_RECOGNITION: speech_transcriber,
        }
        capabilities = cls({}, unavailable={key: "Not provided" for key, value in provided.items() if value is None})
        capabilities._adapters = {key: value for key, value in provided.items() if value is not None}
        capabilities._initialized = True
        return capabilities

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, progress: FractionCallback | None = None) -> None:
        """Construct every configured adapter once. Never raises for adapter failures."""
        with self._lock:
            if self._initialized:
                if progress is not None:
                    progress(1.0, "Models already loaded")
                return

            pending = [key for key in ALL_CAPABILITY_IDS if key in self._factories]
            for index, capability in enumerate(pending):
                if progress is not None:
                    progress(index / len(pending), _LOADING_MESSAGES[capability])
                started = time.perf_counter()
                try:
                    self._adapters[capability] = self._factories[capability]()
                except Exception as exc:
                    self._failures[capability] = f"{type(exc).__name__}: {exc}"
                    logger.warning("%s unavailable, continuing without it: %s", capability, exc)
                else:
                    logger.info("%s ready in %.1fs", capability, time.perf_counter() - started)

            self._initialized = True
            if progress is not None:
                progress(1.0, "Models loaded")

    def is_available(self, capability: str) -> bool:
        return capability in self._adapters

    def unavailable_reason(self, capability: str) -> str | None:
        if capability in self._adapters:
            return None
        if not self._initialized and capability in self._factories:
            return "Not initialized"
        return self._failures.get(capability, "Not configured")

    def status(self) -> dict[str, str]:
        """Map each capability id to "available" or the reason it is not."""
        return {
            key: "available" if key in self._adapters else str(self.unavailable_reason(key))
            for key in ALL_CAPABILITY_IDS
        }

    def detect_objects(self, image: np.ndarray) -> Outcome[list[DetectedObject]]:
        return self._call(OBJECT_DETECTION, lambda adapter: list(adapter.detect(image)))

    def recognize_text(self, image: np.ndarray) -> Outcome[str]:
        return self._call(TEXT_RECOGNITION, lambda adapter: str(adapter.recognize(image)).strip())

    def transcribe(self, pcm: PcmBuffer) -> Outcome[SpeechResult]:
        return self._call(SPEECH_RECOGNITION, lambda adapter: adapter.transcribe(pcm))

    def require(self, capability: str) -> Any:
        """Return the adapter for `capability`.

        Raises:
            CapabilityUnavailableError: If the adapter was not loaded.
        """
        adapter = self._adapters.get(capability)
        if adapter is None:
            raise CapabilityUnavailableError(capability, self.unavailable_reason(capability) or "Not configured")
        return adapter

    def _call(self, capability: str, func: Callable[[Any], T]) -> Outcome[T]:
        try:
            adapter = self.require(capability)
        except CapabilityUnavailableError as e:
            return Outcome.unavailable(e.reason)
        try:
            return Outcome.ok(func(adapter))
        except Exception as exc:
            logger.warning("%s call failed: %s", capability, exc)
            return Outcome.failed(f"{type(exc).__name__}: {exc}")
