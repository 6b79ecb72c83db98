"""Configuration loader for videoinsight."""

from __future__ import annotations

import tomllib
import warnings
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any

OBJECT_DETECTION = "object_detection"
TEXT_RECOGNITION = "text_recognition"
SPEECH_RECOGNITION = "speech_recognition"

ALL_CAPABILITY_IDS: tuple[str, ...] = (OBJECT_DETECTION, TEXT_RECOGNITION, SPEECH_RECOGNITION)

WHISPER_MODELS = {"tiny", "base", "small", "medium", "large", "turbo"}
YOLO_SIZES = {"n", "s", "m", "l", "x"}


@dataclass
class AnalysisConfig:
    """Execution plan for one `VideoAnalyzer`."""

    keyframe_count: int = 6
    audio_budget_seconds: float = 30.0
    jpeg_quality: int = 85
    whisper_model: str = "tiny"
    language: str | None = None
    detector_model_size: str = "n"
    detection_confidence: float = 0.25
    ocr_languages: list[str] = field(default_factory=lambda: ["ch_sim", "en"])
    ocr_confidence: float = 0.0
    device: str | None = None
    enabled_capabilities: set[str] = field(default_factory=lambda: set(ALL_CAPABILITY_IDS))

    def __post_init__(self) -> None:
        unknown = sorted(set(self.enabled_capabilities) - set(ALL_CAPABILITY_IDS))
        if unknown:
            raise ValueError(f"Unknown capability ids in enabled_capabilities: {unknown}")
        if self.keyframe_count < 1:
            raise ValueError("keyframe_count must be >= 1")
        if self.audio_budget_seconds <= 0:
            raise ValueError("audio_budget_seconds must be > 0")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")
        if self.whisper_model not in WHISPER_MODELS:
            raise ValueError(f"whisper_model must be one of: {', '.join(sorted(WHISPER_MODELS))}")
        if self.detector_model_size not in YOLO_SIZES:
            raise ValueError(f"detector_model_size must be one of: {', '.join(sorted(YOLO_SIZES))}")
        if not 0.0 <= self.detection_confidence <= 1.0:
            raise ValueError("detection_confidence must be between 0.0 and 1.0")
        if not 0.0 <= self.ocr_confidence <= 1.0:
            raise ValueError("ocr_confidence must be between 0.0 and 1.0")
        if not self.ocr_languages:
            raise ValueError("ocr_languages must not be empty")
        if self.device is not None and self.device.lower() not in {"auto", "cpu", "cuda", "mps"}:
            raise ValueError("device must be one of: auto, cpu, cuda, mps")

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyframe_count": self.keyframe_count,
            "audio_budget_seconds": self.audio_budget_seconds,
            "jpeg_quality": self.jpeg_quality,
            "whisper_model": self.whisper_model,
            "language": self.language,
            "detector_model_size": self.detector_model_size,
            "detection_confidence": self.detection_confidence,
            "ocr_languages": list(self.ocr_languages),
            "ocr_confidence": self.ocr_confidence,
            "device": self.device,
            "enabled_capabilities": sorted(self.enabled_capabilities),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            warnings.warn(f"Ignoring unknown videoinsight config keys: {unknown}", RuntimeWarning)

        kwargs = {key: value for key, value in data.items() if key in known}
        if "enabled_capabilities" in kwargs:
            kwargs["enabled_capabilities"] = set(kwargs["enabled_capabilities"])
        if "ocr_languages" in kwargs:
            kwargs["ocr_languages"] = list(kwargs["ocr_languages"])
        return cls(**kwargs)

    @classmethod
    def load(cls) -> AnalysisConfig:
        """Build a config from the nearest config file, falling back to defaults."""
        return cls.from_dict(get_config())


def _find_config_file() -> Path | None:
    """Find the configuration file in the current directory.

    Looks for:
    1. videoinsight.toml
    2. pyproject.toml

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd = Path.cwd()

    videoinsight_toml = cwd / "videoinsight.toml"
    if videoinsight_toml.exists():
        return videoinsight_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.exists():
        return pyproject_toml

    return None


def _load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _extract_config(data: dict[str, Any], filename: str) -> dict[str, Any]:
    """Extract the videoinsight section from parsed TOML data."""
    if filename == "videoinsight.toml":
        return data
    elif filename == "pyproject.toml":
        return data.get("tool", {}).get("videoinsight", {})
    return {}


@lru_cache(maxsize=1)
def _get_cached_config() -> dict[str, Any]:
    config_path = _find_config_file()
    if config_path is None:
        return {}

    try:
        data = _load_toml(config_path)
        return _extract_config(data, config_path.name)
    except tomllib.TOMLDecodeError as e:
        warnings.warn(f"Invalid TOML in config file {config_path}: {e}", RuntimeWarning)
        return {}
    except OSError as e:
        warnings.warn(f"Cannot read config file {config_path}: {e}", RuntimeWarning)
        return {}


def get_config() -> dict[str, Any]:
    """Get the raw configuration dictionary (cached)."""
    return dict(_get_cached_config())


def clear_config_cache() -> None:
    """Clear the configuration cache. Useful for testing."""
    _get_cached_config.cache_clear()
