from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TranscriptionChunk:
    text: str
    start: float
    end: float | None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptionChunk:
        end = data.get("end")
        return cls(text=data["text"], start=float(data["start"]), end=float(end) if end is not None else None)


@dataclass
class TranscriptionResult:
    """Transcript of a video's audio.

    A set `error` means the transcript is degraded rather than missing: `text`
    then carries a bracketed diagnostic instead of speech. `warning` marks
    results built from placeholder audio.
    """

    text: str
    duration: float
    chunks: list[TranscriptionChunk] = field(default_factory=list)
    language: str | None = None
    error: str | None = None
    warning: str | None = None
    truncated: bool = False

    @property
    def degraded(self) -> bool:
        return self.error is not None or self.warning is not None

    @classmethod
    def failed(cls, message: str, duration: float = 0.0) -> TranscriptionResult:
        return cls(text=f"[Audio transcription failed: {message}]", duration=duration, error=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "text": self.text,
            "duration": self.duration,
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "language": self.language,
            "truncated": self.truncated,
        }
        # Keep payload compact.
        if self.error is not None:
            data["error"] = self.error
        if self.warning is not None:
            data["warning"] = self.warning
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptionResult:
        return cls(
            text=data["text"],
            duration=float(data.get("duration", 0.0)),
            chunks=[TranscriptionChunk.from_dict(item) for item in data.get("chunks", [])],
            language=data.get("language"),
            error=data.get("error"),
            warning=data.get("warning"),
            truncated=bool(data.get("truncated", False)),
        )
