from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from videoinsight.ai._device import resolve_device
from videoinsight.base.audio import TARGET_SAMPLE_RATE, PcmBuffer
from videoinsight.base.text import TranscriptionChunk

logger = logging.getLogger(__name__)

WhisperModel = Literal["tiny", "base", "small", "medium", "large", "turbo"]


@dataclass
class SpeechResult:
    """Raw output of the speech recognizer for one clip."""

    text: str
    chunks: list[TranscriptionChunk] = field(default_factory=list)
    language: str | None = None


class SpeechTranscriber:
    """Speech recognition with OpenAI Whisper."""

    def __init__(
        self,
        model_name: WhisperModel = "tiny",
        language: str | None = None,
        device: str | None = None,
    ) -> None:
        """Load the Whisper model.

        Args:
            model_name: Whisper checkpoint to load (default: "tiny")
            language: Force a language code such as "en" or "zh"; None auto-detects
            device: "cpu", "cuda" or None for automatic selection
        """
        import whisper

        self.model_name = model_name
        self.language = language
        # Whisper's sparse attention kernels are unsupported on MPS
        self.device = resolve_device("SpeechTranscriber", device, mps_allowed=False)
        self.model = whisper.load_model(name=model_name, device=self.device)

    def _process_transcription_result(self, transcription_result: dict[str, Any]) -> SpeechResult:
        """Convert the raw Whisper result dict into a SpeechResult."""
        chunks = [
            TranscriptionChunk(text=segment["text"].strip(), start=float(segment["start"]), end=float(segment["end"]))
            for segment in transcription_result.get("segments", [])
        ]
        return SpeechResult(
            text=str(transcription_result.get("text", "")).strip(),
            chunks=chunks,
            language=transcription_result.get("language", self.language),
        )

    def transcribe(self, pcm: PcmBuffer) -> SpeechResult:
        """Transcribe 16 kHz mono audio.

        Args:
            pcm: Mono audio sampled at 16 kHz.

        Returns:
            SpeechResult with the full text and timestamped chunks.
        """
        if pcm.channels != 1 or pcm.sample_rate != TARGET_SAMPLE_RATE:
            raise ValueError(f"Expected mono {TARGET_SAMPLE_RATE}Hz audio, got {pcm!r}")

        if len(pcm) == 0 or pcm.is_silent:
            return SpeechResult(text="", chunks=[], language=self.language)

        logger.info("Transcribing %.1fs of audio (model=%s)", pcm.duration_seconds, self.model_name)
        transcription_result = self.model.transcribe(
            audio=pcm.samples,
            language=self.language,
            fp16=self.device == "cuda",
            verbose=None,
        )
        return self._process_transcription_result(transcription_result)
