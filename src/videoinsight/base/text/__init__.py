from .transcription import TranscriptionChunk, TranscriptionResult

__all__ = ["TranscriptionChunk", "TranscriptionResult"]
