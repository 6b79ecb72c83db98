from .detection import ObjectDetector, TextRecognizer
from .transcribe import SpeechResult, SpeechTranscriber

__all__ = [
    "ObjectDetector",
    "TextRecognizer",
    "SpeechResult",
    "SpeechTranscriber",
]
