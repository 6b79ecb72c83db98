from .capabilities import Capabilities, Outcome, OutcomeStatus
from .exceptions import BackendError, CapabilityUnavailableError
from .understanding import ObjectDetector, SpeechResult, SpeechTranscriber, TextRecognizer
from .video_analysis import AnalysisReport, AnalysisStage, FrameAnnotation, VideoAnalyzer

__all__ = [
    # Exceptions
    "BackendError",
    "CapabilityUnavailableError",
    # Capabilities
    "Capabilities",
    "Outcome",
    "OutcomeStatus",
    # Understanding
    "SpeechTranscriber",
    "SpeechResult",
    "ObjectDetector",
    "TextRecognizer",
    # Analysis
    "VideoAnalyzer",
    "AnalysisReport",
    "AnalysisStage",
    "FrameAnnotation",
]
