from .audio import (
    TARGET_SAMPLE_RATE,
    AudioAcquirer,
    AudioAcquisitionResult,
    PcmBuffer,
    decode_wav,
    encode_wav,
    read_wav_header,
)
from .description import BoundingBox, DetectedObject
from .exceptions import (
    AudioAcquisitionError,
    AudioDecodeError,
    AudioError,
    KeyframeExtractionError,
    MediaSourceError,
    VideoInsightError,
    VideoMetadataError,
    WavFormatError,
)
from .keyframes import FrameDecoder, Keyframe, KeyframeSampler, keyframe_timestamps
from .media import MediaSource, VideoMetadata
from .progress import ProgressEvent, ProgressQueue, ProgressReporter, configure, set_progress
from .text import TranscriptionChunk, TranscriptionResult

__all__ = [
    # Media
    "MediaSource",
    "VideoMetadata",
    # Audio
    "PcmBuffer",
    "encode_wav",
    "decode_wav",
    "read_wav_header",
    "TARGET_SAMPLE_RATE",
    "AudioAcquirer",
    "AudioAcquisitionResult",
    # Keyframes
    "Keyframe",
    "KeyframeSampler",
    "FrameDecoder",
    "keyframe_timestamps",
    # Descriptions
    "BoundingBox",
    "DetectedObject",
    "TranscriptionChunk",
    "TranscriptionResult",
    # Progress
    "ProgressEvent",
    "ProgressReporter",
    "ProgressQueue",
    "configure",
    "set_progress",
    # Exceptions
    "VideoInsightError",
    "MediaSourceError",
    "VideoMetadataError",
    "AudioError",
    "AudioAcquisitionError",
    "AudioDecodeError",
    "WavFormatError",
    "KeyframeExtractionError",
]
