"""Exception hierarchy for videoinsight.base module."""


class VideoInsightError(Exception):
    """Base exception for all videoinsight errors."""

    pass


class MediaSourceError(VideoInsightError):
    """Raised when the input video's bytes cannot be read."""

    pass


class VideoMetadataError(VideoInsightError):
    """Raised when there's an error getting video metadata."""

    pass


class AudioError(VideoInsightError):
    """Base exception for audio-related errors."""

    pass


class AudioAcquisitionError(AudioError):
    """Raised when audio cannot be acquired because the source itself is unreadable."""

    pass


class AudioDecodeError(AudioError):
    """Raised when a decoder cannot parse the container or codec of the source."""

    pass


class WavFormatError(AudioError):
    """Raised when a byte stream is not a canonical 16-bit PCM WAV file."""

    pass


class KeyframeExtractionError(VideoInsightError):
    """Raised when keyframes cannot be captured from the source."""

    pass
