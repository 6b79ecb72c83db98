import numpy as np
import pytest

from videoinsight.ai.understanding import SpeechResult
from videoinsight.base.audio import PcmBuffer
from videoinsight.base.description import BoundingBox, DetectedObject
from videoinsight.base.keyframes import Keyframe
from videoinsight.base.media import MediaSource
from videoinsight.base.text import TranscriptionChunk


class FakeDetector:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [DetectedObject(label="person", confidence=0.9, bounding_box=BoundingBox(0.1, 0.1, 0.5, 0.8))]


class FakeRecognizer:
    def __init__(self, text: str = "  EXIT  "):
        self.text = text

    def recognize(self, image):
        return self.text


class FakeTranscriber:
    def __init__(self, text: str = "hello world", error: Exception | None = None):
        self.text = text
        self.error = error
        self.received: list[PcmBuffer] = []

    def transcribe(self, pcm):
        self.received.append(pcm)
        if self.error is not None:
            raise self.error
        return SpeechResult(text=self.text, chunks=[TranscriptionChunk(self.text, 0.0, 1.0)], language="en")


class FakeSampler:
    """Produces solid-colour keyframes at the usual interior timestamps."""

    def __init__(self, duration: float = 70.0):
        self.duration = duration
        self.probed = 0

    def probe_duration(self, source):
        self.probed += 1
        return self.duration

    def sample(self, source, count, progress=None):
        duration = source.duration or self.duration
        keyframes = []
        for index in range(1, count + 1):
            frame = np.full((48, 64, 3), index * 10, dtype=np.uint8)
            keyframes.append(
                Keyframe(
                    timestamp=duration / (count + 1) * index, image=b"\xff\xd8fake", width=64, height=48, frame=frame
                )
            )
            if progress is not None:
                progress(index / count, f"Captured keyframe {index}/{count}")
        return keyframes


class FakeAudioDecoder:
    name = "fake"

    def __init__(self, seconds: float = 5.0, sample_rate: int = 44100, error: Exception | None = None):
        self.seconds = seconds
        self.sample_rate = sample_rate
        self.error = error

    def decode(self, source):
        if self.error is not None:
            raise self.error
        n = int(self.seconds * self.sample_rate)
        t = np.arange(n) / self.sample_rate
        return PcmBuffer(0.3 * np.sin(2 * np.pi * 220 * t), sample_rate=self.sample_rate)


@pytest.fixture
def source():
    return MediaSource.from_bytes(b"\x00" * 2048, name="clip.mp4")


@pytest.fixture
def fakes():
    return {
        "detector": FakeDetector,
        "recognizer": FakeRecognizer,
        "transcriber": FakeTranscriber,
        "sampler": FakeSampler,
        "audio_decoder": FakeAudioDecoder,
    }
