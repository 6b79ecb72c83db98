import pytest

from videoinsight.base.description import BoundingBox, DetectedObject
from videoinsight.base.text import TranscriptionChunk, TranscriptionResult


def test_bounding_box_geometry():
    box = BoundingBox(x=0.1, y=0.2, width=0.4, height=0.5)
    assert box.center == pytest.approx((0.3, 0.45))
    assert box.area == pytest.approx(0.2)


def test_detected_object_roundtrip():
    obj = DetectedObject(label="person", confidence=0.87, bounding_box=BoundingBox(0.1, 0.1, 0.2, 0.3))
    assert DetectedObject.from_dict(obj.to_dict()) == obj


def test_detected_object_without_box():
    obj = DetectedObject(label="dog", confidence=0.5)
    data = obj.to_dict()
    assert data["bounding_box"] is None
    assert DetectedObject.from_dict(data) == obj


@pytest.mark.parametrize("confidence", [-0.1, 1.01])
def test_detected_object_rejects_confidence_out_of_range(confidence):
    with pytest.raises(ValueError):
        DetectedObject(label="cat", confidence=confidence)


class TestTranscriptionResult:
    def test_failed_has_bracketed_text(self):
        result = TranscriptionResult.failed("model missing")
        assert result.text == "[Audio transcription failed: model missing]"
        assert result.error == "model missing"
        assert result.duration == 0.0
        assert result.degraded

    def test_dict_omits_unset_diagnostics(self):
        result = TranscriptionResult(text="hello", duration=3.0, chunks=[TranscriptionChunk("hello", 0.0, 1.2)])
        data = result.to_dict()

        assert "error" not in data
        assert "warning" not in data
        assert not result.degraded
        assert TranscriptionResult.from_dict(data) == result

    def test_roundtrip_with_warning(self):
        result = TranscriptionResult(text="[x]", duration=45.0, warning="silence", truncated=True)
        assert TranscriptionResult.from_dict(result.to_dict()) == result
