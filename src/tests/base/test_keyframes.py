import base64
import json
import subprocess

import cv2
import numpy as np
import pytest

from videoinsight.base.exceptions import KeyframeExtractionError
from videoinsight.base.keyframes import FrameDecoder, Keyframe, KeyframeSampler, keyframe_timestamps
from videoinsight.base.media import MediaSource


class FakeFrameDecoder:
    """Stands in for the OpenCV decoder, recording every seek."""

    duration = 70.0
    fail_at: float | None = None
    seeks: list[float] = []

    def __init__(self, path):
        self.path = path

    def seek(self, timestamp):
        type(self).seeks.append(timestamp)
        if self.fail_at is not None and abs(timestamp - self.fail_at) < 1e-9:
            raise KeyframeExtractionError(f"Could not capture a frame at {timestamp}")
        frame = np.zeros((48, 64, 3), dtype=np.uint8)
        frame[:, :, 0] = int(timestamp) % 256
        return frame

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def fake_decoder_cls():
    class Decoder(FakeFrameDecoder):
        seeks: list[float] = []

    return Decoder


@pytest.fixture
def source():
    return MediaSource.from_bytes(b"\x00" * 16, name="clip.mp4")


def test_timestamps_for_seventy_seconds():
    assert keyframe_timestamps(70.0, 6) == pytest.approx([10.0, 20.0, 30.0, 40.0, 50.0, 60.0])


def test_timestamps_are_strictly_interior():
    timestamps = keyframe_timestamps(1.0, 9)
    assert all(0.0 < t < 1.0 for t in timestamps)
    assert timestamps == sorted(set(timestamps))


@pytest.mark.parametrize("duration,count", [(10.0, 0), (0.0, 6), (-1.0, 3)])
def test_timestamps_reject_invalid_input(duration, count):
    with pytest.raises(ValueError):
        keyframe_timestamps(duration, count)


class TestKeyframeSampler:
    def test_samples_in_order(self, source, fake_decoder_cls):
        sampler = KeyframeSampler(decoder_cls=fake_decoder_cls)
        keyframes = sampler.sample(source, 6)

        assert [kf.timestamp for kf in keyframes] == pytest.approx([10.0, 20.0, 30.0, 40.0, 50.0, 60.0])
        assert fake_decoder_cls.seeks == pytest.approx([10.0, 20.0, 30.0, 40.0, 50.0, 60.0])
        for keyframe in keyframes:
            assert keyframe.width == 64
            assert keyframe.height == 48
            assert keyframe.image[:2] == b"\xff\xd8"

    def test_known_duration_takes_precedence(self, source, fake_decoder_cls):
        keyframes = KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source.with_duration(7.0), 6)
        assert [kf.timestamp for kf in keyframes] == pytest.approx([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    def test_zero_duration_is_an_error(self, source, fake_decoder_cls):
        fake_decoder_cls.duration = 0.0
        with pytest.raises(KeyframeExtractionError):
            KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source, 6)

    def test_failed_capture_aborts_sampling(self, source, fake_decoder_cls):
        fake_decoder_cls.fail_at = 30.0
        with pytest.raises(KeyframeExtractionError):
            KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source, 6)

    def test_count_must_be_positive(self, source, fake_decoder_cls):
        with pytest.raises(ValueError):
            KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source, 0)

    def test_reports_progress_per_frame(self, source, fake_decoder_cls):
        events = []
        KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source, 4, progress=lambda f, m: events.append(f))
        assert events == pytest.approx([0.25, 0.5, 0.75, 1.0])

    def test_probe_duration(self, source, fake_decoder_cls):
        assert KeyframeSampler(decoder_cls=fake_decoder_cls).probe_duration(source) == 70.0

    def test_probe_duration_prefers_ffprobe(self, source, fake_decoder_cls, monkeypatch):
        output = json.dumps(
            {
                "streams": [{"codec_type": "video", "width": 64, "height": 48, "r_frame_rate": "30/1"}],
                "format": {"duration": "12.5"},
            }
        )
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout=output))
        fake_decoder_cls.duration = -1.0

        assert KeyframeSampler(decoder_cls=fake_decoder_cls).probe_duration(source) == 12.5

    def test_probe_duration_falls_back_to_opencv(self, source, fake_decoder_cls, monkeypatch):
        def missing_ffprobe(cmd, **kwargs):
            raise FileNotFoundError("ffprobe")

        monkeypatch.setattr(subprocess, "run", missing_ffprobe)
        assert KeyframeSampler(decoder_cls=fake_decoder_cls).probe_duration(source) == 70.0

    def test_sample_uses_ffprobe_when_frame_count_is_missing(self, source, fake_decoder_cls, monkeypatch):
        output = json.dumps(
            {
                "streams": [{"codec_type": "video", "width": 64, "height": 48, "r_frame_rate": "25/1"}],
                "format": {"duration": "7.0"},
            }
        )
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout=output))
        fake_decoder_cls.duration = 0.0

        keyframes = KeyframeSampler(decoder_cls=fake_decoder_cls).sample(source, 6)
        assert [kf.timestamp for kf in keyframes] == pytest.approx([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])


class TestKeyframe:
    def test_data_url(self):
        keyframe = Keyframe(timestamp=1.0, image=b"\xff\xd8jpeg", width=1, height=1)
        url = keyframe.to_data_url()
        assert url.startswith("data:image/jpeg;base64,")
        assert base64.b64decode(url.split(",", 1)[1]) == b"\xff\xd8jpeg"

    def test_pixels_decodes_image_when_frame_missing(self):
        frame = np.full((8, 8, 3), 200, dtype=np.uint8)
        ok, encoded = cv2.imencode(".png", frame)
        assert ok
        keyframe = Keyframe(timestamp=0.5, image=encoded.tobytes(), width=8, height=8)

        pixels = keyframe.pixels()
        assert pixels.shape == (8, 8, 3)
        np.testing.assert_array_equal(pixels, frame)

    def test_pixels_rejects_garbage(self):
        with pytest.raises(KeyframeExtractionError):
            Keyframe(timestamp=0.5, image=b"garbage", width=8, height=8).pixels()


@pytest.fixture(scope="module")
def synthetic_video(tmp_path_factory):
    path = tmp_path_factory.mktemp("video") / "synthetic.avi"
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
    if not writer.isOpened():
        pytest.skip("OpenCV cannot write MJPG video here")
    for index in range(20):
        frame = np.full((48, 64, 3), index * 12, dtype=np.uint8)
        writer.write(frame)
    writer.release()
    return path


class TestFrameDecoder:
    def test_reads_duration_and_frames(self, synthetic_video):
        with FrameDecoder(synthetic_video) as decoder:
            assert decoder.fps == pytest.approx(10.0)
            assert decoder.duration == pytest.approx(2.0, abs=0.2)
            frame = decoder.seek(1.0)
            assert frame.shape == (48, 64, 3)

    def test_sampler_on_real_video(self, synthetic_video):
        keyframes = KeyframeSampler().sample(MediaSource.from_path(synthetic_video), 3)
        assert len(keyframes) == 3
        assert all(kf.frame is not None and kf.frame.shape == (48, 64, 3) for kf in keyframes)

    def test_unopenable_file(self, tmp_path):
        path = tmp_path / "broken.mp4"
        path.write_bytes(b"this is not a video")
        with pytest.raises(KeyframeExtractionError):
            FrameDecoder(path)
