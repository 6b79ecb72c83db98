import json

import pytest

from videoinsight import cli
from videoinsight.ai.capabilities import Capabilities
from videoinsight.ai.video_analysis import VideoAnalyzer
from videoinsight.base.audio import AudioAcquirer
from videoinsight.base.exceptions import AudioDecodeError
from videoinsight.config import OBJECT_DETECTION, SPEECH_RECOGNITION, TEXT_RECOGNITION, clear_config_cache


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "setup_logger", lambda level=None: None)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 1024)
    return path


def install_fake_analyzer(monkeypatch, fakes, decoder=None):
    created = []

    def build(config):
        analyzer = VideoAnalyzer(
            config=config,
            capabilities=Capabilities.from_adapters(
                object_detector=fakes["detector"](),
                speech_transcriber=fakes["transcriber"](),
            ),
            sampler=fakes["sampler"](),
            acquirer=AudioAcquirer(decoders=[decoder or fakes["audio_decoder"]()]),
        )
        created.append(analyzer)
        return analyzer

    monkeypatch.setattr(cli, "VideoAnalyzer", build)
    return created


@pytest.fixture
def fake_analyzer(monkeypatch, fakes):
    return install_fake_analyzer(monkeypatch, fakes)


def test_analyze_prints_json(video_file, fake_analyzer, capsys):
    assert cli.main(["analyze", str(video_file), "--frames", "3"]) == 0

    captured = capsys.readouterr()
    report = json.loads(captured.out)
    assert report["filename"] == "clip.mp4"
    assert len(report["keyframes"]) == 3
    assert "[100%] Analysis complete" in captured.err


def test_analyze_writes_output_and_audio(video_file, fake_analyzer, tmp_path, capsys):
    output = tmp_path / "reports" / "report.json"
    code = cli.main(["analyze", str(video_file), "-o", str(output), "--export-audio", str(tmp_path / "a.wav"), "-q"])

    assert code == 0
    assert json.loads(output.read_text())["filesize"] == 1024
    assert (tmp_path / "a.wav").exists()
    assert "%]" not in capsys.readouterr().err


def test_undecodable_audio_still_reports(video_file, monkeypatch, fakes, tmp_path, capsys):
    decoder = fakes["audio_decoder"](error=AudioDecodeError("unsupported codec"))
    install_fake_analyzer(monkeypatch, fakes, decoder=decoder)

    code = cli.main(["analyze", str(video_file), "--export-audio", str(tmp_path / "a.wav"), "-q"])

    captured = capsys.readouterr()
    assert code == 0
    report = json.loads(captured.out)
    assert report["transcription"]["warning"]
    assert "Audio not exported" in captured.err
    assert not (tmp_path / "a.wav").exists()


def test_text_format(video_file, fake_analyzer, capsys):
    cli.main(["analyze", str(video_file), "--format", "text", "-q"])
    out = capsys.readouterr().out
    assert "Frame 1 (10.00s)" in out
    assert "person (90.0%)" in out


def test_disable_flags(video_file, fake_analyzer):
    cli.main(["analyze", str(video_file), "--no-ocr", "--no-asr", "--budget", "10", "-q"])
    config = fake_analyzer[0].config
    assert config.enabled_capabilities == {OBJECT_DETECTION}
    assert config.audio_budget_seconds == 10
    assert TEXT_RECOGNITION not in config.enabled_capabilities
    assert SPEECH_RECOGNITION not in config.enabled_capabilities


def test_missing_file_exits_with_error(tmp_path, capsys):
    assert cli.main(["analyze", str(tmp_path / "missing.mp4")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_invalid_frames(video_file, capsys):
    assert cli.main(["analyze", str(video_file), "--frames", "0"]) == 1


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_status_with_everything_disabled(capsys):
    code = cli.main(["status", "--no-ocr", "--no-asr", "--no-detection"])
    out = capsys.readouterr().out
    assert code == 2
    assert "Disabled in config" in out
