import pytest

from videoinsight.config import (
    ALL_CAPABILITY_IDS,
    OBJECT_DETECTION,
    AnalysisConfig,
    clear_config_cache,
    get_config,
)


@pytest.fixture
def in_tmp_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield tmp_path
    clear_config_cache()


def test_defaults():
    config = AnalysisConfig()
    assert config.keyframe_count == 6
    assert config.audio_budget_seconds == 30.0
    assert config.jpeg_quality == 85
    assert config.whisper_model == "tiny"
    assert config.ocr_languages == ["ch_sim", "en"]
    assert config.enabled_capabilities == set(ALL_CAPABILITY_IDS)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"keyframe_count": 0},
        {"audio_budget_seconds": 0},
        {"jpeg_quality": 101},
        {"whisper_model": "enormous"},
        {"detector_model_size": "xxl"},
        {"detection_confidence": 1.5},
        {"ocr_languages": []},
        {"device": "tpu"},
        {"enabled_capabilities": {"face_detection"}},
    ],
)
def test_validation(kwargs):
    with pytest.raises(ValueError):
        AnalysisConfig(**kwargs)


def test_dict_roundtrip():
    config = AnalysisConfig(keyframe_count=10, language="zh", enabled_capabilities={OBJECT_DETECTION})
    assert AnalysisConfig.from_dict(config.to_dict()) == config


def test_unknown_keys_warn():
    with pytest.warns(RuntimeWarning, match="unknown"):
        config = AnalysisConfig.from_dict({"keyframe_count": 4, "colour": "blue"})
    assert config.keyframe_count == 4


def test_no_config_file(in_tmp_cwd):
    assert get_config() == {}
    assert AnalysisConfig.load() == AnalysisConfig()


def test_videoinsight_toml(in_tmp_cwd):
    (in_tmp_cwd / "videoinsight.toml").write_text('keyframe_count = 8\nwhisper_model = "base"\n')
    config = AnalysisConfig.load()
    assert config.keyframe_count == 8
    assert config.whisper_model == "base"


def test_pyproject_section(in_tmp_cwd):
    (in_tmp_cwd / "pyproject.toml").write_text(
        '[project]\nname = "x"\n\n[tool.videoinsight]\naudio_budget_seconds = 60\n'
    )
    assert AnalysisConfig.load().audio_budget_seconds == 60


def test_invalid_toml_warns(in_tmp_cwd):
    (in_tmp_cwd / "videoinsight.toml").write_text("keyframe_count = = 3")
    with pytest.warns(RuntimeWarning, match="Invalid TOML"):
        assert get_config() == {}
