import pytest
from pathlib import Path
from unittest.mock import patch
from pydantic import ValidationError
from lutbatch.config.models import (
    AppConfig, GeneralConfig, MAX_PARALLEL_JOBS, normalize_quality_preset, resolve_concurrency,
)


def test_general_config_defaults():
    general = GeneralConfig()
    assert general.quality_preset == "high"
    assert general.parallel_jobs == "auto"
    assert general.skip_existing is True
    assert general.extensions == ["mp4", "mov", "avi"]
    assert general.min_file_size_mb == 10
    assert general.max_file_size_gb == 0
    assert general.custom_ffmpeg_args == []


def test_app_config_defaults():
    config = AppConfig()
    assert config.paths.source_dir == Path("./input")
    assert config.paths.output_dir == Path("./output")
    assert config.paths.lut_file == Path("./luts/Avata2.cube")
    assert config.paths.log_file is None


@pytest.mark.parametrize("value, expected", [
    ("draft", "draft"), ("HIGH", "high"), (" professional ", "professional"),
    ("low", "draft"), ("medium", "standard"),
])
def test_normalize_quality_preset(value, expected):
    assert normalize_quality_preset(value) == expected


def test_quality_preset_invalid():
    with pytest.raises(ValidationError):
        GeneralConfig(quality_preset="ultra")


def test_resolve_concurrency_scenario_e():
    assert resolve_concurrency("auto", cpu_count=8) == 8
    with patch("os.cpu_count", return_value=8):
        assert resolve_concurrency("auto") == 8
        assert resolve_concurrency(0) == 8


def test_resolve_concurrency_unknown_cpu_count():
    with patch("os.cpu_count", return_value=None):
        assert resolve_concurrency("auto") == 1


@pytest.mark.parametrize("value, expected", [(1, 1), ("4", 4), (MAX_PARALLEL_JOBS, MAX_PARALLEL_JOBS)])
def test_resolve_concurrency_explicit(value, expected):
    assert resolve_concurrency(value) == expected


@pytest.mark.parametrize("value", [-1, 33, "many", "4.5"])
def test_resolve_concurrency_invalid(value):
    with pytest.raises(ValueError):
        resolve_concurrency(value)


def test_parallel_jobs_validation():
    assert GeneralConfig(parallel_jobs="AUTO").parallel_jobs == "auto"
    assert GeneralConfig(parallel_jobs="6").parallel_jobs == 6
    with pytest.raises(ValidationError):
        GeneralConfig(parallel_jobs=64)


def test_custom_ffmpeg_args_string_is_tokenized():
    general = GeneralConfig(custom_ffmpeg_args='-tune film -metadata title="My Clip"')
    assert general.custom_ffmpeg_args == ["-tune", "film", "-metadata", "title=My Clip"]


def test_extensions_must_not_be_empty():
    with pytest.raises(ValidationError):
        GeneralConfig(extensions=["", "  "])


@pytest.mark.parametrize("fmt", ["", "%Y/%m"])
def test_date_format_rejected(fmt):
    with pytest.raises(ValidationError):
        GeneralConfig(date_format=fmt)


def test_negative_sizes_rejected():
    with pytest.raises(ValidationError):
        GeneralConfig(min_file_size_mb=-1)
