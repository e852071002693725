import pytest
import yaml
from pathlib import Path
from lutbatch.config.loader import load_config


def test_load_config_sections(config_yaml_path, tmp_path):
    config = load_config(config_yaml_path)

    assert config.general.quality_preset == "professional"
    assert config.general.parallel_jobs == 3
    assert config.general.extensions == ["mp4", "MOV"]
    assert config.general.min_file_size_mb == 50
    assert config.general.custom_ffmpeg_args == ["-tune", "film", "-g", "48"]
    assert config.paths.source_dir == tmp_path / "footage"
    assert config.paths.output_dir == tmp_path / "converted"
    # Unset values keep their defaults
    assert config.general.skip_existing is True
    assert config.paths.backup_dir == Path("./backup")


def test_load_config_legacy_flat_keys(tmp_path):
    conf = tmp_path / "legacy.yaml"
    conf.write_text(yaml.dump({
        "source_directory": "/footage",
        "output_directory": "/converted",
        "lut_file": "/luts/dlog.cube",
        "backup_directory": "",
        "quality_preset": "medium",
        "parallel_jobs": "auto",
        "min_file_size": 25,
        "verbose_logging": True,
        "file_extensions": ["mp4"],
    }))

    config = load_config(conf)

    assert config.paths.source_dir == Path("/footage")
    assert config.paths.output_dir == Path("/converted")
    assert config.paths.lut_file == Path("/luts/dlog.cube")
    assert config.paths.backup_dir == Path("./backup")
    assert config.general.quality_preset == "standard"
    assert config.general.min_file_size_mb == 25
    assert config.general.verbose is True
    assert config.general.extensions == ["mp4"]


def test_load_config_empty_file(tmp_path):
    conf = tmp_path / "empty.yaml"
    conf.write_text("")
    config = load_config(conf)
    assert config.general.quality_preset == "high"


def test_load_config_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_load_config_not_a_mapping(tmp_path):
    conf = tmp_path / "list.yaml"
    conf.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(conf)


def test_load_config_invalid_value(tmp_path):
    conf = tmp_path / "bad.yaml"
    conf.write_text(yaml.dump({"general": {"parallel_jobs": 100}}))
    with pytest.raises(ValueError):
        load_config(conf)
