import yaml
from pathlib import Path
from .models import AppConfig

# Flat keys of the legacy single-level config file and their new section
_LEGACY_PATH_KEYS = {
    "source_directory": "source_dir",
    "output_directory": "output_dir",
    "lut_file": "lut_file",
    "backup_directory": "backup_dir",
    "log_file": "log_file",
}
_LEGACY_GENERAL_KEYS = {
    "quality_preset", "parallel_jobs", "force_encoder", "custom_ffmpeg_args",
    "skip_existing", "organize_by_date", "date_format", "auto_backup",
    "keep_job_logs", "min_file_size", "max_file_size", "preserve_timestamps",
    "preserve_metadata", "add_processing_metadata", "verbose_logging", "file_extensions",
}
_LEGACY_RENAMES = {
    "min_file_size": "min_file_size_mb",
    "max_file_size": "max_file_size_gb",
    "verbose_logging": "verbose",
    "file_extensions": "extensions",
}


def _from_flat(data: dict) -> dict:
    general = dict(data.get("general") or {})
    paths = dict(data.get("paths") or {})
    for key, value in data.items():
        if key in _LEGACY_PATH_KEYS:
            if value not in (None, ""):
                paths[_LEGACY_PATH_KEYS[key]] = value
        elif key in _LEGACY_GENERAL_KEYS:
            general[_LEGACY_RENAMES.get(key, key)] = value
    return {"general": general, "paths": paths}


def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return AppConfig(**_from_flat(data))
