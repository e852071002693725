import os
import shlex
from pathlib import Path
from typing import List, Optional, Union
from pydantic import BaseModel, Field, field_validator

MAX_PARALLEL_JOBS = 32

QUALITY_PRESETS = ("draft", "standard", "high", "professional")
QUALITY_ALIASES = {"low": "draft", "medium": "standard"}


def normalize_quality_preset(value: str) -> str:
    preset = value.strip().lower()
    preset = QUALITY_ALIASES.get(preset, preset)
    if preset not in QUALITY_PRESETS:
        allowed = ", ".join(QUALITY_PRESETS + tuple(QUALITY_ALIASES))
        raise ValueError(f"Invalid quality preset: {value}. Use one of: {allowed}")
    return preset


def resolve_concurrency(value: Union[int, str], cpu_count: Optional[int] = None) -> int:
    """Resolves 'auto' (or 0) to the host's logical core count."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "auto":
            value = 0
        else:
            try:
                value = int(text)
            except ValueError:
                raise ValueError(f"Invalid parallel_jobs value: {value} (must be 1-{MAX_PARALLEL_JOBS} or 'auto')")
    if value == 0:
        cores = cpu_count if cpu_count is not None else os.cpu_count()
        return max(1, cores or 1)
    if not 1 <= value <= MAX_PARALLEL_JOBS:
        raise ValueError(f"Invalid parallel_jobs value: {value} (must be 1-{MAX_PARALLEL_JOBS} or 'auto')")
    return value


class GeneralConfig(BaseModel):
    quality_preset: str = "high"
    parallel_jobs: Union[int, str] = "auto"
    force_encoder: str = "auto"
    custom_ffmpeg_args: List[str] = Field(default_factory=list)
    skip_existing: bool = True
    organize_by_date: bool = False
    date_format: str = "%Y-%m-%d"
    auto_backup: bool = False
    keep_job_logs: bool = False
    extensions: List[str] = Field(default_factory=lambda: ["mp4", "mov", "avi"])
    min_file_size_mb: int = Field(default=10, ge=0)
    max_file_size_gb: int = Field(default=0, ge=0)  # 0 = no limit
    preserve_timestamps: bool = True
    preserve_metadata: bool = True
    add_processing_metadata: bool = False
    min_free_space_gb: float = Field(default=5.0, ge=0.0)
    verbose: bool = False
    debug: bool = False

    @field_validator("quality_preset")
    @classmethod
    def validate_quality_preset(cls, v: str) -> str:
        return normalize_quality_preset(v)

    @field_validator("parallel_jobs")
    @classmethod
    def validate_parallel_jobs(cls, v: Union[int, str]) -> Union[int, str]:
        if isinstance(v, str) and v.strip().lower() == "auto":
            return "auto"
        # Validates the range; the value itself is resolved at scheduler start
        resolve_concurrency(v, cpu_count=1)
        return int(v)

    @field_validator("custom_ffmpeg_args", mode="before")
    @classmethod
    def split_custom_args(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        cleaned = [ext.strip() for ext in v if ext and ext.strip()]
        if not cleaned:
            raise ValueError("At least one file extension is required")
        return cleaned

    @field_validator("date_format")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError(f"Invalid date_format: {v!r} (must be non-empty, no '/')")
        return v


class PathsConfig(BaseModel):
    source_dir: Path = Path("./input")
    output_dir: Path = Path("./output")
    lut_file: Path = Path("./luts/Avata2.cube")
    backup_dir: Path = Path("./backup")
    log_file: Optional[Path] = None
    job_log_dir: Optional[Path] = None


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
