from pathlib import Path
from typing import List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

POSITION_CHOICES = ("start", "middle", "end", "auto")
OVERWRITE_MODES = ("skip-existing", "always")

DEFAULT_BLOCKED_ROOTS = [
    "/etc",
    "/sys",
    "/proc",
    "/dev",
    "/root",
    "/boot",
    "/usr/bin",
    "/usr/sbin",
    "/var/run",
    "/var/lib",
]

Position = Union[Literal["start", "middle", "end", "auto"], float]


def validate_position(value: Union[str, float, int]) -> Union[str, float]:
    """Accepts a named position or a non-negative offset in seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid position: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError("Explicit position must be >= 0 seconds")
        return float(value)
    text = str(value).strip().lower()
    if text in POSITION_CHOICES:
        return text
    try:
        seconds = float(text)
    except ValueError:
        allowed = ", ".join(POSITION_CHOICES)
        raise ValueError(f"Unsupported position '{value}'. Use one of: {allowed}, or seconds.")
    if seconds < 0:
        raise ValueError("Explicit position must be >= 0 seconds")
    return seconds


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    api_token: Optional[str] = None  # None disables the auth gate


class PathsConfig(BaseModel):
    tmp_dir: str = "/tmp/strmthumb"
    cache_file: str = ".video_cache.json"
    allowed_roots: List[str] = Field(default_factory=list)
    blocked_roots: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_ROOTS))


class ConcurrencyConfig(BaseModel):
    default: int = Field(default=4, ge=1)
    min: int = Field(default=2, ge=1)
    max: int = Field(default=8, ge=1)
    small_batch_threshold: int = Field(default=10, ge=0)
    large_batch_threshold: int = Field(default=100, ge=0)
    large_batch_multiplier: float = Field(default=1.5, ge=1.0)

    @model_validator(mode="after")
    def validate_bounds(self):
        if not (self.min <= self.default <= self.max):
            raise ValueError("concurrency must satisfy min <= default <= max")
        if self.small_batch_threshold > self.large_batch_threshold:
            raise ValueError("small_batch_threshold must be <= large_batch_threshold")
        return self


class TimeoutsConfig(BaseModel):
    """Per-call timeouts in seconds."""
    http: float = Field(default=8.0, gt=0)
    ffprobe: float = Field(default=10.0, gt=0)
    sample_download: float = Field(default=20.0, gt=0)
    ffmpeg: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def validate_order(self):
        if not (self.ffprobe <= self.sample_download <= self.ffmpeg):
            raise ValueError("timeouts must satisfy ffprobe <= sample_download <= ffmpeg")
        return self


class ThumbnailConfig(BaseModel):
    quality: int = Field(default=85, ge=1, le=100)
    position: Position = "middle"
    max_width: int = Field(default=1920, gt=0)
    max_height: int = Field(default=1080, gt=0)
    min_bytes: int = Field(default=1000, ge=0)
    sample_bytes: int = Field(default=5 * 1024 * 1024, gt=0)

    @field_validator("position", mode="before")
    @classmethod
    def check_position(cls, v):
        return validate_position(v)


class CacheConfig(BaseModel):
    auto_save_interval: float = Field(default=300.0, gt=0)
    max_age_days: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    log_path: Optional[str] = None
    debug: bool = False


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    thumbnail: ThumbnailConfig = Field(default_factory=ThumbnailConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class BatchOptions(BaseModel):
    """Per-batch options. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    overwrite_mode: Literal["skip-existing", "always"] = "skip-existing"
    position: Optional[Position] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    output_directory: Optional[Path] = None
    concurrency: Optional[int] = Field(default=None, ge=1)

    @field_validator("position", mode="before")
    @classmethod
    def check_position(cls, v):
        if v is None:
            return None
        return validate_position(v)
