from dataclasses import dataclass
from typing import Optional

from strmthumb.config.models import AppConfig, validate_position


@dataclass(frozen=True)
class CliConfigOverrides:
    host: Optional[str] = None
    port: Optional[int] = None
    concurrency: Optional[int] = None
    quality: Optional[int] = None
    position: Optional[str] = None
    cache_file: Optional[str] = None
    tmp_dir: Optional[str] = None
    log_path: Optional[str] = None
    debug: bool = False

    @property
    def has_overrides(self) -> bool:
        return any(
            value is not None
            for value in (
                self.host,
                self.port,
                self.concurrency,
                self.quality,
                self.position,
                self.cache_file,
                self.tmp_dir,
                self.log_path,
            )
        ) or self.debug

    def apply(self, config: AppConfig) -> None:
        if self.host is not None:
            config.server.host = self.host
        if self.port is not None:
            if not 1 <= self.port <= 65535:
                raise ValueError("port must be between 1 and 65535")
            config.server.port = self.port
        if self.concurrency is not None:
            if self.concurrency < 1:
                raise ValueError("concurrency must be >= 1")
            config.concurrency.default = min(self.concurrency, config.concurrency.max)
            config.concurrency.min = min(config.concurrency.min, config.concurrency.default)
        if self.quality is not None:
            if not 1 <= self.quality <= 100:
                raise ValueError("quality must be between 1 and 100")
            config.thumbnail.quality = self.quality
        if self.position is not None:
            config.thumbnail.position = validate_position(self.position)
        if self.cache_file is not None:
            config.paths.cache_file = self.cache_file
        if self.tmp_dir is not None:
            config.paths.tmp_dir = self.tmp_dir
        if self.log_path is not None:
            config.logging.log_path = self.log_path
        if self.debug:
            config.logging.debug = True
