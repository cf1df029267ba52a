"""Wiring of long-lived components shared by the web API and the CLI."""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from strmthumb.config.models import AppConfig
from strmthumb.domain.errors import CacheWriteError
from strmthumb.infrastructure.duration_cache import DurationCache
from strmthumb.infrastructure.event_bus import EventBus
from strmthumb.infrastructure.ffmpeg import FFmpegAdapter
from strmthumb.infrastructure.ffprobe import FFprobeAdapter
from strmthumb.infrastructure.file_scanner import FileScanner
from strmthumb.infrastructure.housekeeping import HousekeepingService
from strmthumb.infrastructure.http_client import HttpProbe
from strmthumb.infrastructure.path_guard import PathGuard
from strmthumb.infrastructure.url_guard import UrlGuard
from strmthumb.pipeline.orchestrator import BatchOrchestrator
from strmthumb.pipeline.processor import ThumbnailProcessor
from strmthumb.pipeline.task_queue import BoundedTaskQueue

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_TIMEOUT = 60.0


@dataclass
class Services:
    config: AppConfig
    cache: DurationCache
    path_guard: PathGuard
    url_guard: UrlGuard
    http_probe: HttpProbe
    processor: ThumbnailProcessor
    task_queue: BoundedTaskQueue
    orchestrator: BatchOrchestrator
    scanner: FileScanner = field(default_factory=FileScanner)
    housekeeping: HousekeepingService = field(default_factory=HousekeepingService)
    bus: EventBus = field(default_factory=EventBus)

    async def startup(self) -> None:
        """Loads and prunes the duration cache, starts auto-save and empties the sample dir."""
        await self.cache.load()
        self.cache.prune_older_than(self.config.cache.max_age_days * 86400)
        self.cache.start_auto_save()
        tmp_dir = Path(self.config.paths.tmp_dir)
        tmp_dir.mkdir(parents=True, exist_ok=True)
        self.housekeeping.cleanup_sample_dir(tmp_dir)

    async def shutdown(self, drain_timeout: Optional[float] = SHUTDOWN_DRAIN_TIMEOUT) -> None:
        """Lets queued jobs finish, then persists the cache and closes the HTTP client."""
        try:
            await self.task_queue.drain(timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Queue did not drain within {drain_timeout:g}s, shutting down anyway")
        try:
            await self.cache.close()
        except CacheWriteError as e:
            logger.error(f"Final duration cache save failed: {e}")
        await self.http_probe.aclose()


def build_services(config: AppConfig, url_guard: Optional[UrlGuard] = None, http_probe: Optional[HttpProbe] = None) -> Services:
    cache = DurationCache(Path(config.paths.cache_file), auto_save_interval=config.cache.auto_save_interval)
    path_guard = PathGuard(config.paths.allowed_roots, config.paths.blocked_roots)
    url_guard = url_guard or UrlGuard()
    http_probe = http_probe or HttpProbe(url_guard)
    processor = ThumbnailProcessor(
        config=config,
        cache=cache,
        ffprobe_adapter=FFprobeAdapter(),
        ffmpeg_adapter=FFmpegAdapter(debug=config.logging.debug),
        http_probe=http_probe,
        url_guard=url_guard,
        path_guard=path_guard,
    )
    task_queue = BoundedTaskQueue(concurrency=config.concurrency.default)
    orchestrator = BatchOrchestrator(config, task_queue, processor)
    return Services(
        config=config,
        cache=cache,
        path_guard=path_guard,
        url_guard=url_guard,
        http_probe=http_probe,
        processor=processor,
        task_queue=task_queue,
        orchestrator=orchestrator,
    )
