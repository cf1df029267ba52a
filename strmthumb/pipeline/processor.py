"""Per-job thumbnail pipeline.

One call to ``ThumbnailProcessor.process`` carries a single .strm file
through: scope check -> skip check -> URL read and validation ->
reachability -> duration (cache, direct probe, ranged sample probe) ->
frame extraction -> size check -> NFO sidecar. Every failure is contained
and reported as a ``failed`` JobResult with a readable reason; the per-job
sample file is removed whatever the outcome.
"""
import asyncio
import hashlib
import logging
import random
import time
from pathlib import Path
from typing import Optional

from strmthumb.config.models import AppConfig, BatchOptions
from strmthumb.domain.errors import (
    CorruptOutputError,
    ProbeError,
    SourceUnavailableError,
    StrmThumbError,
)
from strmthumb.domain.events import LogEvent
from strmthumb.domain.models import JobResult, JobStatus
from strmthumb.infrastructure.duration_cache import DurationCache
from strmthumb.infrastructure.event_sink import EventSink
from strmthumb.infrastructure.ffmpeg import FFmpegAdapter
from strmthumb.infrastructure.ffprobe import FFprobeAdapter
from strmthumb.infrastructure.http_client import HttpProbe
from strmthumb.infrastructure.nfo_writer import NfoWriter
from strmthumb.infrastructure.path_guard import PathGuard
from strmthumb.infrastructure.url_guard import UrlGuard
from strmthumb.pipeline.positions import compute_offset

THUMBNAIL_SUFFIX = ".jpg"


class ThumbnailProcessor:
    """Runs the thumbnail pipeline for one source identifier at a time.

    Instances are shared by all concurrent jobs; per-job state lives in
    local variables only. The DurationCache is the one shared mutable
    collaborator.
    """

    def __init__(
        self,
        config: AppConfig,
        cache: DurationCache,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        http_probe: HttpProbe,
        url_guard: UrlGuard,
        nfo_writer: Optional[NfoWriter] = None,
        path_guard: Optional[PathGuard] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.cache = cache
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.http_probe = http_probe
        self.url_guard = url_guard
        self.nfo_writer = nfo_writer or NfoWriter()
        self.path_guard = path_guard
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def thumbnail_path_for(source: Path, options: BatchOptions) -> Path:
        output_dir = Path(options.output_directory) if options.output_directory else source.parent
        return output_dir / f"{source.stem}{THUMBNAIL_SUFFIX}"

    @staticmethod
    def nfo_path_for(source: Path) -> Path:
        return source.with_suffix(".nfo")

    def sample_path_for(self, identifier: str) -> Path:
        digest = hashlib.sha1(identifier.encode("utf-8", errors="surrogatepass")).hexdigest()[:10]
        return Path(self.config.paths.tmp_dir) / f"{Path(identifier).stem}_{digest}_sample.mp4"

    async def process(
        self,
        identifier: str,
        options: BatchOptions,
        sink: Optional[EventSink] = None,
    ) -> JobResult:
        source = Path(identifier)
        name = source.stem
        sample_path = self.sample_path_for(identifier)
        debug = self.config.logging.debug
        start_time = time.monotonic()

        def log(message: str, level: str = "info") -> None:
            if level == "error":
                self.logger.error(message)
            else:
                self.logger.info(message)
            if sink is not None:
                sink.emit(LogEvent(message=message, level=level))

        if debug:
            self.logger.debug(f"PROCESS_START: {identifier}")

        try:
            if self.path_guard is not None:
                source = self.path_guard.validate(source)

            thumb_path = self.thumbnail_path_for(source, options)
            if options.overwrite_mode == "skip-existing" and thumb_path.exists():
                log(f"Skipped, thumbnail exists: {name}")
                return JobResult(
                    identifier=identifier,
                    status=JobStatus.SKIPPED,
                    reason="Thumbnail already exists",
                    thumbnail_path=thumb_path,
                )

            url = await self._read_url(source)
            log(f"Processing: {name}")
            await self.url_guard.validate(url)

            # ffprobe and ffmpeg get the checked final URL, never the raw redirect chain
            media_url = await self.http_probe.resolve(url, timeout=self.config.timeouts.http)
            if media_url is None:
                raise SourceUnavailableError("Video URL is unreachable")

            duration = await self._get_duration(url, media_url, sample_path)

            position = options.position if options.position is not None else self.config.thumbnail.position
            offset = compute_offset(position, duration, self.rng)
            quality = options.quality or self.config.thumbnail.quality
            await self._extract(media_url, thumb_path, offset, quality)

            nfo_path = self.nfo_path_for(source)
            await asyncio.to_thread(
                self.nfo_writer.write, nfo_path, name, url, thumb_path.name, duration
            )
            log(f"NFO written: {nfo_path.name}")
            log(f"Succeeded: {name}", "success")
            return JobResult(
                identifier=identifier,
                status=JobStatus.SUCCEEDED,
                thumbnail_path=thumb_path,
                nfo_path=nfo_path,
                duration=duration,
            )
        except (StrmThumbError, OSError) as e:
            reason = str(e) or e.__class__.__name__
            log(f"Failed: {name} - {reason}", "error")
            return JobResult(identifier=identifier, status=JobStatus.FAILED, reason=reason)
        except Exception as e:
            # Unexpected bug in one job must not take the batch down
            self.logger.exception(f"Exception processing {identifier}")
            reason = f"Unexpected error: {e.__class__.__name__}: {e}"
            if sink is not None:
                sink.emit(LogEvent(message=f"Failed: {name} - {reason}", level="error"))
            return JobResult(identifier=identifier, status=JobStatus.FAILED, reason=reason)
        finally:
            self._remove_sample(sample_path)
            if debug:
                elapsed = time.monotonic() - start_time
                self.logger.debug(f"PROCESS_END: {identifier} elapsed={elapsed:.2f}s")

    async def _read_url(self, source: Path) -> str:
        try:
            text = await asyncio.to_thread(source.read_text, encoding="utf-8-sig")
        except FileNotFoundError:
            raise SourceUnavailableError(f"Source file not found: {source}")
        except IsADirectoryError:
            raise SourceUnavailableError(f"Source is a directory: {source}")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceUnavailableError(f"Cannot read source file: {e}")
        for line in text.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                return line
        raise SourceUnavailableError("Source file contains no URL")

    async def _get_duration(self, url: str, media_url: str, sample_path: Path) -> float:
        """Cached by the URL in the .strm file; probed at ``media_url``."""
        cached = self.cache.get(url)
        if cached is not None:
            self.logger.debug(f"Duration cache hit: {url} ({cached:.2f}s)")
            return cached

        timeouts = self.config.timeouts
        try:
            duration = await self.ffprobe_adapter.probe_duration(media_url, timeout=timeouts.ffprobe)
        except ProbeError as direct_error:
            self.logger.debug(f"Direct probe failed for {media_url}: {direct_error}; trying sample")
            try:
                await self.http_probe.download_sample(
                    media_url,
                    sample_path,
                    max_bytes=self.config.thumbnail.sample_bytes,
                    timeout=timeouts.sample_download,
                )
                duration = await self.ffprobe_adapter.probe_duration(str(sample_path), timeout=timeouts.ffprobe)
            except (SourceUnavailableError, ProbeError) as sample_error:
                raise ProbeError(
                    f"Unable to determine duration (direct: {direct_error}; sample: {sample_error})"
                )

        self.cache.set(url, duration)
        self.logger.debug(f"Duration cached: {url} ({duration:.2f}s)")
        return duration

    async def _extract(self, url: str, thumb_path: Path, offset: float, quality: int) -> None:
        thumb_cfg = self.config.thumbnail
        thumb_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = thumb_path.with_suffix(".tmp")
        try:
            await self.ffmpeg_adapter.extract_frame(
                url,
                tmp_path,
                offset=offset,
                quality=quality,
                max_width=thumb_cfg.max_width,
                max_height=thumb_cfg.max_height,
                timeout=self.config.timeouts.ffmpeg,
            )
            try:
                size = tmp_path.stat().st_size
            except FileNotFoundError:
                raise CorruptOutputError("ffmpeg produced no thumbnail")
            if size < thumb_cfg.min_bytes:
                raise CorruptOutputError(f"Thumbnail too small ({size} bytes), likely corrupt")
            tmp_path.replace(thumb_path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def _remove_sample(self, sample_path: Path) -> None:
        try:
            sample_path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Failed to cleanup sample file {sample_path}: {e}")
