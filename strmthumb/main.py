import asyncio
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn
from rich.console import Console

from strmthumb.config.loader import DEFAULT_CONFIG_PATH, load_config
from strmthumb.config.models import AppConfig, BatchOptions
from strmthumb.config.overrides import CliConfigOverrides
from strmthumb.domain.errors import CacheWriteError, StrmThumbError
from strmthumb.domain.events import CompleteEvent, LogEvent
from strmthumb.domain.models import BatchProgress
from strmthumb.infrastructure.event_sink import BusEventSink
from strmthumb.infrastructure.logging import setup_logging
from strmthumb.infrastructure.web_server import create_app
from strmthumb.services import Services, build_services
from strmthumb.ui.dashboard import Dashboard
from strmthumb.ui.manager import UIManager
from strmthumb.ui.state import UIState

app = typer.Typer(help="strmthumb - thumbnails and NFO sidecars for .strm media libraries")

console = Console()


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _load(config_path: Optional[Path], overrides: CliConfigOverrides) -> AppConfig:
    try:
        config = load_config(config_path)
        if overrides.has_overrides:
            overrides.apply(config)
    except FileNotFoundError as exc:
        _fail(str(exc))
    except ValueError as exc:
        _fail(f"Invalid configuration: {exc}")
    return config


def _log_path(config: AppConfig) -> Optional[Path]:
    return Path(config.logging.log_path) if config.logging.log_path else None


def merge_attempts(total: int, attempts: List[CompleteEvent]) -> CompleteEvent:
    """Folds a batch and its retry batches into one summary.

    Only the last attempt's failures count; every identifier retried
    successfully is moved from failed to succeeded.
    """
    first = attempts[0]
    failed = list(attempts[-1].failed_identifiers)
    skipped = sum(a.progress.skipped for a in attempts)
    progress = BatchProgress(
        total=total,
        processed=first.progress.processed,
        succeeded=total - len(failed),
        failed=len(failed),
        skipped=skipped,
    )
    return CompleteEvent(progress=progress, failed_identifiers=failed)


async def run_with_retries(
    services: Services,
    files: List[str],
    options: BatchOptions,
    retries: int,
) -> CompleteEvent:
    """Runs a batch, then resubmits its failures as new batches up to ``retries`` times."""
    sink = BusEventSink(services.bus)
    await services.startup()
    try:
        attempts = [await services.orchestrator.run_batch(files, options, sink)]
        for attempt in range(1, retries + 1):
            failed = attempts[-1].failed_identifiers
            if not failed:
                break
            sink.emit(LogEvent(message=f"Retry {attempt}/{retries}: {len(failed)} failed files", level="info"))
            attempts.append(await services.orchestrator.run_batch(failed, options, sink))
        return merge_attempts(len(files), attempts)
    finally:
        await services.shutdown()


def _common_overrides(
    debug: bool,
    log_path: Optional[Path],
    cache_file: Optional[Path] = None,
    tmp_dir: Optional[Path] = None,
    **kwargs,
) -> CliConfigOverrides:
    return CliConfigOverrides(
        debug=debug,
        log_path=str(log_path) if log_path else None,
        cache_file=str(cache_file) if cache_file else None,
        tmp_dir=str(tmp_dir) if tmp_dir else None,
        **kwargs,
    )


@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help=f"Path to YAML config (default {DEFAULT_CONFIG_PATH})"),
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port"),
    cache_file: Optional[Path] = typer.Option(None, "--cache-file", help="Duration cache file"),
    tmp_dir: Optional[Path] = typer.Option(None, "--tmp-dir", help="Directory for per-job samples"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Start the HTTP API."""
    config = _load(config_path, _common_overrides(debug, log_path, cache_file, tmp_dir, host=host, port=port))
    logger = setup_logging(Path("logs"), debug=config.logging.debug, log_path=_log_path(config), console=True)
    logger.info(
        f"Config: concurrency={config.concurrency.default} ({config.concurrency.min}-{config.concurrency.max}), "
        f"quality={config.thumbnail.quality}, position={config.thumbnail.position}, "
        f"auth={'ON' if config.server.api_token else 'OFF'}"
    )
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port, log_config=None)


@app.command()
def scan(
    directory: Path = typer.Argument(..., help="Directory to search for .strm files"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """List .strm files under a directory."""
    config = _load(config_path, CliConfigOverrides())
    services = build_services(config)
    try:
        root = services.path_guard.validate(directory, must_exist=True, must_be_dir=True)
    except StrmThumbError as exc:
        _fail(str(exc))
    files = services.scanner.scan(root)
    for identifier in files:
        typer.echo(identifier)
    typer.secho(f"{len(files)} .strm files found", fg=typer.colors.GREEN, err=True)


@app.command()
def process(
    directory: Path = typer.Argument(..., help="Directory with .strm files"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Write thumbnails here instead of beside each .strm"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Regenerate thumbnails that already exist"),
    position: Optional[str] = typer.Option(None, "--position", help="start, middle, end, auto, or seconds"),
    quality: Optional[int] = typer.Option(None, "--quality", "-q", help="JPEG quality 1-100"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-t", help="Requested concurrent jobs"),
    retries: int = typer.Option(0, "--retries", min=0, help="Resubmit failed files up to N times"),
    cache_file: Optional[Path] = typer.Option(None, "--cache-file", help="Duration cache file"),
    tmp_dir: Optional[Path] = typer.Option(None, "--tmp-dir", help="Directory for per-job samples"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Generate thumbnails and NFO files for every .strm under a directory."""
    config = _load(config_path, _common_overrides(debug, log_path, cache_file, tmp_dir))

    try:
        options = BatchOptions(
            overwrite_mode="always" if overwrite else "skip-existing",
            position=position,
            quality=quality,
            output_directory=output_dir,
            concurrency=concurrency,
        )
    except ValueError as exc:
        _fail(str(exc))

    try:
        services = build_services(config)
        root = services.path_guard.validate(directory, must_exist=True, must_be_dir=True)
        if options.output_directory is not None:
            options = options.model_copy(update={"output_directory": services.path_guard.validate(options.output_directory)})

        log_dir = options.output_directory or root
        logger = setup_logging(log_dir, debug=config.logging.debug, log_path=_log_path(config))
        logger.info(f"strmthumb started: directory={root}, output={options.output_directory or 'beside source'}")

        files = services.scanner.scan(root)
        if not files:
            typer.secho("No .strm files found.", fg=typer.colors.YELLOW)
            return

        cleaned = services.housekeeping.cleanup_temp_files(files, options.output_directory)
        if cleaned:
            logger.info(f"Removed {cleaned} partial thumbnails")

        ui_state = UIState()
        ui_state.config_lines = [
            f"Start: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Files: {len(files)}",
            f"Position: {options.position if options.position is not None else config.thumbnail.position}",
            f"Quality: {options.quality or config.thumbnail.quality}",
        ]
        ui_manager = UIManager(services.bus, ui_state)
        dashboard = Dashboard(ui_state, console=console)
        try:
            with dashboard:
                summary = asyncio.run(run_with_retries(services, files, options, retries))
        finally:
            ui_manager.close()
        ui_state.mark_finished(summary.progress, summary.failed_identifiers)
        console.print(dashboard.render_summary())

        if summary.failed_identifiers:
            raise typer.Exit(code=1)

    except KeyboardInterrupt:
        typer.secho("\n✓ Processing stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except (StrmThumbError, OSError, ValueError) as e:
        _fail(str(e))


@app.command()
def cache(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    cache_file: Optional[Path] = typer.Option(None, "--cache-file", help="Duration cache file"),
    prune_days: Optional[float] = typer.Option(None, "--prune-days", min=0, help="Evict entries older than N days"),
    clear: bool = typer.Option(False, "--clear", help="Remove every entry"),
):
    """Show duration cache statistics, optionally pruning or clearing it."""
    config = _load(config_path, _common_overrides(False, None, cache_file))
    services = build_services(config)
    duration_cache = services.cache

    async def _run() -> dict:
        await duration_cache.load()
        if clear:
            duration_cache.clear()
        elif prune_days is not None:
            removed = duration_cache.prune_older_than(prune_days * 86400)
            typer.echo(f"Pruned {removed} entries")
        await duration_cache.save()
        return duration_cache.stats()

    try:
        stats = asyncio.run(_run())
    except CacheWriteError as exc:
        _fail(str(exc))
    typer.echo(f"Cache file: {duration_cache.cache_file}")
    typer.echo(f"Entries: {stats['total']}")
    for kind, count in sorted(stats["types"].items()):
        typer.echo(f"  {kind}: {count}")


if __name__ == "__main__":
    app()
