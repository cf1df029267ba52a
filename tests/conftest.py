import pytest
import yaml
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from strmthumb.config.models import AppConfig
from strmthumb.infrastructure.duration_cache import DurationCache
from strmthumb.infrastructure.event_bus import EventBus
from strmthumb.infrastructure.event_sink import ListEventSink
from strmthumb.pipeline.processor import ThumbnailProcessor

PUBLIC_URL = "http://93.184.216.34/video.mp4"

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns an AppConfig whose writable paths live under tmp_path."""
    return AppConfig(
        paths={
            "tmp_dir": str(tmp_path / "samples"),
            "cache_file": str(tmp_path / "cache" / "durations.json"),
            "blocked_roots": ["/etc", "/proc", "/sys"],
        },
        concurrency={
            "default": 4,
            "min": 2,
            "max": 8,
            "small_batch_threshold": 10,
            "large_batch_threshold": 100,
            "large_batch_multiplier": 1.5,
        },
        thumbnail={"quality": 85, "position": "middle", "min_bytes": 1000},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "strmthumb.yaml"

    content = {
        'server': {'port': 3100, 'api_token': 'secret'},
        'concurrency': {'default': 3, 'min': 2, 'max': 6},
        'thumbnail': {'quality': 70, 'position': 'start'},
        'cache': {'max_age_days': 7},
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus / Sink Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

@pytest.fixture
def list_sink():
    return ListEventSink()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def library_dir(tmp_path):
    """Creates an empty media library directory."""
    library = tmp_path / "library"
    library.mkdir()
    return library

@pytest.fixture
def make_strm(library_dir):
    """Factory writing a .strm pointer file; returns its path."""
    def _make(name: str, url: str = PUBLIC_URL, subdir: str = None) -> Path:
        folder = library_dir / subdir if subdir else library_dir
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / f"{name}.strm"
        path.write_text(f"{url}\n", encoding="utf-8")
        return path
    return _make

# ============================================================================
# Pipeline Fixtures (no network, no ffmpeg)
# ============================================================================

@pytest.fixture
def duration_cache(sample_config):
    return DurationCache(Path(sample_config.paths.cache_file))

@pytest.fixture
def fake_ffmpeg():
    """FFmpegAdapter stand-in that writes a 4 KB 'jpeg' to the requested path."""
    adapter = MagicMock()

    async def _extract(source, output_path, **kwargs):
        Path(output_path).write_bytes(b"\xff\xd8" + b"\x00" * 4096)

    adapter.extract_frame = AsyncMock(side_effect=_extract)
    return adapter

@pytest.fixture
def fake_ffprobe():
    adapter = MagicMock()
    adapter.probe_duration = AsyncMock(return_value=120.0)
    return adapter

@pytest.fixture
def fake_http():
    probe = MagicMock()
    probe.is_reachable = AsyncMock(return_value=True)

    async def _resolve(url, timeout):
        # no redirects: reachable URLs resolve to themselves
        return url if await probe.is_reachable(url, timeout=timeout) else None

    probe.resolve = AsyncMock(side_effect=_resolve)
    probe.download_sample = AsyncMock(return_value=1024)
    probe.aclose = AsyncMock()
    return probe

@pytest.fixture
def fake_url_guard():
    guard = MagicMock()
    guard.validate = AsyncMock(side_effect=lambda url: url)
    return guard

@pytest.fixture
def processor(sample_config, duration_cache, fake_ffprobe, fake_ffmpeg, fake_http, fake_url_guard):
    return ThumbnailProcessor(
        config=sample_config,
        cache=duration_cache,
        ffprobe_adapter=fake_ffprobe,
        ffmpeg_adapter=fake_ffmpeg,
        http_probe=fake_http,
        url_guard=fake_url_guard,
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
