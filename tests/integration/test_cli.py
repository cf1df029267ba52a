import json
import logging
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from strmthumb.main import app
from strmthumb.services import build_services

pytestmark = pytest.mark.integration

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """No conf/strmthumb.yaml in cwd, and the root logger restored afterwards."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def faked_build_services(fake_ffprobe, fake_ffmpeg, fake_http, fake_url_guard):
    def _build(config):
        services = build_services(config, url_guard=fake_url_guard, http_probe=fake_http)
        services.processor.ffprobe_adapter = fake_ffprobe
        services.processor.ffmpeg_adapter = fake_ffmpeg
        return services

    with patch("strmthumb.main.build_services", side_effect=_build) as mock_build:
        yield mock_build


def _paths(tmp_path):
    return ["--cache-file", str(tmp_path / "cache.json"), "--tmp-dir", str(tmp_path / "samples")]


def test_scan_prints_identifiers(make_strm, library_dir):
    first = make_strm("one")
    second = make_strm("two", subdir="s1")

    result = runner.invoke(app, ["scan", str(library_dir)])

    assert result.exit_code == 0
    assert str(first) in result.stdout
    assert str(second) in result.stdout


def test_scan_missing_directory(tmp_path):
    result = runner.invoke(app, ["scan", str(tmp_path / "absent")])
    assert result.exit_code == 1


def test_process_generates_thumbnails(make_strm, library_dir, tmp_path, faked_build_services):
    a = make_strm("Alpha")
    b = make_strm("Beta")

    result = runner.invoke(app, ["process", str(library_dir), *_paths(tmp_path)])

    assert result.exit_code == 0, result.stdout
    assert a.with_suffix(".jpg").exists()
    assert b.with_suffix(".nfo").exists()
    assert (library_dir / "strmthumb.log").exists()
    cache = json.loads((tmp_path / "cache.json").read_text())
    assert len(cache) == 1  # both files share one URL


def test_process_retries_failed_files(make_strm, library_dir, tmp_path, fake_http, faked_build_services):
    make_strm("Flaky")
    fake_http.is_reachable.side_effect = [False, True]

    result = runner.invoke(app, ["process", str(library_dir), "--retries", "1", *_paths(tmp_path)])

    assert result.exit_code == 0, result.stdout
    assert fake_http.is_reachable.await_count == 2
    assert (library_dir / "Flaky.jpg").exists()


def test_process_exit_code_when_failures_remain(make_strm, library_dir, tmp_path, fake_http, faked_build_services):
    make_strm("Broken")
    fake_http.is_reachable.return_value = False

    result = runner.invoke(app, ["process", str(library_dir), *_paths(tmp_path)])

    assert result.exit_code == 1
    assert "Failed files" in result.stdout


def test_process_rejects_bad_position(library_dir, tmp_path):
    result = runner.invoke(app, ["process", str(library_dir), "--position", "sideways", *_paths(tmp_path)])
    assert result.exit_code == 1


def test_process_empty_directory(library_dir, tmp_path, faked_build_services):
    result = runner.invoke(app, ["process", str(library_dir), *_paths(tmp_path)])
    assert result.exit_code == 0
    assert "No .strm files found" in result.stdout


def test_cache_prune(tmp_path):
    cache_file = tmp_path / "cache.json"
    cache_file.write_text(json.dumps({
        "duration:http://h/old": {"duration": 10, "timestamp": 1},
        "duration:http://h/legacy": 20,
    }))

    result = runner.invoke(app, ["cache", "--cache-file", str(cache_file), "--prune-days", "1"])

    assert result.exit_code == 0
    assert "Pruned 1 entries" in result.stdout
    assert "Entries: 1" in result.stdout
    assert list(json.loads(cache_file.read_text())) == ["duration:http://h/legacy"]


def test_process_cleans_only_own_partial_thumbnails(make_strm, library_dir, tmp_path, faked_build_services):
    make_strm("Alpha")
    (library_dir / "Alpha.tmp").write_bytes(b"partial")
    (library_dir / "notes.tmp").write_text("not ours")

    result = runner.invoke(app, ["process", str(library_dir), *_paths(tmp_path)])

    assert result.exit_code == 0, result.stdout
    assert not (library_dir / "Alpha.tmp").exists()
    assert (library_dir / "Alpha.jpg").exists()
    assert (library_dir / "notes.tmp").read_text() == "not ours"
