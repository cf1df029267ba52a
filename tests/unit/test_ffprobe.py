import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from strmthumb.domain.errors import ProbeError
from strmthumb.infrastructure.ffprobe import (
    FFprobeAdapter,
    duration_from_probe,
    parse_duration_tag,
    parse_time_base_duration,
)
from strmthumb.infrastructure.process import CommandResult


def _ok(payload):
    return CommandResult(returncode=0, stdout=json.dumps(payload), stderr="")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("90.5", 90.5),
        ("01:30", 90.0),
        ("00:00:05.00", 5.0),
        ("01:00:00.500", 3600.5),
        ("", 0.0),
        (None, 0.0),
        ("n/a", 0.0),
        ("1:2:3:4", 0.0),
    ],
)
def test_parse_duration_tag(value, expected):
    assert parse_duration_tag(value) == pytest.approx(expected)


def test_parse_time_base_duration():
    assert parse_time_base_duration(90000, "1/1000") == pytest.approx(90.0)
    assert parse_time_base_duration(None, "1/1000") == 0.0
    assert parse_time_base_duration(100, "1/0") == 0.0
    assert parse_time_base_duration(100, "bogus") == 0.0


def test_duration_fallback_order():
    assert duration_from_probe({"format": {"duration": "10.0"}}) == 10.0
    assert duration_from_probe({
        "format": {"duration": "0", "tags": {"DURATION": "00:00:05.00"}},
    }) == pytest.approx(5.0)
    assert duration_from_probe({
        "format": {"duration": "N/A"},
        "streams": [
            {"codec_type": "audio", "duration": "99"},
            {"codec_type": "video", "duration": "12.5"},
        ],
    }) == 12.5
    assert duration_from_probe({
        "format": {},
        "streams": [{"codec_type": "video", "tags": {"duration": "00:01:00"}}],
    }) == 60.0
    assert duration_from_probe({
        "streams": [{"codec_type": "video", "duration_ts": 450000, "time_base": "1/90000"}],
    }) == pytest.approx(5.0)
    assert duration_from_probe({}) == 0.0


@pytest.mark.asyncio
async def test_probe_duration_builds_json_command():
    adapter = FFprobeAdapter()
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(return_value=_ok({"format": {"duration": "42"}}))) as mock_run:
        duration = await adapter.probe_duration("http://93.184.216.34/a.mp4", timeout=10)

    assert duration == 42.0
    cmd = mock_run.call_args.args[0]
    assert cmd[0] == "ffprobe"
    assert "-show_format" in cmd
    assert cmd[cmd.index("-print_format") + 1] == "json"
    assert cmd[-1] == "http://93.184.216.34/a.mp4"
    assert mock_run.call_args.kwargs["timeout"] == 10


@pytest.mark.asyncio
async def test_probe_duration_nonzero_exit():
    result = CommandResult(returncode=1, stdout="", stderr="line1\nServer returned 404 Not Found\n")
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(return_value=result)):
        with pytest.raises(ProbeError, match="404 Not Found"):
            await FFprobeAdapter().probe_duration("x", timeout=1)


@pytest.mark.asyncio
async def test_probe_duration_timeout():
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(side_effect=asyncio.TimeoutError)):
        with pytest.raises(ProbeError, match="timed out"):
            await FFprobeAdapter().probe_duration("x", timeout=3)


@pytest.mark.asyncio
async def test_probe_duration_missing_binary():
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(side_effect=FileNotFoundError)):
        with pytest.raises(ProbeError, match="not found"):
            await FFprobeAdapter(binary="ffprobe-missing").probe_duration("x", timeout=3)


@pytest.mark.asyncio
async def test_probe_duration_invalid_json():
    result = CommandResult(returncode=0, stdout="{oops", stderr="")
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(return_value=result)):
        with pytest.raises(ProbeError, match="invalid JSON"):
            await FFprobeAdapter().probe_duration("x", timeout=3)


@pytest.mark.asyncio
async def test_probe_duration_zero_is_error():
    with patch("strmthumb.infrastructure.ffprobe.run_command", new=AsyncMock(return_value=_ok({"format": {"duration": "0"}}))):
        with pytest.raises(ProbeError, match="no usable duration"):
            await FFprobeAdapter().probe_duration("x", timeout=3)
