import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from strmthumb.domain.errors import ExtractionError
from strmthumb.infrastructure.ffmpeg import FFmpegAdapter, quality_to_qscale
from strmthumb.infrastructure.process import CommandResult


@pytest.mark.parametrize("quality, qscale", [(100, 2), (1, 31), (85, 6), (150, 2), (0, 31)])
def test_quality_to_qscale(quality, qscale):
    assert quality_to_qscale(quality) == qscale


def test_build_command_single_frame_jpeg():
    adapter = FFmpegAdapter()
    cmd = adapter._build_command(
        "http://93.184.216.34/a.mp4", Path("/out/a.tmp"), offset=61.25, quality=85, max_width=1920, max_height=1080
    )

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-ss") + 1] == "61.250"
    assert cmd.index("-ss") < cmd.index("-i")
    assert cmd[cmd.index("-i") + 1] == "http://93.184.216.34/a.mp4"
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    assert cmd[cmd.index("-q:v") + 1] == "6"
    assert cmd[cmd.index("-f") + 1] == "image2"
    assert "min(1920,iw)" in cmd[cmd.index("-vf") + 1]
    assert cmd[-1] == "/out/a.tmp"


def test_build_command_never_seeks_negative():
    cmd = FFmpegAdapter()._build_command("x", Path("o.tmp"), offset=-3, quality=50, max_width=10, max_height=10)
    assert cmd[cmd.index("-ss") + 1] == "0.000"


@pytest.mark.asyncio
async def test_extract_frame_success(tmp_path):
    adapter = FFmpegAdapter()
    output = tmp_path / "thumb.tmp"
    ok = CommandResult(returncode=0, stdout="", stderr="")
    with patch("strmthumb.infrastructure.ffmpeg.run_command", new=AsyncMock(return_value=ok)) as mock_run:
        await adapter.extract_frame("src", output, offset=1, quality=85, max_width=640, max_height=360, timeout=30)

    assert mock_run.call_args.kwargs["timeout"] == 30


@pytest.mark.asyncio
async def test_extract_frame_failure_discards_partial(tmp_path):
    output = tmp_path / "thumb.tmp"
    output.write_bytes(b"partial")
    failed = CommandResult(returncode=1, stdout="", stderr="Invalid data found when processing input\n")
    with patch("strmthumb.infrastructure.ffmpeg.run_command", new=AsyncMock(return_value=failed)):
        with pytest.raises(ExtractionError, match="Invalid data"):
            await FFmpegAdapter().extract_frame("src", output, 1, 85, 640, 360, timeout=30)

    assert not output.exists()


@pytest.mark.asyncio
async def test_extract_frame_timeout(tmp_path):
    output = tmp_path / "thumb.tmp"
    with patch("strmthumb.infrastructure.ffmpeg.run_command", new=AsyncMock(side_effect=asyncio.TimeoutError)):
        with pytest.raises(ExtractionError, match="timed out after 30s"):
            await FFmpegAdapter().extract_frame("src", output, 1, 85, 640, 360, timeout=30)
