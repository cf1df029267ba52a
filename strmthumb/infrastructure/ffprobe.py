import asyncio
import json
import logging
import math
from typing import Any, Dict

from strmthumb.domain.errors import ProbeError
from strmthumb.infrastructure.process import run_command

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_duration_tag(value: Any) -> float:
    """Parses '90.5', 'MM:SS' or 'HH:MM:SS.fff' duration tags; 0.0 when unusable."""
    if value is None:
        return 0.0
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass
    parts = text.split(":")
    if len(parts) not in (2, 3):
        return 0.0
    try:
        numbers = [float(p) for p in parts]
    except ValueError:
        return 0.0
    seconds = 0.0
    for number in numbers:
        seconds = seconds * 60 + number
    return seconds


def parse_time_base_duration(duration_ts: Any, time_base: Any) -> float:
    if duration_ts is None or time_base is None or "/" not in str(time_base):
        return 0.0
    num_text, den_text = str(time_base).split("/", 1)
    den = _to_float(den_text)
    ticks = _to_float(duration_ts)
    if den == 0 or ticks <= 0:
        return 0.0
    return ticks * _to_float(num_text) / den


def duration_from_probe(data: Dict[str, Any]) -> float:
    """Picks the first usable duration from ffprobe JSON output.

    Order: format.duration, format tags, stream.duration, stream tags,
    duration_ts/time_base.
    """
    fmt = data.get("format", {}) or {}
    streams = data.get("streams", []) or []
    video = next((s for s in streams if s.get("codec_type") == "video"), streams[0] if streams else {})

    candidates = (
        lambda: _to_float(fmt.get("duration")),
        lambda: parse_duration_tag((fmt.get("tags") or {}).get("DURATION") or (fmt.get("tags") or {}).get("duration")),
        lambda: _to_float(video.get("duration")),
        lambda: parse_duration_tag((video.get("tags") or {}).get("DURATION") or (video.get("tags") or {}).get("duration")),
        lambda: parse_time_base_duration(video.get("duration_ts"), video.get("time_base")),
    )
    for candidate in candidates:
        duration = candidate()
        if duration > 0 and math.isfinite(duration):
            return duration
    return 0.0


class FFprobeAdapter:
    """Wrapper around ffprobe to read a media duration."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary

    def _build_command(self, source: str) -> list:
        return [
            self.binary,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            source,
        ]

    async def probe_duration(self, source: str, timeout: float) -> float:
        """Returns a positive, finite duration in seconds for a URL or local path."""
        cmd = self._build_command(source)
        try:
            result = await run_command(cmd, timeout=timeout)
        except asyncio.TimeoutError:
            raise ProbeError(f"ffprobe timed out after {timeout:g}s")
        except FileNotFoundError:
            raise ProbeError(f"{self.binary} executable not found")

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            detail = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise ProbeError(f"ffprobe failed: {detail}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned invalid JSON: {e}")

        duration = duration_from_probe(data)
        if duration <= 0:
            raise ProbeError("ffprobe reported no usable duration")
        return duration
