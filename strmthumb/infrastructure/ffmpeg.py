import asyncio
import logging
import time
from pathlib import Path
from typing import List

from strmthumb.domain.errors import ExtractionError
from strmthumb.infrastructure.process import run_command


def quality_to_qscale(quality: int) -> int:
    """Maps quality 1-100 onto the mjpeg -q:v scale (31 worst .. 2 best)."""
    quality = max(1, min(100, int(quality)))
    return round(2 + (100 - quality) * 29 / 99)


class FFmpegAdapter:
    """Wrapper around ffmpeg for single-frame thumbnail extraction."""

    def __init__(self, binary: str = "ffmpeg", debug: bool = False):
        self.binary = binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_command(
        self,
        source: str,
        output_path: Path,
        offset: float,
        quality: int,
        max_width: int,
        max_height: int,
    ) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        scale = (
            f"scale='min({max_width},iw)':'min({max_height},ih)'"
            ":force_original_aspect_ratio=decrease"
        )
        return [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-y",  # Overwrite output files
            "-ss", f"{max(0.0, offset):.3f}",  # Input seeking: cheap on remote sources
            "-i", source,
            "-frames:v", "1",
            "-q:v", str(quality_to_qscale(quality)),
            "-vf", scale,
            # Output path has a .tmp suffix, so the muxer must be explicit
            "-f", "image2",
            "-update", "1",
            "-c:v", "mjpeg",
            str(output_path),
        ]

    async def extract_frame(
        self,
        source: str,
        output_path: Path,
        offset: float,
        quality: int,
        max_width: int,
        max_height: int,
        timeout: float,
    ) -> None:
        """Writes one frame of ``source`` at ``offset`` seconds to ``output_path``."""
        cmd = self._build_command(source, output_path, offset, quality, max_width, max_height)
        start_time = time.monotonic()
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {cmd}")

        try:
            result = await run_command(cmd, timeout=timeout)
        except asyncio.TimeoutError:
            self._discard(output_path)
            raise ExtractionError(f"ffmpeg timed out after {timeout:g}s")
        except FileNotFoundError:
            raise ExtractionError(f"{self.binary} executable not found")

        if result.returncode != 0:
            self._discard(output_path)
            stderr = result.stderr.strip().splitlines()
            detail = f": {stderr[-1]}" if stderr else ""
            raise ExtractionError(f"ffmpeg exited with code {result.returncode}{detail}")

        if self.debug:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"FFMPEG_END: {output_path.name} offset={offset:.2f}s elapsed={elapsed:.2f}s")

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Failed to remove partial output {path}: {e}")
