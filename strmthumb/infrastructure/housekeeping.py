import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

class HousekeepingService:
    """Service for cleaning up per-job samples and partial thumbnails."""

    def cleanup_sample_dir(self, tmp_dir: Path) -> int:
        """Removes every file directly inside the sample directory; returns the count."""
        tmp_dir = Path(tmp_dir)
        if not tmp_dir.is_dir():
            return 0
        cleaned = 0
        for entry in tmp_dir.iterdir():
            if not entry.is_file():
                continue
            try:
                entry.unlink()
                cleaned += 1
            except OSError:
                pass
        if cleaned:
            logger.info(f"Removed {cleaned} stale sample files from {tmp_dir}")
        return cleaned

    def cleanup_temp_files(self, sources: Iterable[str], output_directory: Optional[Path] = None) -> int:
        """Removes the partial thumbnail ``<stem>.tmp`` left by an interrupted write for each source.

        Only the ``.tmp`` path strmthumb itself would write for a listed .strm
        file is touched; other ``.tmp`` files are left alone.
        """
        cleaned = 0
        for source in sources:
            source = Path(source)
            folder = Path(output_directory) if output_directory else source.parent
            partial = folder / f"{source.stem}.tmp"
            if not partial.is_file():
                continue
            try:
                partial.unlink()
                cleaned += 1
            except OSError:
                pass
        return cleaned
