import logging
from pathlib import Path
from typing import List, Optional

from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(
    log_dir: Path,
    debug: bool = False,
    log_path: Optional[Path] = None,
    console: bool = False,
) -> logging.Logger:
    """
    Setup logging configuration for strmthumb.

    Creates the log directory and strmthumb.log file.
    Returns configured logger instance.

    Args:
        log_dir: Directory where strmthumb.log is written
        debug: If True, enable DEBUG level logging with detailed timings
        log_path: Optional path to log file (overrides log_dir)
        console: If True, also log to the terminal through rich
    """
    log_file = Path(log_path) if log_path else (Path(log_dir) / "strmthumb.log")
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    handlers: List[logging.Handler] = [logging.FileHandler(log_file, encoding="utf-8")]
    if console:
        handlers.append(RichHandler(show_path=False, rich_tracebacks=True))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True  # Override any existing configuration
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
