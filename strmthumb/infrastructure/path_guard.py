import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

from strmthumb.domain.errors import UnsafeSourceError

logger = logging.getLogger(__name__)

_TRAVERSAL_PATTERNS = ("../", "..\\", "%2e%2e/", "%2e%2e\\", "..%2f", "..%5c", "%2e%2e%2f", "%2e%2e%5c")


def has_path_traversal(raw: str) -> bool:
    lowered = raw.lower().replace("\\", "/") if raw else ""
    if lowered in ("..", "%2e%2e") or lowered.endswith("/..") or lowered.endswith("/%2e%2e"):
        return True
    return any(pattern in raw.lower() for pattern in _TRAVERSAL_PATTERNS)


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


class PathGuard:
    """Keeps filesystem access inside the configured scope."""

    def __init__(self, allowed_roots: Iterable[str] = (), blocked_roots: Iterable[str] = ()):
        self.allowed_roots: List[Path] = [Path(os.path.abspath(os.path.expanduser(r))) for r in allowed_roots]
        self.blocked_roots: List[Path] = [Path(os.path.abspath(r)) for r in blocked_roots]

    def validate(self, raw: Union[str, Path], must_exist: bool = False, must_be_dir: bool = False) -> Path:
        """Returns the absolute form of ``raw`` or raises UnsafeSourceError."""
        text = str(raw)
        if not text.strip():
            raise UnsafeSourceError("Path is empty")
        if "\x00" in text:
            raise UnsafeSourceError("Path contains a NUL byte")
        if has_path_traversal(text):
            raise UnsafeSourceError(f"Path traversal detected: {text}")

        resolved = Path(os.path.abspath(os.path.expanduser(text)))

        for blocked in self.blocked_roots:
            if _is_within(resolved, blocked):
                logger.warning(f"Attempt to access system directory: {resolved}")
                raise UnsafeSourceError(f"Access to system directory is not allowed: {resolved}")

        if self.allowed_roots and not any(_is_within(resolved, root) for root in self.allowed_roots):
            raise UnsafeSourceError(f"Path outside allowed scope: {resolved}")

        if must_exist and not resolved.exists():
            raise UnsafeSourceError(f"Path does not exist: {resolved}")
        if must_be_dir and not resolved.is_dir():
            raise UnsafeSourceError(f"Path is not a directory: {resolved}")
        return resolved

    def is_allowed(self, raw: Union[str, Path]) -> bool:
        try:
            self.validate(raw)
        except UnsafeSourceError:
            return False
        return True

    def validate_optional(self, raw: Optional[Union[str, Path]]) -> Optional[Path]:
        if raw is None:
            return None
        return self.validate(raw)
