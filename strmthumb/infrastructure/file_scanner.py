import os
from pathlib import Path
from typing import Generator, List

class FileScanner:
    """Recursively scans for .strm pointer files in a directory."""

    def __init__(self, extensions: List[str] = None):
        extensions = extensions or [".strm"]
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]

    def iter_files(self, root_dir: Path) -> Generator[Path, None, None]:
        """Walks the directory and yields matching file paths."""
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            # Ensure deterministic traversal: sort directories and files, skip hidden entries
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            files.sort()

            for file_name in files:
                if file_name.startswith("."):
                    continue
                file_path = root_path / file_name
                if file_path.suffix.lower() not in self.extensions:
                    continue
                if not file_path.is_file():
                    continue
                yield file_path

    def scan(self, root_dir: Path) -> List[str]:
        """Returns an ordered list of source identifiers (absolute path strings)."""
        root_dir = Path(root_dir)
        if not root_dir.is_dir():
            raise NotADirectoryError(f"Not a directory: {root_dir}")
        return [str(path) for path in self.iter_files(root_dir)]
