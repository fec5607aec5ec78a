import os
from pathlib import Path
from typing import Iterable, List, Generator, Optional
from av1pass.domain.models import SourceItem

class FileScanner:
    """Recursively scans a source tree for video files."""

    def __init__(self, extensions: List[str], exclude_dirs: Optional[Iterable[Path]] = None):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        self.exclude_dirs = {Path(d).resolve() for d in (exclude_dirs or [])}

    def _is_excluded(self, directory: Path) -> bool:
        return directory.resolve() in self.exclude_dirs

    def scan(self, root_dir: Path) -> Generator[SourceItem, None, None]:
        """Yields SourceItems in deterministic (sorted, depth-first) order."""
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            # Never descend into the filing areas (they live inside the source when it is ".")
            dirs[:] = sorted(d for d in dirs if not self._is_excluded(root_path / d))
            files.sort()

            for file_name in files:
                file_path = root_path / file_name

                if file_path.suffix.lower() not in self.extensions:
                    continue

                try:
                    if not file_path.is_file():
                        continue
                    file_size = file_path.stat().st_size
                except OSError:
                    # Unreadable entries are treated as unknown size
                    file_size = 0

                yield SourceItem(
                    path=file_path,
                    rel_path=file_path.relative_to(root_dir),
                    size_bytes=file_size,
                )
