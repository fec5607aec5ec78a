import os
import shutil
from pathlib import Path

class HousekeepingService:
    """Service for cleaning up scratch leftovers and unused filing areas."""

    def cleanup_temp_files(self, directory: Path) -> int:
        """Recursively removes all .tmp files in the directory. Returns the count removed."""
        removed = 0
        for root, dirs, files in os.walk(directory):
            for file in files:
                if file.endswith(".tmp"):
                    try:
                        (Path(root) / file).unlink()
                        removed += 1
                    except OSError:
                        pass
        return removed

    def remove_if_empty(self, directory: Path) -> bool:
        """Removes a directory tree that contains no regular file."""
        if not directory.is_dir():
            return False
        for root, dirs, files in os.walk(directory):
            if files:
                return False
        shutil.rmtree(directory, ignore_errors=True)
        return True
