"""Filing areas: the final output tree plus the three holding trees.

Every tree mirrors the relative layout of the source tree. Encoded artifacts
always carry an ``.mp4`` name; copies of originals keep their own name.
"""

import os
import shutil
import logging
from pathlib import Path
from typing import Dict, Generator

SCRATCH_DIRNAME = ".tmp_av1pass"
ARTIFACT_SUFFIX = ".mp4"


class FilingAreas:
    """Path-keyed store over the four trees that hold a run's results."""

    def __init__(self, source_root: Path, final_dir: Path, failed_dir: Path, larger_dir: Path, needs_stronger_dir: Path):
        self.source_root = source_root
        self.final_dir = final_dir
        self.failed_dir = failed_dir
        self.larger_dir = larger_dir
        self.needs_stronger_dir = needs_stronger_dir
        self.scratch_dir = final_dir / SCRATCH_DIRNAME
        self.logger = logging.getLogger(__name__)
        self.pre_existing: Dict[Path, bool] = {d: d.exists() for d in self.all_dirs()}

    @classmethod
    def for_source(cls, source_root: Path) -> "FilingAreas":
        """Derives sibling trees (``<src>_av1`` etc.), or ``./av1_*`` for the current directory."""
        source_root = Path(source_root)
        if str(source_root) in (".", "./"):
            base = Path(".")
            return cls(
                source_root=base,
                final_dir=base / "av1_output",
                failed_dir=base / "av1_failed_originals",
                larger_dir=base / "av1_larger_output",
                needs_stronger_dir=base / "av1_needs_stronger_encoding",
            )
        if source_root.name in ("", ".."):
            source_root = source_root.resolve()
        name = source_root.name
        return cls(
            source_root=source_root,
            final_dir=source_root.with_name(f"{name}_av1"),
            failed_dir=source_root.with_name(f"{name}_failed_originals"),
            larger_dir=source_root.with_name(f"{name}_larger_output"),
            needs_stronger_dir=source_root.with_name(f"{name}_needs_stronger_encoding"),
        )

    def all_dirs(self):
        return [self.final_dir, self.failed_dir, self.larger_dir, self.needs_stronger_dir, self.scratch_dir]

    # Path resolution

    def source_path(self, rel_path: Path) -> Path:
        return self.source_root / rel_path

    def final_path(self, rel_path: Path) -> Path:
        return self.final_dir / rel_path.with_suffix(ARTIFACT_SUFFIX)

    def failed_path(self, rel_path: Path) -> Path:
        return self.failed_dir / rel_path

    def larger_path(self, rel_path: Path) -> Path:
        return self.larger_dir / rel_path.with_suffix(ARTIFACT_SUFFIX)

    def needs_stronger_path(self, rel_path: Path) -> Path:
        return self.needs_stronger_dir / rel_path

    def scratch_path(self, rel_path: Path, pass_name: str) -> Path:
        return self.scratch_dir / rel_path.parent / f"{rel_path.stem}.{pass_name}.tmp"

    # Mutations

    @staticmethod
    def _copy(source: Path, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(source), str(target))
        return target

    @staticmethod
    def _move(source: Path, target: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        return target

    def copy_to_failed(self, source: Path, rel_path: Path) -> Path:
        """Copies an original into the failed tree; the original stays where it is."""
        return self._copy(source, self.failed_path(rel_path))

    def copy_to_needs_stronger(self, source: Path, rel_path: Path) -> Path:
        return self._copy(source, self.needs_stronger_path(rel_path))

    def promote(self, artifact: Path, rel_path: Path) -> Path:
        """Moves a finished encode to its canonical place in the final tree."""
        return self._move(artifact, self.final_path(rel_path))

    def move_to_larger(self, artifact: Path, rel_path: Path) -> Path:
        """Moves an encode into the larger-output tree, replacing any earlier attempt."""
        return self._move(artifact, self.larger_path(rel_path))

    def delete(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    # Queries

    def has_final(self, rel_path: Path) -> bool:
        return self.final_path(rel_path).is_file()

    def iter_needs_stronger(self) -> Generator[Path, None, None]:
        """Yields relative paths of every regular file in the needs-stronger tree, sorted."""
        root_dir = self.needs_stronger_dir
        if not root_dir.is_dir():
            return
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)
            dirs.sort()
            files.sort()
            for file_name in files:
                file_path = root_path / file_name
                if file_path.is_file():
                    yield file_path.relative_to(root_dir)
