"""Per-file error kinds raised by adapters and caught at the orchestrator's item boundary."""

from pathlib import Path
from typing import Optional


class PipelineError(Exception):
    """Base class for failures confined to a single file."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class ProbeError(PipelineError):
    """Media properties could not be read or were invalid."""


class EncodeError(PipelineError):
    """The encoder backend did not produce an output file."""

    def __init__(self, path: Path, reason: str, returncode: Optional[int] = None):
        super().__init__(path, reason)
        self.returncode = returncode


class ConsistencyError(PipelineError):
    """A companion file expected by the stronger pass is missing."""
