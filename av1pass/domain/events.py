"""Domain events for the two-pass re-encode pipeline.

The orchestrator publishes these on the EventBus instead of printing, so the
console reporter (and tests) can observe every transition without coupling to
the pipeline. See `infrastructure/event_bus.py` for delivery rules.
"""

from pathlib import Path
from pydantic import BaseModel

from .models import FilingState, Outcome, RunStatistics


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class RunStarted(Event):
    source_root: Path
    final_dir: Path
    failed_dir: Path
    larger_dir: Path
    needs_stronger_dir: Path


class DiscoveryFinished(Event):
    files_found: int
    total_input_bytes: int


class PassStarted(Event):
    """Emitted before the main pass and before the stronger pass."""

    pass_name: str
    total: int


class ItemEvent(Event):
    """Base class for events about a single file in one of the passes."""

    pass_name: str
    rel_path: Path


class ItemStarted(ItemEvent):
    index: int
    total: int


class EncodeStarted(ItemEvent):
    duration: float = 0.0


class EncodeProgress(ItemEvent):
    progress_percent: float


class EncodeFinished(ItemEvent):
    pass


class ItemSized(ItemEvent):
    """Emitted once the size of a fresh encode is known."""

    new_size: int
    outcome: Outcome


class ItemResolved(ItemEvent):
    """Emitted when an item reaches a resting state in this pass."""

    state: FilingState
    message: str = ""


class ItemSkipped(ItemEvent):
    """Item left unchanged (already finalized, or not retryable right now)."""

    reason: str


class ItemFinished(ItemEvent):
    elapsed_seconds: float


class RunFinished(Event):
    stats: RunStatistics
    elapsed_seconds: float
