import time
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console
from rich.progress import Progress, BarColumn, SpinnerColumn, TextColumn, TimeRemainingColumn
from rich.table import Table

from av1pass.domain.events import (
    DiscoveryFinished,
    EncodeFinished,
    EncodeProgress,
    EncodeStarted,
    ItemFinished,
    ItemResolved,
    ItemSized,
    ItemSkipped,
    ItemStarted,
    PassStarted,
    RunFinished,
    RunStarted,
)
from av1pass.domain.models import FilingState, RunStatistics
from av1pass.infrastructure.event_bus import EventBus
from av1pass.ui.formatting import format_bytes, format_duration, format_size_change, format_size_line

_STATE_STYLES = {
    FilingState.FINALIZED: "green",
    FilingState.FAILED: "red",
    FilingState.PENDING_STRONGER: "yellow",
    FilingState.STRONGER_EXHAUSTED: "yellow",
}


def summary_rows(stats: RunStatistics, elapsed_seconds: float) -> List[Tuple[str, str]]:
    """Projects RunStatistics onto the end-of-run summary lines."""
    return [
        ("Total files found", str(stats.files_discovered)),
        ("Successfully encoded (final AV1)", str(stats.finalized)),
        ("Failed files (no encode at all)", str(stats.failed)),
        ("Skipped (output already existed)", str(stats.skipped_existing)),
        ("Total input size", f"{stats.total_input_bytes} bytes ({format_bytes(stats.total_input_bytes)})"),
        ("Processed original size (final)",
         f"{stats.processed_original_bytes} bytes ({format_bytes(stats.processed_original_bytes)})"),
        ("Total encoded size (final)",
         f"{stats.processed_final_bytes} bytes ({format_bytes(stats.processed_final_bytes)})"),
        ("Overall size change (final)", format_size_change(stats.processed_original_bytes, stats.processed_final_bytes)),
        ("Stronger pass: finalized / still larger / left as-is",
         f"{stats.stronger_finalized} / {stats.stronger_exhausted} / {stats.stronger_skipped}"),
        ("Total elapsed time", format_duration(elapsed_seconds)),
    ]


class ConsoleReporter:
    """Subscribes to EventBus and prints progressive per-file output and the final summary."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(highlight=False)
        self._run_start = time.monotonic()
        self._folders: List[Tuple[str, Path]] = []
        self._progress: Optional[Progress] = None
        self._task_id = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(PassStarted, self.on_pass_started)
        self.bus.subscribe(ItemStarted, self.on_item_started)
        self.bus.subscribe(EncodeStarted, self.on_encode_started)
        self.bus.subscribe(EncodeProgress, self.on_encode_progress)
        self.bus.subscribe(EncodeFinished, self.on_encode_finished)
        self.bus.subscribe(ItemSized, self.on_item_sized)
        self.bus.subscribe(ItemResolved, self.on_item_resolved)
        self.bus.subscribe(ItemSkipped, self.on_item_skipped)
        self.bus.subscribe(ItemFinished, self.on_item_finished)
        self.bus.subscribe(RunFinished, self.on_run_finished)

    def on_run_started(self, event: RunStarted):
        self._run_start = time.monotonic()
        self._folders = [
            ("Final AV1 output folder", event.final_dir),
            ("Failed originals folder", event.failed_dir),
            ("Larger output folder", event.larger_dir),
            ("Needs stronger encoding folder", event.needs_stronger_dir),
        ]
        self.console.print(f"{'Source folder':<32}: {event.source_root}")
        for label, path in self._folders:
            self.console.print(f"{label:<32}: {path}")
        self.console.print()

    def on_discovery_finished(self, event: DiscoveryFinished):
        if event.files_found == 0:
            self.console.print("No matching video files found. Nothing to do.")
            return
        self.console.print(f"Found video files        : {event.files_found}")
        self.console.print(
            f"Total input size         : {event.total_input_bytes} bytes ({format_bytes(event.total_input_bytes)})"
        )
        self.console.print()

    def on_pass_started(self, event: PassStarted):
        if event.pass_name != "stronger":
            return
        if event.total > 0:
            self.console.print(f"Starting stronger pass for {event.total} file(s)...")
        else:
            self.console.print("No files need stronger encoding.")
        self.console.print()

    def on_item_started(self, event: ItemStarted):
        elapsed = format_duration(time.monotonic() - self._run_start)
        self.console.print(
            f"=== [{event.pass_name} {event.index}/{event.total}, total elapsed: {elapsed}] {event.rel_path} ===",
            style="bold",
            markup=False,
        )

    def on_encode_started(self, event: EncodeStarted):
        if event.duration <= 0 or not self.console.is_terminal:
            return
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._task_id = self._progress.add_task(f"Encoding ({event.pass_name})", total=100.0)

    def on_encode_progress(self, event: EncodeProgress):
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, completed=event.progress_percent)

    def on_encode_finished(self, event: EncodeFinished):
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task_id = None

    def on_item_sized(self, event: ItemSized):
        line = format_size_line(event.new_size, event.outcome.percent, event.outcome.shrunk)
        self.console.print(f"New size                : {line}", markup=False)

    def on_item_resolved(self, event: ItemResolved):
        message = event.message or event.state.value
        self.console.print(message, style=_STATE_STYLES[event.state], markup=False)

    def on_item_skipped(self, event: ItemSkipped):
        self.console.print(event.reason, markup=False)

    def on_item_finished(self, event: ItemFinished):
        self.console.print(f"Time for this file      : {format_duration(event.elapsed_seconds)}")
        self.console.print()

    def on_run_finished(self, event: RunFinished):
        self.console.print("All done.")
        self.console.print()

        table = Table(title="Summary", show_header=False, box=None, pad_edge=False)
        table.add_column("Item", style="bold")
        table.add_column("Value")
        for label, value in summary_rows(event.stats, event.elapsed_seconds):
            table.add_row(label, value)
        self.console.print(table)
        self.console.print()

        for label, path in self._folders:
            self.console.print(f"{label:<32}: {path}")
