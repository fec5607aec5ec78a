"""Two-pass pipeline orchestrator.

Drives one run over a source tree:

- Discovery: a single sorted scan fixes the set of SourceItems for the run.
- Main pass: every item is probed, planned, encoded with the main profile and
  filed as Finalized, Failed or PendingStronger.
- Stronger pass: after the main pass has finished, every entry of the
  needs-stronger tree is re-encoded from its original with the stronger
  profile and filed as Finalized or StrongerExhausted.

Each item's state is kept in ``self.states``; the filing-area trees are the
on-disk projection of that index. Encodes always land in the scratch area
first and are only moved into a tree after classification, so an interrupted
run never leaves a partial file where a finished one is expected.

Per-file problems never escape the item boundary. Only a missing source root
is fatal, and it is detected before any file is touched.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from av1pass.config.models import AppConfig, EncodeProfile
from av1pass.domain import planning
from av1pass.domain.errors import ConsistencyError, EncodeError, PipelineError, ProbeError
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
from av1pass.domain.models import AttemptResult, FilingState, Outcome, RunStatistics, SourceItem
from av1pass.domain.outcome import classify
from av1pass.infrastructure.event_bus import EventBus
from av1pass.infrastructure.ffmpeg import FFmpegAdapter
from av1pass.infrastructure.ffprobe import FFprobeAdapter
from av1pass.infrastructure.file_scanner import FileScanner
from av1pass.infrastructure.filing import FilingAreas
from av1pass.infrastructure.housekeeping import HousekeepingService

MAIN_PASS = "main"
STRONGER_PASS = "stronger"


class Orchestrator:
    """Runs the main pass and the stronger pass over one source tree.

    Args:
        config: AppConfig with limits and the two encode profiles.
        event_bus: EventBus receiving run, pass and per-item events.
        areas: FilingAreas for the source tree.
        file_scanner: FileScanner for source discovery.
        ffprobe_adapter: FFprobeAdapter used to read media properties.
        ffmpeg_adapter: FFmpegAdapter used for every encode attempt.
        housekeeper: Optional HousekeepingService for scratch and empty-area cleanup.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        areas: FilingAreas,
        file_scanner: FileScanner,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        housekeeper: Optional[HousekeepingService] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.areas = areas
        self.file_scanner = file_scanner
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.housekeeper = housekeeper or HousekeepingService()
        self.logger = logging.getLogger(__name__)

        self.stats = RunStatistics()
        self.states: Dict[Path, FilingState] = {}

    # ------------------------------------------------------------------
    # Attempt: probe -> plan -> encode into scratch -> classify
    # ------------------------------------------------------------------

    def _encode(
        self,
        source: Path,
        rel_path: Path,
        profile: EncodeProfile,
        pass_name: str,
    ) -> AttemptResult:
        media = self.ffprobe_adapter.probe(source)
        general = self.config.general
        encode_plan = planning.plan(media, general.max_short_side, general.fps_limit)
        out_width, out_height = planning.planned_dimensions(media.width, media.height, general.max_short_side)
        scratch = self.areas.scratch_path(rel_path, pass_name)

        self.logger.info(
            f"PLAN: {rel_path} pass={pass_name} size={media.width}x{media.height} "
            f"out={out_width}x{out_height} fps={media.frame_rate} vf={encode_plan.filters.render()} "
            f"audio={encode_plan.audio.action.value} crf={profile.crf} preset={profile.preset}"
        )

        def on_progress(percent: float) -> None:
            self.event_bus.publish(EncodeProgress(pass_name=pass_name, rel_path=rel_path, progress_percent=percent))

        self.event_bus.publish(EncodeStarted(pass_name=pass_name, rel_path=rel_path, duration=media.duration))
        try:
            return self.ffmpeg_adapter.encode(
                source,
                encode_plan.filters,
                encode_plan.audio,
                profile,
                scratch,
                duration=media.duration,
                progress=on_progress,
            )
        except EncodeError:
            self.areas.delete(scratch)
            raise
        finally:
            self.event_bus.publish(EncodeFinished(pass_name=pass_name, rel_path=rel_path))

    def attempt(
        self,
        source: Path,
        rel_path: Path,
        original_size: int,
        profile: EncodeProfile,
        pass_name: str,
    ) -> Tuple[AttemptResult, Outcome]:
        """Encodes ``source`` into the scratch area and classifies the result.

        Raises ProbeError or EncodeError; nothing outside the scratch area is touched.
        """
        result = self._encode(source, rel_path, profile, pass_name)
        outcome = classify(original_size, result.output_size_bytes)
        self.event_bus.publish(ItemSized(
            pass_name=pass_name,
            rel_path=rel_path,
            new_size=result.output_size_bytes,
            outcome=outcome,
        ))
        return result, outcome

    def _resolve(self, pass_name: str, rel_path: Path, state: FilingState, message: str = "") -> None:
        self.states[rel_path] = state
        self.event_bus.publish(ItemResolved(pass_name=pass_name, rel_path=rel_path, state=state, message=message))

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self) -> List[SourceItem]:
        items = list(self.file_scanner.scan(self.areas.source_root))
        for item in items:
            self.stats.record_discovered(item)
        self.logger.info(
            f"Discovery finished: found={self.stats.files_discovered}, "
            f"input_bytes={self.stats.total_input_bytes}"
        )
        self.event_bus.publish(DiscoveryFinished(
            files_found=self.stats.files_discovered,
            total_input_bytes=self.stats.total_input_bytes,
        ))
        return items

    # ------------------------------------------------------------------
    # Main pass
    # ------------------------------------------------------------------

    def _fail_item(self, item: SourceItem, error: Exception) -> None:
        """Copies the original into the failed tree and marks the item Failed."""
        try:
            self.areas.copy_to_failed(item.path, item.rel_path)
        except OSError as copy_error:
            self.logger.error(f"FAILED_COPY_ERROR: {item.rel_path} - {copy_error}")
        self.stats.record_failed()
        self._resolve(
            MAIN_PASS, item.rel_path, FilingState.FAILED,
            f"{error}. Original copied to the failed originals folder.",
        )

    def _discard_holding(self, rel_path: Path, *extra: Path) -> None:
        for path in (self.areas.needs_stronger_path(rel_path), self.areas.larger_path(rel_path), *extra):
            try:
                self.areas.delete(path)
            except OSError as e:
                self.logger.error(f"CLEANUP_ERROR: {path} - {e}")

    def process_main(self, item: SourceItem) -> FilingState:
        rel_path = item.rel_path

        if self.areas.has_final(rel_path):
            self.stats.skipped_existing += 1
            self.states[rel_path] = FilingState.FINALIZED
            self.logger.info(f"MAIN_SKIP: {rel_path} (final output exists)")
            self.event_bus.publish(ItemSkipped(
                pass_name=MAIN_PASS,
                rel_path=rel_path,
                reason="Output already exists, skipping re-encode.",
            ))
            return FilingState.FINALIZED

        self.logger.info(f"MAIN_START: {rel_path} size={item.size_bytes}")
        try:
            result, outcome = self.attempt(item.path, rel_path, item.size_bytes, self.config.profiles.main, MAIN_PASS)
        except ProbeError as e:
            self.logger.error(f"PROBE_FAIL: {rel_path} - {e.reason}")
            self._fail_item(item, e)
            return FilingState.FAILED
        except EncodeError as e:
            self.logger.error(f"ENCODE_FAIL: {rel_path} pass={MAIN_PASS} - {e.reason}")
            self._fail_item(item, e)
            return FilingState.FAILED

        if outcome.shrunk:
            self.areas.promote(result.output_path, rel_path)
            self.stats.record_finalized(item.size_bytes, result.output_size_bytes)
            self.logger.info(f"FINALIZED: {rel_path} {item.size_bytes} -> {result.output_size_bytes} bytes")
            self._resolve(
                MAIN_PASS, rel_path, FilingState.FINALIZED,
                "Encoded file is not larger than the original; stored in the final output folder.",
            )
            return FilingState.FINALIZED

        # Size statistics wait until the stronger pass decides.
        # Both holding copies exist, or neither does.
        try:
            self.areas.copy_to_needs_stronger(item.path, rel_path)
            self.areas.move_to_larger(result.output_path, rel_path)
        except OSError as e:
            self.logger.error(f"HOLD_FAIL: {rel_path} - {e}")
            self._discard_holding(rel_path, result.output_path)
            self._fail_item(item, e)
            return FilingState.FAILED
        self.stats.pending_stronger += 1
        self.logger.info(
            f"PENDING_STRONGER: {rel_path} {item.size_bytes} -> {result.output_size_bytes} bytes"
        )
        self._resolve(
            MAIN_PASS, rel_path, FilingState.PENDING_STRONGER,
            "Output larger than original; queued for stronger encoding.",
        )
        return FilingState.PENDING_STRONGER

    def run_main_pass(self, items: List[SourceItem]) -> None:
        total = len(items)
        self.event_bus.publish(PassStarted(pass_name=MAIN_PASS, total=total))
        for index, item in enumerate(items, 1):
            start = time.monotonic()
            self.event_bus.publish(ItemStarted(pass_name=MAIN_PASS, rel_path=item.rel_path, index=index, total=total))
            try:
                self.process_main(item)
            except Exception as e:
                self.logger.error(f"Exception processing {item.rel_path}: {e}")
                if item.rel_path not in self.states:
                    self._discard_holding(item.rel_path)
                    self._fail_item(item, e)
            finally:
                self.event_bus.publish(ItemFinished(
                    pass_name=MAIN_PASS,
                    rel_path=item.rel_path,
                    elapsed_seconds=time.monotonic() - start,
                ))

    # ------------------------------------------------------------------
    # Stronger pass
    # ------------------------------------------------------------------

    def _check_companions(self, rel_path: Path) -> None:
        original = self.areas.source_path(rel_path)
        if not original.is_file():
            raise ConsistencyError(original, "original file not found for stronger pass")
        first_attempt = self.areas.larger_path(rel_path)
        if not first_attempt.is_file():
            raise ConsistencyError(first_attempt, "first attempt file not found for stronger pass")

    def process_stronger(self, rel_path: Path) -> Optional[FilingState]:
        """Retries one needs-stronger entry. Returns None when the entry is left untouched."""
        original = self.areas.source_path(rel_path)
        self.logger.info(f"STRONGER_START: {rel_path}")
        try:
            self._check_companions(rel_path)
            try:
                original_size = original.stat().st_size
            except OSError:
                original_size = 0
            result, outcome = self.attempt(original, rel_path, original_size, self.config.profiles.stronger, STRONGER_PASS)
        except PipelineError as e:
            self.stats.stronger_skipped += 1
            self.logger.warning(f"STRONGER_SKIP: {rel_path} - {e}")
            self.event_bus.publish(ItemSkipped(
                pass_name=STRONGER_PASS,
                rel_path=rel_path,
                reason=f"{e}. Leaving first attempt and stronger copy as-is.",
            ))
            return None

        if outcome.shrunk:
            # Destination first; the two holding copies are removed only afterwards
            self.areas.promote(result.output_path, rel_path)
            self.areas.delete(self.areas.larger_path(rel_path))
            self.areas.delete(self.areas.needs_stronger_path(rel_path))
            self.stats.record_finalized(original_size, result.output_size_bytes)
            self.stats.stronger_finalized += 1
            self.logger.info(f"FINALIZED: {rel_path} pass={STRONGER_PASS} {original_size} -> {result.output_size_bytes} bytes")
            self._resolve(
                STRONGER_PASS, rel_path, FilingState.FINALIZED,
                "Stronger encode is not larger than the original; stored in the final output folder, "
                "holding copies removed.",
            )
            return FilingState.FINALIZED

        self.areas.move_to_larger(result.output_path, rel_path)
        self.stats.stronger_exhausted += 1
        self.logger.info(
            f"STRONGER_EXHAUSTED: {rel_path} {original_size} -> {result.output_size_bytes} bytes"
        )
        self._resolve(
            STRONGER_PASS, rel_path, FilingState.STRONGER_EXHAUSTED,
            "Stronger encode not better than original. Keeping latest attempt in the larger-output folder "
            "and the original copy in the needs-stronger folder.",
        )
        return FilingState.STRONGER_EXHAUSTED

    def run_stronger_pass(self) -> None:
        entries = list(self.areas.iter_needs_stronger())
        total = len(entries)
        self.stats.stronger_candidates = total
        self.event_bus.publish(PassStarted(pass_name=STRONGER_PASS, total=total))
        for index, rel_path in enumerate(entries, 1):
            start = time.monotonic()
            self.event_bus.publish(ItemStarted(pass_name=STRONGER_PASS, rel_path=rel_path, index=index, total=total))
            try:
                self.process_stronger(rel_path)
            except Exception as e:
                self.stats.stronger_skipped += 1
                self.logger.error(f"Exception in stronger pass for {rel_path}: {e}")
            finally:
                self.event_bus.publish(ItemFinished(
                    pass_name=STRONGER_PASS,
                    rel_path=rel_path,
                    elapsed_seconds=time.monotonic() - start,
                ))

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _cleanup_areas(self) -> None:
        areas = self.areas
        # Scratch lives inside the final tree, so it goes first
        for directory in (areas.scratch_dir, areas.final_dir, areas.failed_dir, areas.larger_dir, areas.needs_stronger_dir):
            if self.areas.pre_existing.get(directory):
                continue
            if self.housekeeper.remove_if_empty(directory):
                self.logger.info(f"Removed empty folder: {directory}")

    def run(self) -> RunStatistics:
        source_root = self.areas.source_root
        if not source_root.is_dir():
            raise FileNotFoundError(f"Source folder not found: {source_root}")

        start = time.monotonic()
        self.logger.info(f"Run started: source={source_root}")
        self.event_bus.publish(RunStarted(
            source_root=source_root,
            final_dir=self.areas.final_dir,
            failed_dir=self.areas.failed_dir,
            larger_dir=self.areas.larger_dir,
            needs_stronger_dir=self.areas.needs_stronger_dir,
        ))

        if self.areas.scratch_dir.exists():
            cleaned = self.housekeeper.cleanup_temp_files(self.areas.scratch_dir)
            if cleaned:
                self.logger.info(f"Startup cleanup: removed {cleaned} stale scratch files")

        items = self.discover()
        if items:
            self.run_main_pass(items)
            self.run_stronger_pass()
        else:
            self.logger.info("No matching video files found")

        self._cleanup_areas()

        elapsed = time.monotonic() - start
        self.logger.info(
            f"Run finished: discovered={self.stats.files_discovered} finalized={self.stats.finalized} "
            f"failed={self.stats.failed} pending_stronger={self.stats.pending_stronger} "
            f"stronger_finalized={self.stats.stronger_finalized} "
            f"stronger_exhausted={self.stats.stronger_exhausted} elapsed={elapsed:.1f}s"
        )
        self.event_bus.publish(RunFinished(stats=self.stats, elapsed_seconds=elapsed))
        return self.stats
