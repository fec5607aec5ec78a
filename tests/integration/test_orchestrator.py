import pytest
from pathlib import Path
from unittest.mock import MagicMock

from av1pass.domain.errors import ProbeError
from av1pass.domain.events import ItemResolved, ItemSkipped, PassStarted, RunFinished
from av1pass.domain.models import FilingState
from av1pass.infrastructure.event_bus import EventBus
from av1pass.infrastructure.filing import FilingAreas

pytestmark = pytest.mark.integration

MAIN_CRF = 32
STRONGER_CRF = 45


def _tree_files(root: Path):
    if not root.exists():
        return []
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


def test_scenario_shrunk_on_main_pass(source_dir, write_video, fake_encoder, build_orchestrator):
    """A: the main encode is smaller and lands in the final tree."""
    original = write_video(source_dir, "a.mp4", 100)
    encoder = fake_encoder({"a.mp4": {MAIN_CRF: 40}})
    orchestrator = build_orchestrator(source_dir, encoder)

    stats = orchestrator.run()
    areas = orchestrator.areas

    assert areas.final_path(Path("a.mp4")).stat().st_size == 40
    assert original.read_bytes() == b"v" * 100
    assert orchestrator.states[Path("a.mp4")] == FilingState.FINALIZED
    assert stats.finalized == 1
    assert stats.failed == 0
    assert stats.processed_original_bytes == 100
    assert stats.processed_final_bytes == 40
    # Trees created for nothing are removed again, the scratch area included
    assert not areas.failed_dir.exists()
    assert not areas.larger_dir.exists()
    assert not areas.needs_stronger_dir.exists()
    assert not areas.scratch_dir.exists()
    assert [crf for _, crf, _, _ in encoder.calls] == [MAIN_CRF]


def test_scenario_grew_then_stronger_shrunk(source_dir, write_video, fake_encoder, build_orchestrator):
    """B: main attempt grows, stronger attempt shrinks; both holding copies are cleared."""
    write_video(source_dir, "b.mkv", 100)
    encoder = fake_encoder({"b.mkv": {MAIN_CRF: 150, STRONGER_CRF: 60}})
    orchestrator = build_orchestrator(source_dir, encoder)

    stats = orchestrator.run()
    areas = orchestrator.areas
    rel = Path("b.mkv")

    assert areas.final_path(rel) == areas.final_dir / "b.mp4"
    assert areas.final_path(rel).stat().st_size == 60
    assert not areas.larger_path(rel).exists()
    assert not areas.needs_stronger_path(rel).exists()
    assert orchestrator.states[rel] == FilingState.FINALIZED
    assert stats.pending_stronger == 1
    assert stats.stronger_candidates == 1
    assert stats.stronger_finalized == 1
    assert stats.finalized == 1
    assert (stats.processed_original_bytes, stats.processed_final_bytes) == (100, 60)
    assert [crf for _, crf, _, _ in encoder.calls] == [MAIN_CRF, STRONGER_CRF]


def test_scenario_stronger_still_larger(source_dir, write_video, fake_encoder, build_orchestrator):
    """C: both attempts grow; latest attempt kept in larger-output, original copy in needs-stronger."""
    write_video(source_dir, "c.mov", 100)
    encoder = fake_encoder({"c.mov": {MAIN_CRF: 150, STRONGER_CRF: 130}})
    orchestrator = build_orchestrator(source_dir, encoder)

    stats = orchestrator.run()
    areas = orchestrator.areas
    rel = Path("c.mov")

    assert not areas.has_final(rel)
    assert areas.larger_path(rel).stat().st_size == 130
    assert areas.needs_stronger_path(rel).read_bytes() == b"v" * 100
    assert orchestrator.states[rel] == FilingState.STRONGER_EXHAUSTED
    assert stats.stronger_exhausted == 1
    assert stats.finalized == 0
    assert stats.processed_original_bytes == 0
    assert not areas.final_dir.exists()


def test_scenario_probe_failure(source_dir, write_video, fake_encoder, fake_probe, build_orchestrator):
    """D: an unreadable file is copied to failed-originals and never encoded."""
    original = write_video(source_dir, "sub/d.mov", 77)
    encoder = fake_encoder({})
    orchestrator = build_orchestrator(source_dir, encoder, probe=fake_probe(unprobeable=["d.mov"]))

    stats = orchestrator.run()
    areas = orchestrator.areas
    rel = Path("sub/d.mov")

    assert areas.failed_path(rel).read_bytes() == original.read_bytes()
    assert original.exists()
    assert orchestrator.states[rel] == FilingState.FAILED
    assert stats.failed == 1
    assert encoder.calls == []
    assert not areas.final_dir.exists()


def test_main_encode_failure_goes_to_failed(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "e.mp4", 100)
    encoder = fake_encoder({}, failing={"e.mp4": [MAIN_CRF]})
    orchestrator = build_orchestrator(source_dir, encoder)

    stats = orchestrator.run()
    areas = orchestrator.areas

    assert areas.failed_path(Path("e.mp4")).exists()
    assert stats.failed == 1
    assert _tree_files(areas.final_dir) == []


def test_equal_size_is_finalized(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "same.mp4", 100)
    orchestrator = build_orchestrator(source_dir, fake_encoder({"same.mp4": {MAIN_CRF: 100}}))

    stats = orchestrator.run()

    assert orchestrator.states[Path("same.mp4")] == FilingState.FINALIZED
    assert stats.pending_stronger == 0


def test_rerun_is_idempotent(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "a.mp4", 100)
    encoder = fake_encoder({"a.mp4": {MAIN_CRF: 40}})

    build_orchestrator(source_dir, encoder).run()
    second = build_orchestrator(source_dir, encoder)
    stats = second.run()

    assert len(encoder.calls) == 1
    assert stats.skipped_existing == 1
    assert stats.finalized == 0
    assert second.areas.final_path(Path("a.mp4")).stat().st_size == 40


def test_mixed_tree_preserves_layout(source_dir, write_video, fake_encoder, fake_probe, build_orchestrator):
    write_video(source_dir, "2024/jan/a.mp4", 100)
    write_video(source_dir, "2024/feb/b.mkv", 100)
    write_video(source_dir, "c.mov", 100)
    write_video(source_dir, "broken.mp4", 10)
    write_video(source_dir, "notes.txt", 10)
    encoder = fake_encoder({
        "a.mp4": {MAIN_CRF: 50},
        "b.mkv": {MAIN_CRF: 120, STRONGER_CRF: 90},
        "c.mov": {MAIN_CRF: 120, STRONGER_CRF: 110},
    })
    orchestrator = build_orchestrator(source_dir, encoder, probe=fake_probe(unprobeable=["broken.mp4"]))

    stats = orchestrator.run()
    areas = orchestrator.areas

    assert _tree_files(areas.final_dir) == [str(Path("2024/feb/b.mp4")), str(Path("2024/jan/a.mp4"))]
    assert _tree_files(areas.failed_dir) == ["broken.mp4"]
    assert _tree_files(areas.larger_dir) == ["c.mp4"]
    assert _tree_files(areas.needs_stronger_dir) == ["c.mov"]
    assert stats.files_discovered == 4
    assert stats.total_input_bytes == 310
    assert stats.finalized == 2
    assert stats.failed == 1
    assert stats.stronger_candidates == 2
    assert (stats.processed_original_bytes, stats.processed_final_bytes) == (200, 140)


def test_stronger_pass_skips_entry_without_first_attempt(source_dir, write_video, fake_encoder, build_orchestrator):
    """A needs-stronger entry whose larger-output companion is gone is left untouched."""
    write_video(source_dir, "orphan.mp4", 100)
    areas = FilingAreas.for_source(source_dir)
    write_video(areas.final_dir, "orphan.mp4", 40)
    write_video(areas.needs_stronger_dir, "orphan.mp4", 100)
    encoder = fake_encoder({})

    bus = EventBus()
    skipped = []
    bus.subscribe(ItemSkipped, skipped.append)
    orchestrator = build_orchestrator(source_dir, encoder, bus=bus)

    stats = orchestrator.run()

    assert stats.stronger_skipped == 1
    assert encoder.calls == []
    assert areas.needs_stronger_path(Path("orphan.mp4")).exists()
    assert any(e.pass_name == "stronger" and "first attempt" in e.reason for e in skipped)


def test_stronger_pass_skips_entry_without_original(source_dir, write_video, fake_encoder, build_orchestrator):
    areas = FilingAreas.for_source(source_dir)
    write_video(areas.needs_stronger_dir, "gone.mp4", 100)
    write_video(areas.larger_dir, "gone.mp4", 150)
    encoder = fake_encoder({})

    orchestrator = build_orchestrator(source_dir, encoder)
    orchestrator.run_stronger_pass()

    assert orchestrator.stats.stronger_skipped == 1
    assert encoder.calls == []
    assert areas.larger_path(Path("gone.mp4")).stat().st_size == 150


def test_stronger_encode_failure_leaves_holding_copies(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "f.mp4", 100)
    encoder = fake_encoder({"f.mp4": {MAIN_CRF: 150}}, failing={"f.mp4": [STRONGER_CRF]})
    orchestrator = build_orchestrator(source_dir, encoder)

    stats = orchestrator.run()
    areas = orchestrator.areas
    rel = Path("f.mp4")

    assert stats.stronger_skipped == 1
    assert areas.larger_path(rel).stat().st_size == 150
    assert areas.needs_stronger_path(rel).exists()
    assert orchestrator.states[rel] == FilingState.PENDING_STRONGER
    assert not areas.scratch_dir.exists()


def test_stronger_pass_leaves_entry_when_original_becomes_unreadable(
    source_dir, write_video, fake_encoder, fake_probe, media_factory, build_orchestrator
):
    original = write_video(source_dir, "h.mp4", 100)
    encoder = fake_encoder({"h.mp4": {MAIN_CRF: 150, STRONGER_CRF: 60}})
    probe = fake_probe()
    seen = []

    def _probe(path):
        seen.append(path)
        if len(seen) > 1:
            raise ProbeError(path, "moov atom not found")
        return media_factory()

    probe.probe.side_effect = _probe
    orchestrator = build_orchestrator(source_dir, encoder, probe=probe)

    stats = orchestrator.run()
    areas = orchestrator.areas
    rel = Path("h.mp4")

    assert len(seen) == 2
    assert stats.stronger_skipped == 1
    assert stats.stronger_finalized == 0
    assert orchestrator.states[rel] == FilingState.PENDING_STRONGER
    assert areas.larger_path(rel).stat().st_size == 150
    assert areas.needs_stronger_path(rel).read_bytes() == b"v" * 100
    assert original.read_bytes() == b"v" * 100
    assert not areas.has_final(rel)
    assert [crf for _, crf, _, _ in encoder.calls] == [MAIN_CRF]


def test_stronger_pass_encodes_original_from_source_tree(source_dir, write_video, fake_encoder, build_orchestrator):
    rel = Path("2024/b.mkv")
    write_video(source_dir, str(rel), 100)
    encoder = fake_encoder({"b.mkv": {MAIN_CRF: 150, STRONGER_CRF: 60}})
    orchestrator = build_orchestrator(source_dir, encoder)

    orchestrator.run()

    assert [input_path for input_path, _, _, _ in encoder.calls] == [source_dir / rel, source_dir / rel]
    assert encoder.calls[1][1] == STRONGER_CRF


def test_scenario_shrunk_applies_resolution_and_rate_limits(
    source_dir, write_video, fake_encoder, fake_probe, media_factory, build_orchestrator
):
    write_video(source_dir, "a.mp4", 100)
    encoder = fake_encoder({"a.mp4": {MAIN_CRF: 40}})
    orchestrator = build_orchestrator(
        source_dir, encoder, probe=fake_probe(media=media_factory(width=1920, height=1080, num=60))
    )
    orchestrator.logger = MagicMock()

    orchestrator.run()

    assert [filters for _, _, _, filters in encoder.calls] == ["scale=-2:720,fps=45"]
    plan_lines = [c.args[0] for c in orchestrator.logger.info.call_args_list if c.args[0].startswith("PLAN:")]
    assert len(plan_lines) == 1
    assert "size=1920x1080 out=1280x720" in plan_lines[0]


def test_main_pass_failed_stronger_copy_leaves_no_holding_files(
    source_dir, write_video, fake_encoder, build_orchestrator, monkeypatch
):
    write_video(source_dir, "g.mp4", 100)
    encoder = fake_encoder({"g.mp4": {MAIN_CRF: 150}})
    orchestrator = build_orchestrator(source_dir, encoder)
    areas = orchestrator.areas

    def disk_full(src, rel_path):
        raise OSError("disk full")

    monkeypatch.setattr(areas, "copy_to_needs_stronger", disk_full)
    stats = orchestrator.run()
    rel = Path("g.mp4")

    assert orchestrator.states[rel] == FilingState.FAILED
    assert areas.failed_path(rel).exists()
    assert not areas.larger_path(rel).exists()
    assert not areas.needs_stronger_path(rel).exists()
    assert not areas.scratch_dir.exists()
    assert (stats.failed, stats.pending_stronger, stats.stronger_candidates) == (1, 0, 0)


def test_main_pass_failed_move_removes_stronger_copy(
    source_dir, write_video, fake_encoder, build_orchestrator, monkeypatch
):
    write_video(source_dir, "g.mp4", 100)
    encoder = fake_encoder({"g.mp4": {MAIN_CRF: 150}})
    orchestrator = build_orchestrator(source_dir, encoder)
    areas = orchestrator.areas

    def disk_full(src, rel_path):
        raise OSError("disk full")

    monkeypatch.setattr(areas, "move_to_larger", disk_full)
    stats = orchestrator.run()
    rel = Path("g.mp4")

    assert orchestrator.states[rel] == FilingState.FAILED
    assert areas.failed_path(rel).exists()
    assert not areas.larger_path(rel).exists()
    assert not areas.needs_stronger_path(rel).exists()
    assert not areas.scratch_dir.exists()
    assert stats.failed == 1
    assert stats.pending_stronger == 0


def test_pre_existing_trees_are_kept_when_emptied(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "old.mp4", 100)
    areas = FilingAreas.for_source(source_dir)
    write_video(areas.needs_stronger_dir, "old.mp4", 100)
    write_video(areas.larger_dir, "old.mp4", 150)
    encoder = fake_encoder({"old.mp4": {MAIN_CRF: 150, STRONGER_CRF: 70}})

    orchestrator = build_orchestrator(source_dir, encoder)
    stats = orchestrator.run()

    assert stats.stronger_finalized == 1
    assert areas.final_path(Path("old.mp4")).stat().st_size == 70
    # The trees existed before the run, so they are kept even though empty now
    assert areas.needs_stronger_dir.is_dir()
    assert areas.larger_dir.is_dir()


def test_events_follow_item_lifecycle(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "a.mp4", 100)
    write_video(source_dir, "b.mp4", 100)
    encoder = fake_encoder({"a.mp4": {MAIN_CRF: 40}, "b.mp4": {MAIN_CRF: 140, STRONGER_CRF: 120}})

    bus = EventBus()
    resolved, passes, finished = [], [], []
    bus.subscribe(ItemResolved, resolved.append)
    bus.subscribe(PassStarted, passes.append)
    bus.subscribe(RunFinished, finished.append)

    build_orchestrator(source_dir, encoder, bus=bus).run()

    assert [(e.pass_name, str(e.rel_path), e.state) for e in resolved] == [
        ("main", "a.mp4", FilingState.FINALIZED),
        ("main", "b.mp4", FilingState.PENDING_STRONGER),
        ("stronger", "b.mp4", FilingState.STRONGER_EXHAUSTED),
    ]
    assert [(e.pass_name, e.total) for e in passes] == [("main", 2), ("stronger", 1)]
    assert finished[0].stats.finalized == 1


def test_stale_scratch_files_are_removed(source_dir, write_video, fake_encoder, build_orchestrator):
    write_video(source_dir, "a.mp4", 100)
    areas = FilingAreas.for_source(source_dir)
    write_video(areas.scratch_dir, "leftover.main.tmp", 10)

    orchestrator = build_orchestrator(source_dir, fake_encoder({"a.mp4": {MAIN_CRF: 40}}))
    orchestrator.run()

    assert not (areas.scratch_dir / "leftover.main.tmp").exists()
    assert areas.has_final(Path("a.mp4"))


def test_empty_source_creates_nothing(source_dir, fake_encoder, build_orchestrator):
    orchestrator = build_orchestrator(source_dir, fake_encoder({}))
    stats = orchestrator.run()

    assert stats.files_discovered == 0
    for directory in orchestrator.areas.all_dirs():
        assert not directory.exists()


def test_missing_source_is_fatal(tmp_path, fake_encoder, build_orchestrator):
    orchestrator = build_orchestrator(tmp_path / "missing", fake_encoder({}))
    with pytest.raises(FileNotFoundError):
        orchestrator.run()
