import pytest
import yaml
from pathlib import Path
from typing import Dict, Iterable, Optional
from unittest.mock import MagicMock

from av1pass.config.models import AppConfig
from av1pass.domain.errors import EncodeError, ProbeError
from av1pass.domain.models import AttemptResult, FrameRate, MediaProperties
from av1pass.infrastructure.event_bus import EventBus
from av1pass.infrastructure.file_scanner import FileScanner
from av1pass.infrastructure.filing import FilingAreas
from av1pass.pipeline.orchestrator import Orchestrator

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns an AppConfig with the stock limits and profiles."""
    return AppConfig(
        general={
            "max_short_side": 720,
            "fps_limit": 45,
            "extensions": [".mp4", ".mkv", ".mov"],
            "log_path": "/tmp/av1pass-test/av1pass.log",
            "debug": False,
        },
        profiles={
            "main": {"crf": 32, "preset": 7},
            "stronger": {"crf": 45, "preset": 5},
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "av1pass.yaml"

    content = {
        'general': {
            'max_short_side': 1080,
            'fps_limit': 30,
            'extensions': ['mp4', 'MKV'],
            'debug': True,
        },
        'profiles': {
            'main': {'crf': 30, 'preset': 8},
            'stronger': {'crf': 50, 'preset': 4},
        }
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def source_dir(tmp_path):
    """Creates an empty source tree; filing areas become its siblings."""
    source = tmp_path / "videos"
    source.mkdir()
    return source

@pytest.fixture
def write_video():
    """Writes a placeholder video of an exact size below a root."""
    def _write(root: Path, rel: str, size: int = 100) -> Path:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"v" * size)
        return path
    return _write

# ============================================================================
# Pipeline Fixtures (fake ffprobe / ffmpeg on real directories)
# ============================================================================

def make_media(width=1920, height=1080, num=30, den=1, has_audio=True, audio_bitrate="128000", duration=10.0):
    return MediaProperties(
        width=width,
        height=height,
        frame_rate=FrameRate(num=num, den=den),
        duration=duration,
        has_audio=has_audio,
        audio_bitrate=audio_bitrate if has_audio else None,
    )


class FakeEncoder:
    """Stands in for FFmpegAdapter.

    ``sizes`` maps a source file name to ``{crf: output_size}``; names listed in
    ``failing`` raise EncodeError for the given crf values.
    """

    def __init__(self, sizes: Dict[str, Dict[int, int]], failing: Optional[Dict[str, Iterable[int]]] = None):
        self.sizes = sizes
        self.failing = {name: set(crfs) for name, crfs in (failing or {}).items()}
        self.calls = []

    def encode(self, input_path, filters, audio, profile, output_path, duration=0.0, container="mp4", progress=None):
        self.calls.append((input_path, profile.crf, output_path, filters.render()))
        if profile.crf in self.failing.get(input_path.name, ()):
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(b"partial")
            raise EncodeError(input_path, "ffmpeg exited with code 1", 1)
        size = self.sizes[input_path.name][profile.crf]
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"e" * size)
        if progress is not None:
            progress(100.0)
        return AttemptResult(output_path=output_path, output_size_bytes=size)


@pytest.fixture
def media_factory():
    return make_media


@pytest.fixture
def fake_encoder():
    return FakeEncoder


@pytest.fixture
def fake_probe():
    """MagicMock FFprobeAdapter; ``unprobeable`` names raise ProbeError."""
    def _build(unprobeable: Iterable[str] = (), media: Optional[MediaProperties] = None):
        probe = MagicMock()
        blocked = set(unprobeable)

        def _probe(path):
            if path.name in blocked:
                raise ProbeError(path, "no video stream")
            return media or make_media()

        probe.probe.side_effect = _probe
        return probe
    return _build


@pytest.fixture
def build_orchestrator(sample_config, fake_probe):
    """Wires an Orchestrator over real FilingAreas for ``source``."""
    def _build(source: Path, encoder, probe=None, bus: Optional[EventBus] = None, config: Optional[AppConfig] = None):
        config = config or sample_config
        areas = FilingAreas.for_source(source)
        return Orchestrator(
            config=config,
            event_bus=bus or EventBus(),
            areas=areas,
            file_scanner=FileScanner(config.general.extensions, exclude_dirs=areas.all_dirs()),
            ffprobe_adapter=probe or fake_probe(),
            ffmpeg_adapter=encoder,
        )
    return _build

# ============================================================================
# Marker registration
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (integration tests with real files)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
