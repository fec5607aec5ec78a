from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class FilingState(str, Enum):
    FINALIZED = "FINALIZED"
    FAILED = "FAILED"
    PENDING_STRONGER = "PENDING_STRONGER"
    STRONGER_EXHAUSTED = "STRONGER_EXHAUSTED"

class OutcomeKind(str, Enum):
    SHRUNK = "SHRUNK"
    GREW = "GREW"

class AudioAction(str, Enum):
    DROP = "DROP"
    COPY = "COPY"
    TRANSCODE = "TRANSCODE"

class SourceItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    rel_path: Path
    size_bytes: int = Field(ge=0)

class FrameRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    num: int = Field(ge=0)
    den: int = Field(gt=0)

    def __str__(self) -> str:
        return f"{self.num}/{self.den}"

class MediaProperties(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    frame_rate: FrameRate
    duration: float = 0.0
    has_audio: bool = False
    audio_bitrate: Optional[str] = None

class ScaleDirective(BaseModel):
    """Scale step of the filter chain.

    ``width``/``height`` hold the fixed side of a downscale; the other side is
    ``None`` and left to the encoder (``-2``, aspect preserving, even). When
    both are ``None`` the directive only truncates each side to an even size.
    """

    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def is_downscale(self) -> bool:
        return self.width is not None or self.height is not None

    def render(self) -> str:
        if self.width is not None:
            return f"scale={self.width}:-2"
        if self.height is not None:
            return f"scale=-2:{self.height}"
        return "scale=trunc(iw/2)*2:trunc(ih/2)*2"

class FrameRateCap(BaseModel):
    fps: int = Field(gt=0)

    def render(self) -> str:
        return f"fps={self.fps}"

class FilterSpec(BaseModel):
    scale: ScaleDirective
    rate_cap: Optional[FrameRateCap] = None

    def directives(self) -> List[str]:
        chain = [self.scale.render()]
        if self.rate_cap is not None:
            chain.append(self.rate_cap.render())
        return chain

    def render(self) -> str:
        return ",".join(self.directives())

class AudioDecision(BaseModel):
    action: AudioAction
    bitrate_ceiling: Optional[int] = None

    def ffmpeg_args(self) -> List[str]:
        if self.action == AudioAction.DROP:
            return ["-an"]
        if self.action == AudioAction.TRANSCODE:
            return ["-c:a", "aac", "-b:a", f"{self.bitrate_ceiling // 1000}k"]
        return ["-c:a", "copy"]

class EncodePlan(BaseModel):
    filters: FilterSpec
    audio: AudioDecision

class AttemptResult(BaseModel):
    output_path: Path
    output_size_bytes: int

class Outcome(BaseModel):
    kind: OutcomeKind
    percent: Optional[int] = None

    @property
    def shrunk(self) -> bool:
        return self.kind == OutcomeKind.SHRUNK

class RunStatistics(BaseModel):
    """Counters accumulated over one run. Only ever incremented."""

    files_discovered: int = 0
    total_input_bytes: int = 0
    finalized: int = 0
    failed: int = 0
    processed_original_bytes: int = 0
    processed_final_bytes: int = 0

    skipped_existing: int = 0
    pending_stronger: int = 0
    stronger_candidates: int = 0
    stronger_finalized: int = 0
    stronger_exhausted: int = 0
    stronger_skipped: int = 0

    @property
    def saved_bytes(self) -> int:
        return self.processed_original_bytes - self.processed_final_bytes

    def record_discovered(self, item: SourceItem) -> None:
        self.files_discovered += 1
        self.total_input_bytes += item.size_bytes

    def record_finalized(self, original_size: int, final_size: int) -> None:
        self.finalized += 1
        self.processed_original_bytes += original_size
        self.processed_final_bytes += final_size

    def record_failed(self) -> None:
        self.failed += 1
