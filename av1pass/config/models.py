from typing import List
from pydantic import BaseModel, Field, field_validator

DEFAULT_EXTENSIONS = [
    ".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv",
    ".webm", ".mpg", ".mpeg", ".vob", ".gif",
]

class EncodeProfile(BaseModel):
    """SVT-AV1 quality/speed pair for one pass."""
    crf: int = Field(default=32, ge=0, le=63)  # 0 = best/lossless, 63 = smallest
    preset: int = Field(default=7, ge=0, le=13)  # 0 = slowest/densest, 13 = fastest

class ProfilesConfig(BaseModel):
    main: EncodeProfile = Field(default_factory=EncodeProfile)
    stronger: EncodeProfile = Field(default_factory=lambda: EncodeProfile(crf=45, preset=5))

class GeneralConfig(BaseModel):
    max_short_side: int = Field(default=720, gt=0)
    fps_limit: int = Field(default=45, gt=0)
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    log_path: str = "/tmp/av1pass/av1pass.log"
    debug: bool = False

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("extensions must not be empty")
        return normalized

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    profiles: ProfilesConfig = Field(default_factory=ProfilesConfig)
