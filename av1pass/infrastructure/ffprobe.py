import subprocess
import json
import re
from pathlib import Path
from typing import Dict, Any, Optional

from av1pass.domain.errors import ProbeError
from av1pass.domain.models import FrameRate, MediaProperties

_RATE_PATTERN = re.compile(r"^(\d+)(?:/(\d+))?$")


class FFprobeAdapter:
    """Wrapper around ffprobe that yields validated media properties."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _parse_duration_tag(value: Any) -> float:
        """Parses matroska-style ``HH:MM:SS.fff`` duration tags."""
        text = str(value or "").strip()
        if not text:
            return 0.0
        parts = text.split(":")
        try:
            numbers = [float(p) for p in parts]
        except ValueError:
            return 0.0
        seconds = 0.0
        for number in numbers:
            seconds = seconds * 60 + number
        return seconds

    @staticmethod
    def _parse_dimension(file_path: Path, stream: Dict[str, Any], key: str) -> int:
        value = stream.get(key)
        if isinstance(value, bool):
            value = None
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and value.strip().isdigit():
            number = int(value.strip())
        else:
            raise ProbeError(file_path, f"missing or non-numeric {key}")
        if number <= 0:
            raise ProbeError(file_path, f"invalid {key} {number}")
        return number

    @staticmethod
    def parse_frame_rate(file_path: Path, value: Any) -> FrameRate:
        """Parses ``num/den`` or a bare integer; rejects ``0/0`` and zero denominators."""
        text = str(value or "").strip()
        match = _RATE_PATTERN.match(text)
        if not match:
            raise ProbeError(file_path, f"missing or non-numeric frame rate {text!r}")
        num = int(match.group(1))
        den = int(match.group(2)) if match.group(2) is not None else 1
        if den == 0:
            raise ProbeError(file_path, f"invalid frame rate {text}")
        return FrameRate(num=num, den=den)

    def _duration(self, data: Dict[str, Any], video_stream: Dict[str, Any]) -> float:
        fmt = data.get("format", {}) or {}
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            duration = self._to_float(video_stream.get("duration"))
        if duration <= 0:
            tags = video_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        return duration

    def _run(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            self.binary,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, errors="replace")
        except OSError as e:
            raise ProbeError(file_path, f"could not run ffprobe ({e})") from e
        if result.returncode != 0:
            raise ProbeError(file_path, f"ffprobe failed ({result.stderr.strip()})")
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(file_path, "ffprobe returned invalid JSON") from e

    def probe(self, file_path: Path) -> MediaProperties:
        """Returns width, height, frame rate and first-audio-stream info, or raises ProbeError."""
        data = self._run(file_path)
        streams = data.get("streams", []) or []

        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeError(file_path, "no video stream")

        width = self._parse_dimension(file_path, video_stream, "width")
        height = self._parse_dimension(file_path, video_stream, "height")
        frame_rate = self.parse_frame_rate(file_path, video_stream.get("avg_frame_rate"))

        audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
        audio_bitrate: Optional[str] = None
        if audio_stream is not None:
            audio_bitrate = str(audio_stream.get("bit_rate", "N/A"))

        return MediaProperties(
            width=width,
            height=height,
            frame_rate=frame_rate,
            duration=self._duration(data, video_stream),
            has_audio=audio_stream is not None,
            audio_bitrate=audio_bitrate,
        )
