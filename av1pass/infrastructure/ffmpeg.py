import os
import subprocess
import re
import logging
import time
from collections import deque
from pathlib import Path
from typing import Callable, List, Optional
from av1pass.config.models import EncodeProfile
from av1pass.domain.errors import EncodeError
from av1pass.domain.models import AttemptResult, AudioDecision, FilterSpec

# Regex to parse 'time=00:00:00.00' from ffmpeg -stats output
TIME_REGEX = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")

class FFmpegAdapter:
    """Wrapper around ffmpeg/libsvtav1 for a single encode attempt."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def build_command(
        self,
        input_path: Path,
        filters: FilterSpec,
        audio: AudioDecision,
        profile: EncodeProfile,
        output_path: Path,
        container: str = "mp4",
    ) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cmd = [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-stats",
            "-y",
            "-i", str(input_path),
            "-threads", "0",
            "-vf", filters.render(),
            "-c:v", "libsvtav1",
            "-preset", str(profile.preset),
            "-crf", str(profile.crf),
            "-pix_fmt", "yuv420p10le",
        ]
        if container == "mp4":
            cmd.extend(["-movflags", "+faststart"])
        cmd.extend(audio.ffmpeg_args())
        # Scratch files carry a .tmp suffix, so the muxer is named explicitly
        cmd.extend(["-f", container, str(output_path)])
        return cmd

    @staticmethod
    def _discard(output_path: Path) -> None:
        try:
            output_path.unlink()
        except FileNotFoundError:
            pass

    def _terminate(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def encode(
        self,
        input_path: Path,
        filters: FilterSpec,
        audio: AudioDecision,
        profile: EncodeProfile,
        output_path: Path,
        duration: float = 0.0,
        container: str = "mp4",
        progress: Optional[Callable[[float], None]] = None,
    ) -> AttemptResult:
        """Runs one encode. Raises EncodeError and leaves no file at output_path on failure."""
        filename = input_path.name
        start_time = time.monotonic()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command(input_path, filters, audio, profile, output_path, container)
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        env = dict(os.environ, SVT_LOG="0")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                errors="replace",
                bufsize=1,
                env=env,
            )
        except OSError as e:
            self._discard(output_path)
            raise EncodeError(input_path, f"could not run ffmpeg ({e})") from e

        tail = deque(maxlen=5)
        try:
            if process.stdout:
                for line in process.stdout:
                    match = TIME_REGEX.search(line)
                    if match:
                        h, m, s = map(float, match.groups())
                        if progress and duration > 0:
                            progress(min(100.0, (h * 3600 + m * 60 + s) / duration * 100.0))
                    elif line.strip():
                        tail.append(line.strip())
            process.wait()
        except KeyboardInterrupt:
            self.logger.info(f"FFMPEG_INTERRUPTED: {filename}")
            self._terminate(process)
            self._discard(output_path)
            raise
        except Exception as e:
            self.logger.error(f"FFMPEG_READ_ERROR: {filename} - {e}")
            self._terminate(process)
            self._discard(output_path)
            raise EncodeError(input_path, f"could not read ffmpeg output ({e})") from e

        elapsed = time.monotonic() - start_time
        if process.returncode != 0:
            self._discard(output_path)
            detail = f": {tail[-1]}" if tail else ""
            self.logger.info(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            raise EncodeError(input_path, f"ffmpeg exited with code {process.returncode}{detail}", process.returncode)

        try:
            size = output_path.stat().st_size
        except OSError as e:
            raise EncodeError(input_path, "ffmpeg reported success but wrote no output") from e

        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s size={size}")
        return AttemptResult(output_path=output_path, output_size_bytes=size)
