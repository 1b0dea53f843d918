"""Hardware and input probing through ffmpeg/ffprobe.

A :class:`CapabilityDetector` belongs to one source video. It probes at most
once per question and keeps the answers for every clip cut from that video.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from encode_plan import EncodePlan, Vendor, build_encode_plan, classify_encoders

# (command, timeout seconds) -> completed process; raises on failure.
Runner = Callable[[List[str], Optional[float]], subprocess.CompletedProcess]


class ProbeError(RuntimeError):
    """Raised when the input video cannot be probed."""


def run_command(cmd: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """Run an external tool, capturing text output.

    Raises ``CalledProcessError`` on a non-zero exit, ``TimeoutExpired`` on
    timeout and ``FileNotFoundError`` when the binary is not installed.
    """
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )


def _stderr_tail(error: Exception, limit: int = 300) -> str:
    stderr = getattr(error, "stderr", None) or ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    stderr = stderr.strip()
    return stderr[-limit:] if stderr else str(error)


class CapabilityDetector:
    """Memoized hardware-vendor and input-codec probes for one video."""

    def __init__(
        self,
        video_path: Path,
        runner: Runner = run_command,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        probe_timeout: Optional[float] = 30.0,
    ):
        self.video_path = Path(video_path)
        self._runner = runner
        self._ffmpeg_bin = ffmpeg_bin
        self._ffprobe_bin = ffprobe_bin
        self._probe_timeout = probe_timeout
        self._vendor: Optional[Vendor] = None
        self._codec: Optional[str] = None
        self._plan: Optional[EncodePlan] = None

    def hardware_vendor(self) -> Vendor:
        """Detect the GPU encoder family, falling back to ``cpu``."""
        if self._vendor is None:
            cmd = [self._ffmpeg_bin, "-hide_banner", "-encoders"]
            try:
                result = self._runner(cmd, self._probe_timeout)
                self._vendor = classify_encoders(result.stdout or "")
            except (OSError, subprocess.SubprocessError) as e:
                logging.warning(f"Hardware probe failed ({_stderr_tail(e)}). Using CPU encoding.")
                self._vendor = Vendor.CPU
            logging.info(f"Hardware acceleration: {self._vendor.value}")
        return self._vendor

    def input_codec(self) -> str:
        """Return the codec name of the first video stream.

        Raises:
            ProbeError: If ffprobe fails or reports no video stream.
        """
        if self._codec is None:
            cmd = [
                self._ffprobe_bin, "-v", "error",
                "-select_streams", "v:0",
                "-show_entries", "stream=codec_name",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(self.video_path),
            ]
            try:
                result = self._runner(cmd, self._probe_timeout)
            except (OSError, subprocess.SubprocessError) as e:
                raise ProbeError(
                    f"Could not probe video codec of {self.video_path}: {_stderr_tail(e)}"
                ) from e

            output = (result.stdout or "").strip()
            codec = output.splitlines()[0].strip() if output else ""
            if not codec:
                raise ProbeError(f"No video stream found in {self.video_path}")
            self._codec = codec
            logging.info(f"Input codec: {codec}")
        return self._codec

    def encode_plan(self) -> EncodePlan:
        if self._plan is None:
            self._plan = build_encode_plan(self.hardware_vendor(), self.input_codec())
            if not self._plan.is_hardware_decode:
                logging.info("Decoding in software")
        return self._plan
