"""
ffmpeg / ffprobe wrappers.

MediaProber reads container and stream properties through ffprobe's JSON
output; FFmpegTranscoder produces speech-ready MP3 (mono, 16 kHz, low
bitrate) from any input ffmpeg understands. Every invocation carries its own
timeout and failures surface as TranscodeFailed.
"""

import json
import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..cancellation import CancellationToken
from ..errors import JobCanceled, TranscodeFailed

logger = logging.getLogger(__name__)

# How often a running process is checked for cancellation
POLL_INTERVAL = 0.5


def find_ffmpeg_exe(configured: str = "") -> Optional[str]:
    """Locate ffmpeg: configured path first, then PATH."""
    if configured and os.path.exists(configured):
        return configured
    return shutil.which("ffmpeg")


def find_ffprobe_exe(configured: str = "") -> Optional[str]:
    """Locate ffprobe: configured path first, then PATH."""
    if configured and os.path.exists(configured):
        return configured
    return shutil.which("ffprobe")


def run(cmd: List[str], timeout: float, cancel_token: Optional[CancellationToken] = None) -> str:
    """
    Run an external command and return its stdout.

    The process is killed as soon as `cancel_token` fires or `timeout`
    seconds pass.

    Raises:
        TranscodeFailed: On a non-zero exit code, a timeout or a missing binary
        JobCanceled: If the token was canceled before or while the command ran
    """
    if cancel_token is not None:
        cancel_token.raise_if_canceled()

    logger.debug(f"exec: {' '.join(cmd)}")
    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as e:
        raise TranscodeFailed(f"Could not run {cmd[0]}: {e}") from e

    deadline = time.monotonic() + timeout
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=min(POLL_INTERVAL, max(deadline - time.monotonic(), 0.01)))
            break
        except subprocess.TimeoutExpired:
            if cancel_token is not None and cancel_token.is_canceled:
                _kill(proc)
                raise JobCanceled("Job was canceled")
            if time.monotonic() >= deadline:
                _kill(proc)
                raise TranscodeFailed(f"{os.path.basename(cmd[0])} timed out after {timeout:.0f}s")

    if proc.returncode != 0:
        lines = (stderr or "").strip().splitlines()
        tail = "\n".join(lines[-5:])
        raise TranscodeFailed(f"{os.path.basename(cmd[0])} exited with code {proc.returncode}: {tail}")
    return stdout


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.communicate()


@dataclass
class MediaInfo:
    """Container/stream properties reported by ffprobe."""

    duration: float
    format: str
    bitrate: int
    has_audio: bool
    has_video: bool


class MediaProber:
    """Inspect media files with ffprobe."""

    def __init__(self, ffprobe_path: str = "", timeout: float = 60.0):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def probe(self, path: Path) -> MediaInfo:
        """
        Read duration, format and stream flags of a media file.

        Args:
            path: File to inspect

        Returns:
            MediaInfo for the file

        Raises:
            TranscodeFailed: If ffprobe is unavailable, fails, or returns unreadable output
        """
        exe = find_ffprobe_exe(self.ffprobe_path)
        if not exe:
            raise TranscodeFailed("ffprobe executable not found. Install ffmpeg or set FFPROBE_PATH.")

        out = run(
            [exe, "-v", "error", "-print_format", "json", "-show_format", "-show_streams", str(path)],
            timeout=self.timeout,
        )
        try:
            data = json.loads(out or "{}")
        except json.JSONDecodeError as e:
            raise TranscodeFailed(f"ffprobe returned invalid JSON for {path}") from e

        fmt = data.get("format") or {}
        streams = data.get("streams") or []
        return MediaInfo(
            duration=_to_float(fmt.get("duration")),
            format=fmt.get("format_name", "unknown"),
            bitrate=int(_to_float(fmt.get("bit_rate"))),
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
            has_video=any(s.get("codec_type") == "video" for s in streams),
        )


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class FFmpegTranscoder:
    """Produce speech-ready MP3 files with ffmpeg."""

    def __init__(
        self,
        ffmpeg_path: str = "",
        bitrate: str = "64k",
        sample_rate: int = 16000,
        timeout: float = 600.0,
    ):
        """
        Args:
            ffmpeg_path: Explicit ffmpeg binary (default: look up on PATH)
            bitrate: Target audio bitrate; low on purpose, speech survives it
            sample_rate: Target sample rate in Hz
            timeout: Per-invocation timeout in seconds
        """
        self.ffmpeg_path = ffmpeg_path
        self.bitrate = bitrate
        self.sample_rate = sample_rate
        self.timeout = timeout

    def _exe(self) -> str:
        exe = find_ffmpeg_exe(self.ffmpeg_path)
        if not exe:
            raise TranscodeFailed("ffmpeg executable not found. Install ffmpeg or set FFMPEG_PATH.")
        return exe

    def _encode_args(self) -> List[str]:
        return ["-vn", "-ac", "1", "-ar", str(self.sample_rate), "-c:a", "libmp3lame", "-b:a", self.bitrate]

    def convert(
        self, input_path: Path, output_path: Path, cancel_token: Optional[CancellationToken] = None
    ) -> Path:
        """Transcode an audio file to the canonical speech format."""
        cmd = [self._exe(), "-y", "-i", str(input_path), *self._encode_args(), str(output_path)]
        run(cmd, self.timeout, cancel_token)
        return output_path

    def extract_audio(
        self, video_path: Path, output_path: Path, cancel_token: Optional[CancellationToken] = None
    ) -> Path:
        """Pull the audio track out of a video container (already in the canonical format)."""
        cmd = [self._exe(), "-y", "-i", str(video_path), *self._encode_args(), str(output_path)]
        run(cmd, self.timeout, cancel_token)
        size_mb = output_path.stat().st_size / (1024 * 1024) if output_path.exists() else 0.0
        logger.info(f"Extracted audio: {size_mb:.2f}MB")
        return output_path

    def segment(
        self,
        input_path: Path,
        output_path: Path,
        start: float,
        duration: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """Cut [start, start + duration) out of a file, re-encoding for predictable sizes."""
        run(
            [
                self._exe(),
                "-y",
                "-ss",
                f"{start:.3f}",
                "-t",
                f"{duration:.3f}",
                "-i",
                str(input_path),
                *self._encode_args(),
                str(output_path),
            ],
            self.timeout,
            cancel_token,
        )
        return output_path
