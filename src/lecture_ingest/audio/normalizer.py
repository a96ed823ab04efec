"""
Audio normalization and chunking.

Turns an uploaded audio or video file into one or more speech-ready MP3
chunks of bounded duration, written into the job's workspace.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..cancellation import CancellationToken
from ..errors import InvalidInput, NoAudioTrack
from ..formats import file_extension, is_video_file
from ..models import AudioChunk
from ..workspace import Workspace
from .ffmpeg import FFmpegTranscoder, MediaProber

logger = logging.getLogger(__name__)

# Clips up to this fraction of one chunk are transcribed in one piece
SINGLE_CHUNK_RATIO = 0.8


def plan_chunks(total_duration: float, chunk_seconds: float) -> List[Tuple[int, float, float]]:
    """
    Split [0, total_duration) into contiguous fixed-size windows.

    Args:
        total_duration: Source duration in seconds
        chunk_seconds: Target chunk length in seconds

    Returns:
        List of (index, start, end) tuples; the last window covers the remainder
    """
    if chunk_seconds <= 0:
        raise ValueError("chunk_seconds must be positive")
    if total_duration <= 0:
        return []

    count = math.ceil(round(total_duration / chunk_seconds, 9))
    plan = []
    for index in range(count):
        start = index * chunk_seconds
        end = min(start + chunk_seconds, total_duration)
        plan.append((index, float(start), float(end)))
    return plan


@dataclass
class NormalizedAudio:
    """Chunks ready for transcription plus the workspace that holds them."""

    chunks: List[AudioChunk]
    total_duration: float
    workspace: Workspace


class AudioNormalizer:
    """Extract, transcode and chunk uploaded media."""

    def __init__(
        self,
        prober: MediaProber,
        transcoder: FFmpegTranscoder,
        chunk_seconds: float = 300.0,
    ):
        self.prober = prober
        self.transcoder = transcoder
        self.chunk_seconds = chunk_seconds

    def normalize(
        self,
        input_bytes: bytes,
        original_filename: str,
        workspace: Optional[Workspace] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> NormalizedAudio:
        """
        Produce speech-ready chunks for an upload.

        Args:
            input_bytes: Raw upload content
            original_filename: Upload filename (its extension decides video handling)
            workspace: Workspace to write into; a fresh one is created when omitted
                and removed again if normalization fails
            cancel_token: Checked before every ffmpeg run; a running ffmpeg is killed when it fires

        Returns:
            NormalizedAudio with chunks in index order

        Raises:
            NoAudioTrack: If a video container has no audio stream
            JobCanceled: If the token fires during normalization
            InvalidInput: If the duration cannot be determined
            TranscodeFailed: If ffmpeg/ffprobe fail
            WorkspaceError: If intermediate files cannot be written
        """
        owns_workspace = workspace is None
        if workspace is None:
            workspace = Workspace.create()

        try:
            chunks, total = self._normalize(input_bytes, original_filename, workspace, cancel_token)
        except BaseException:
            if owns_workspace:
                workspace.cleanup()
            raise

        return NormalizedAudio(chunks=chunks, total_duration=total, workspace=workspace)

    def _normalize(
        self,
        input_bytes: bytes,
        original_filename: str,
        workspace: Workspace,
        cancel_token: Optional[CancellationToken],
    ):
        ext = file_extension(original_filename) or ".mp3"
        input_path = workspace.write_bytes(f"input{ext}", input_bytes)

        audio_path = input_path
        is_video = is_video_file(original_filename)
        if is_video:
            info = self.prober.probe(input_path)
            if not info.has_audio:
                raise NoAudioTrack("Video file does not contain an audio track")
            logger.info(f"Detected video file: {original_filename}, extracting audio...")
            _check(cancel_token)
            audio_path = self.transcoder.extract_audio(
                input_path, workspace.path("extracted_audio.mp3"), cancel_token=cancel_token
            )

        total = self.prober.probe(audio_path).duration
        if total <= 0:
            raise InvalidInput(f"Could not determine the duration of {original_filename}")

        logger.info(f"Processing {'video' if is_video else 'audio'}: {original_filename}, duration: {round(total)}s")

        if total <= self.chunk_seconds * SINGLE_CHUNK_RATIO:
            final_path = audio_path
            # Extracted audio is already in the canonical format
            if not is_video:
                _check(cancel_token)
                final_path = self.transcoder.convert(audio_path, workspace.path("converted.mp3"), cancel_token=cancel_token)
            return [AudioChunk(index=0, start_time=0.0, end_time=total, file_path=str(final_path))], total

        plan = plan_chunks(total, self.chunk_seconds)
        logger.info(f"Splitting {round(total)}s audio into {len(plan)} chunks of {self.chunk_seconds:.0f}s each")

        chunks = []
        for index, start, end in plan:
            chunk_path = workspace.path("chunks", f"chunk_{index:03d}.mp3")
            _check(cancel_token)
            self.transcoder.segment(audio_path, chunk_path, start, end - start, cancel_token=cancel_token)
            size_mb = _size_mb(chunk_path)
            logger.debug(f"  Chunk {index + 1}/{len(plan)}: {size_mb:.2f}MB ({round(end - start)}s)")
            chunks.append(AudioChunk(index=index, start_time=start, end_time=end, file_path=str(chunk_path)))
        return chunks, total


def _check(cancel_token: Optional[CancellationToken]) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_canceled()


def _size_mb(path: Path) -> float:
    return path.stat().st_size / (1024 * 1024) if path.exists() else 0.0
