"""
Audio path of the ingestion pipeline.

Main components:
- MediaProber / FFmpegTranscoder: ffprobe and ffmpeg wrappers
- AudioNormalizer: speech-ready transcoding and fixed-duration chunking
- TranscriptionProvider: OpenAI and Groq speech-to-text adapters
- AudioTranscriber: bounded-parallel chunk transcription with ordered merge

Example usage:
    from lecture_ingest.audio import AudioNormalizer, AudioTranscriber, create_provider

    normalized = normalizer.normalize(data, "lecture.mp4")
    with normalized.workspace:
        result = AudioTranscriber(create_provider(settings)).transcribe_chunks(normalized.chunks)
"""

from .ffmpeg import FFmpegTranscoder, MediaInfo, MediaProber
from .normalizer import AudioNormalizer, NormalizedAudio, plan_chunks
from .providers import (
    GroqTranscriptionProvider,
    OpenAITranscriptionProvider,
    TranscriptionProvider,
    create_provider,
)
from .transcription import AudioTranscriber
from .utils import format_timestamp

__all__ = [
    "AudioNormalizer",
    "AudioTranscriber",
    "FFmpegTranscoder",
    "GroqTranscriptionProvider",
    "MediaInfo",
    "MediaProber",
    "NormalizedAudio",
    "OpenAITranscriptionProvider",
    "TranscriptionProvider",
    "create_provider",
    "format_timestamp",
    "plan_chunks",
]
