"""
Utility functions for transcript handling.

Timestamp formatting for logs and results, and the segment filter that drops
the filler Whisper-family models emit over silence.
"""

from typing import List

from ..models import TranscriptSegment

# Whisper emits these over silence or music
HALLUCINATIONS = ["1.5%", "2.5%", "3.5%", "subscribe", ".", "...", "♪", "[BLANK_AUDIO]", "(blank)"]


def format_timestamp(seconds: float) -> str:
    """
    Format seconds as MM:SS or HH:MM:SS.

    Args:
        seconds: Time in seconds

    Returns:
        Formatted time string
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def is_valid_segment(text: str, no_speech_prob: float = 0.0) -> bool:
    """
    Check if a transcription segment is real speech rather than a hallucination.

    Args:
        text: Transcribed segment text
        no_speech_prob: Model's probability that the segment contains no speech (0-1)

    Returns:
        True if the segment appears to be valid speech
    """
    if no_speech_prob > 0.6:
        return False

    text_lower = text.lower().strip()
    if not text_lower:
        return False

    if text_lower in [h.lower() for h in HALLUCINATIONS]:
        return False

    if len(text_lower) <= 3 and not any(c.isalpha() for c in text_lower):
        return False

    return True


def offset_segments(segments: List[TranscriptSegment], offset: float) -> List[TranscriptSegment]:
    """Move chunk-relative segments onto the source timeline."""
    return [segment.shifted(offset) for segment in segments]
