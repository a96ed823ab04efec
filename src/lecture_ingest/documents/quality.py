"""
Quality assessment for extracted text.

The scores are heuristics: garbled OCR output and broken text layers tend to
contain many one-character fragments and run-together "words", so the share
of such words is used as a proxy for extraction quality. The constants are
not calibrated against a corpus and can be tuned through QualityThresholds.
"""

import re
from dataclasses import dataclass

from ..models import DocumentQuality, RecommendedAction

HEADING_PATTERN = re.compile(r"^#+ ", re.MULTILINE)
SLIDE_PATTERN = re.compile(r"--- Slide", re.IGNORECASE)
LIST_PATTERN = re.compile(r"^[-*•] ", re.MULTILINE)
TABLE_PATTERN = re.compile(r"\|.*\|")


@dataclass(frozen=True)
class QualityThresholds:
    """Tunable constants of the quality heuristic."""

    max_word_length: int = 20
    ocr_below_confidence: float = 0.4
    review_below_confidence: float = 0.6
    min_length: int = 50
    complete_length: int = 500
    base_structure: float = 0.2
    heading_weight: float = 0.3
    list_weight: float = 0.2
    table_weight: float = 0.3


DEFAULT_THRESHOLDS = QualityThresholds()


def assess_quality(text: str, thresholds: QualityThresholds = DEFAULT_THRESHOLDS) -> DocumentQuality:
    """
    Score extracted text and recommend what to do with it.

    Pure function: the same text always produces the same scores.

    Args:
        text: Extracted text (may be empty)
        thresholds: Heuristic constants

    Returns:
        DocumentQuality with scores in [0, 1]
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return DocumentQuality(
            text_confidence=0.0,
            structure_score=0.0,
            completeness=0.0,
            recommended_action=RecommendedAction.OCR,
        )

    words = trimmed.split()
    gibberish = sum(1 for w in words if len(w) == 1 or len(w) > thresholds.max_word_length)
    text_confidence = max(0.0, 1.0 - gibberish / len(words))

    structure_score = thresholds.base_structure
    if HEADING_PATTERN.search(trimmed) or SLIDE_PATTERN.search(trimmed):
        structure_score += thresholds.heading_weight
    if LIST_PATTERN.search(trimmed):
        structure_score += thresholds.list_weight
    if TABLE_PATTERN.search(trimmed):
        structure_score += thresholds.table_weight

    completeness = min(1.0, len(trimmed) / thresholds.complete_length)

    if text_confidence < thresholds.ocr_below_confidence:
        action = RecommendedAction.OCR
    elif text_confidence < thresholds.review_below_confidence or len(trimmed) < thresholds.min_length:
        action = RecommendedAction.MANUAL_REVIEW
    else:
        action = RecommendedAction.PROCESS

    return DocumentQuality(
        text_confidence=round(text_confidence, 4),
        structure_score=round(min(1.0, structure_score), 4),
        completeness=round(completeness, 4),
        recommended_action=action,
    )
