"""
Heuristic language detection.

Counts stop words and language-specific characters in a sample of the text.
Good enough to pick between the languages lectures usually arrive in; it is
not a general-purpose language identifier.
"""

import re
from collections import Counter
from typing import Dict, Optional

LANGUAGE_NAMES = {
    "en": "English",
    "tr": "Turkish",
    "de": "German",
    "es": "Spanish",
    "fr": "French",
}

STOP_WORDS = {
    "en": {"the", "and", "of", "to", "is", "in", "that", "it", "this", "for", "are", "with", "as", "was", "on", "we", "you", "be", "not", "or"},
    "tr": {"ve", "bir", "bu", "da", "de", "için", "ile", "çok", "ne", "gibi", "olarak", "daha", "ama", "var", "yok", "şey", "değil", "mi", "ben", "biz"},
    "de": {"und", "der", "die", "das", "ist", "nicht", "ein", "eine", "zu", "den", "mit", "von", "für", "auf", "sich", "auch", "wir", "oder", "sind", "wird"},
    "es": {"el", "la", "de", "que", "y", "en", "los", "las", "por", "con", "una", "para", "es", "del", "como", "pero", "más", "este", "esta", "se"},
    "fr": {"le", "la", "les", "et", "des", "est", "une", "un", "que", "pour", "dans", "pas", "qui", "sur", "avec", "ce", "cette", "nous", "vous", "sont"},
}

# Letters that are rare outside the language
SPECIAL_CHARACTERS = {
    "tr": "ğĞıİşŞ",
    "de": "äÄßẞ",
    "es": "ñÑ¿¡",
    "fr": "œŒçÇèÈêÊëËîÎôÔ",
}

WORD_PATTERN = re.compile(r"[^\W\d_]+", re.UNICODE)
SAMPLE_CHARS = 20000
CHARACTER_WEIGHT = 0.05


def language_scores(text: str) -> Dict[str, float]:
    """Score each known language for a text sample (higher is more likely)."""
    sample = (text or "")[:SAMPLE_CHARS]
    words = [w.lower() for w in WORD_PATTERN.findall(sample)]
    if not words:
        return {code: 0.0 for code in STOP_WORDS}

    counts = Counter(words)
    scores = {}
    for code, stop_words in STOP_WORDS.items():
        hits = sum(counts[w] for w in stop_words)
        score = hits / len(words)
        special = SPECIAL_CHARACTERS.get(code)
        if special:
            char_hits = sum(sample.count(ch) for ch in special)
            score += CHARACTER_WEIGHT * min(1.0, char_hits / max(1, len(words)) * 10)
        scores[code] = score
    return scores


def detect_language(text: str) -> Optional[str]:
    """
    Guess the language of a text.

    Args:
        text: Raw transcript or extracted document text

    Returns:
        ISO-639-1 code ("en", "tr", "de", "es", "fr"), or None when undecidable
    """
    scores = language_scores(text)
    best = max(scores, key=lambda code: scores[code])
    if scores[best] <= 0:
        return None
    return best


def language_name(code: Optional[str]) -> Optional[str]:
    if not code:
        return None
    return LANGUAGE_NAMES.get(code.lower(), code)
