"""Keyword extraction and lexical similarity helpers."""
from __future__ import annotations

import re
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional, Set

BASE_STOPWORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can",
        "to", "of", "in", "for", "on", "with", "at", "by", "from", "as",
        "into", "through", "during", "before", "after", "above", "below",
        "between", "under",
        "and", "but", "if", "or", "because", "until", "while", "although",
        "i", "you", "he", "she", "it", "we", "they", "me", "him", "her",
        "us", "them", "my", "your", "his", "its", "our", "their",
        "this", "that", "these", "those",
        "what", "which", "who", "whom", "whose",
        "so", "just", "now", "then", "here", "there",
        "when", "where", "why", "how",
        "all", "each", "every", "both", "few", "more", "most", "other",
        "some", "such", "no", "not", "only", "same", "than", "too", "very",
        "please", "thank", "thanks", "sorry", "okay", "ok", "yes", "yeah",
    }
)

# Words describing the interview process itself rather than its subject.
INTERVIEW_META_STOPWORDS: FrozenSet[str] = frozenset(
    {
        "probe", "probing", "deeper", "respondent", "ask", "asking",
        "conversation", "interview", "question", "follow", "followup",
        "explore", "exploring", "discuss", "discussing", "elaborate",
        "elaborating", "further", "topic", "about", "regarding",
        "tell", "said", "saying", "mentioned", "suggest", "suggested",
        "guide", "guidance", "next", "move", "transition",
    }
)

_NON_ALPHA = re.compile(r"[^a-z\s]")


def get_keywords(text: str, extra_stopwords: Optional[Iterable[str]] = None) -> Set[str]:
    """Lowercased content words longer than two letters."""

    stopwords = BASE_STOPWORDS | frozenset(extra_stopwords) if extra_stopwords else BASE_STOPWORDS
    cleaned = _NON_ALPHA.sub("", (text or "").lower())
    return {word for word in cleaned.split() if len(word) > 2 and word not in stopwords}


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def overlap_coefficient(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / min(len(a), len(b))


def word_count(text: str) -> int:
    return len((text or "").split())


@lru_cache(maxsize=256)
def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(phrase)}\b")


def contains_phrase(text: str, phrases: Iterable[str]) -> bool:
    """True when any phrase occurs in ``text`` on word boundaries, ignoring case."""

    lowered = (text or "").lower()
    return any(_phrase_pattern(phrase).search(lowered) for phrase in phrases)


def truncate(text: str, limit: int, ellipsis: str = "…") -> str:
    """Clip ``text`` to ``limit`` characters including the ellipsis."""

    if len(text) <= limit:
        return text
    return text[: limit - len(ellipsis)] + ellipsis


__all__ = [
    "BASE_STOPWORDS",
    "INTERVIEW_META_STOPWORDS",
    "contains_phrase",
    "get_keywords",
    "jaccard_similarity",
    "overlap_coefficient",
    "truncate",
    "word_count",
]
