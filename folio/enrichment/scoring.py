"""Title/author match scoring and confidence helpers."""

import math
import re
from typing import Any

EMPTY_SIDE_SIMILARITY = 0.2
NO_EXPECTATION_SCORE = 0.7
TITLE_WEIGHT = 0.7
AUTHOR_WEIGHT = 0.3
ISBN_MATCH_SCORE = 0.98

BASE_CONFIDENCE = 0.45
MATCH_CONFIDENCE_SPAN = 0.45
MAX_CONFIDENCE = 0.99
MAX_RATING_BOOST = 0.08

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_YEAR_RE = re.compile(r"\b(\d{4})\b")


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def normalize_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def text_list(value: Any) -> list[str]:
    """Non-empty stripped strings of a list field; anything else is empty."""
    if not isinstance(value, list):
        return []
    return [cleaned for v in value if (cleaned := normalize_text(v))]


def parse_year(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return None
    match = _YEAR_RE.search(value)
    return int(match.group(1)) if match else None


def tokenize(value: str) -> set[str]:
    return set(_NON_ALNUM_RE.sub(" ", value.lower()).split())


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the two token sets."""
    a_tokens = tokenize(a)
    b_tokens = tokenize(b)
    if not a_tokens or not b_tokens:
        return EMPTY_SIDE_SIMILARITY
    return len(a_tokens & b_tokens) / len(a_tokens | b_tokens)


def score_title_author_match(
    title: str | None,
    authors: list[str],
    expected_title: str | None,
    expected_author: str | None,
) -> float:
    title_score = (
        similarity(title or "", expected_title) if expected_title else NO_EXPECTATION_SCORE
    )
    author_score = (
        similarity(" ".join(authors), expected_author) if expected_author else NO_EXPECTATION_SCORE
    )
    return title_score * TITLE_WEIGHT + author_score * AUTHOR_WEIGHT


def rating_boost(rating: Any, votes: Any) -> float:
    if not isinstance(rating, (int, float)) or isinstance(rating, bool) or math.isnan(rating):
        return 0.0
    safe_votes = votes if isinstance(votes, (int, float)) and votes > 0 else 0
    vote_weight = min(1.0, math.log10(safe_votes + 1) / 2)
    return clamp(rating / 5 * MAX_RATING_BOOST * vote_weight, 0.0, MAX_RATING_BOOST)


def match_confidence(match_score: float, boost: float = 0.0) -> float:
    confidence = BASE_CONFIDENCE + match_score * MATCH_CONFIDENCE_SPAN + boost
    return clamp(confidence, BASE_CONFIDENCE, MAX_CONFIDENCE)
