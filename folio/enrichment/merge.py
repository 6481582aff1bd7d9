"""Weighted fusion of candidate records from several providers."""

import re
from dataclasses import replace

from folio.enrichment.scoring import clamp
from folio.enrichment.types import BookMetadata

DEFAULT_PROVIDER_WEIGHTS: dict[str, float] = {
    "applebooks": 1.0,
    "googlebooks": 0.92,
    "openlibrary": 0.85,
    "bolcom": 0.8,
}
DEFAULT_WEIGHT = 0.75

_APPLE_SIZE_RE = re.compile(r"/(\d+)x(\d+)bb\.(jpg|png)", re.IGNORECASE)
_OPENLIBRARY_SIZE_RE = re.compile(r"-([SML])\.jpg", re.IGNORECASE)
_GOOGLE_ZOOM_RE = re.compile(r"[?&]zoom=(\d+)")

# Nominal pixel areas for size-coded cover URLs.
OPENLIBRARY_COVER_AREAS = {"S": 45 * 68, "M": 180 * 270, "L": 500 * 750}
GOOGLE_ZOOM_WIDTH = 128


def score_with_provider_weight(
    candidates: list[BookMetadata],
    weights: dict[str, float] | None = None,
) -> list[BookMetadata]:
    """Copies of the candidates with weighted_confidence set, best first.

    The sort is stable, so equal scores keep their input order.
    """
    weights = DEFAULT_PROVIDER_WEIGHTS if weights is None else weights
    scored = [
        replace(
            candidate,
            weighted_confidence=clamp(
                candidate.confidence * weights.get(candidate.source, DEFAULT_WEIGHT), 0.0, 1.0
            ),
        )
        for candidate in candidates
    ]
    return sorted(scored, key=lambda c: c.weighted_confidence or 0.0, reverse=True)


def merge_provider_results(
    candidates: list[BookMetadata],
    weights: dict[str, float] | None = None,
) -> BookMetadata | None:
    scored = score_with_provider_weight(candidates, weights)
    if not scored:
        return None

    winner, alternatives = scored[0], scored[1:]

    authors = winner.authors or next((c.authors for c in alternatives if c.authors), [])
    source_url = winner.source_url or next(
        (c.source_url for c in alternatives if c.source_url), None
    )

    return replace(
        winner,
        authors=list(authors),
        identifiers=_dedupe([value for c in scored for value in c.identifiers]),
        cover_url=pick_cover(scored),
        description=_longest([c.description for c in scored]),
        source_url=source_url,
    )


def infer_cover_size(url: str | None) -> int:
    """Approximate pixel area encoded in a cover URL, 0 when unknown."""
    if not url:
        return 0
    if match := _APPLE_SIZE_RE.search(url):
        return int(match.group(1)) * int(match.group(2))
    if match := _OPENLIBRARY_SIZE_RE.search(url):
        return OPENLIBRARY_COVER_AREAS[match.group(1).upper()]
    if match := _GOOGLE_ZOOM_RE.search(url):
        width = GOOGLE_ZOOM_WIDTH * int(match.group(1))
        return width * width * 3 // 2
    return 0


def pick_cover(scored: list[BookMetadata]) -> str | None:
    with_cover = [c for c in scored if c.cover_url]
    if not with_cover:
        return None
    best = max(
        with_cover,
        key=lambda c: (infer_cover_size(c.cover_url), c.weighted_confidence or 0.0),
    )
    return best.cover_url


def _longest(values: list[str | None]) -> str | None:
    present = [v for v in values if v]
    if not present:
        return None
    return max(present, key=len)


def _dedupe(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        cleaned = value.strip()
        if cleaned:
            seen.setdefault(cleaned)
    return list(seen)
