"""Apple Books provider backed by the iTunes Search and Lookup APIs."""

import logging
import re
import time
from collections.abc import Callable
from typing import Any

import requests

from folio.enrichment.http import JsonFetcher
from folio.enrichment.rate_limit import RateLimiter
from folio.enrichment.scoring import (
    ISBN_MATCH_SCORE,
    clamp,
    match_confidence,
    normalize_text,
    parse_year,
    rating_boost,
    score_title_author_match,
)
from folio.enrichment.types import (
    BookMetadata,
    MetadataSearchInput,
    ProviderRequestContext,
    QueryType,
    normalize_entries,
)
from folio.extractor.isbn import normalize_isbn

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"
ITUNES_LOOKUP_URL = "https://itunes.apple.com/lookup"
DEFAULT_COUNTRY = "US"
DEFAULT_LIMIT = 5
MAX_LIMIT = 20
MIN_INTERVAL_SECONDS = 0.35
HIGH_RES_ARTWORK = "1200x1200bb"

_ARTWORK_SIZE_RE = re.compile(r"/\d+x\d+bb\.(jpg|png)$", re.IGNORECASE)


def normalize_country(value: str | None) -> str:
    normalized = normalize_text(value)
    if not normalized:
        return DEFAULT_COUNTRY
    return normalized.upper()[:2]


def to_high_res_artwork(url: str) -> str:
    secure = re.sub(r"^http://", "https://", url)
    return _ARTWORK_SIZE_RE.sub(rf"/{HIGH_RES_ARTWORK}.\1", secure)


def _is_apple_book(raw: Any) -> bool:
    return isinstance(raw, dict) and any(k in raw for k in ("trackName", "artistName", "trackId"))


class AppleBooksProvider:
    """Searches the Apple Books store by ISBN or by title and author."""

    name = "applebooks"
    rate_limit_per_min = 240

    def __init__(
        self,
        session: requests.Session | None = None,
        country: str | None = None,
        limit: int = DEFAULT_LIMIT,
        max_retries: int = 3,
        min_interval: float = MIN_INTERVAL_SECONDS,
        timeout: float = 15.0,
        user_agent: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.country = normalize_country(country)
        self.limit = int(clamp(limit, 1, MAX_LIMIT))
        self.limiter = RateLimiter(min_interval, sleep=sleep)
        self.fetcher = JsonFetcher(
            session or requests.Session(),
            self.limiter,
            max_retries=max_retries,
            timeout=timeout,
            user_agent=user_agent,
            sleep=sleep,
        )

    def search(self, search: MetadataSearchInput) -> list[BookMetadata]:
        if search.isbn:
            return self.fetch_by_isbn(search.isbn, search)

        title = normalize_text(search.title)
        author = normalize_text(search.author)
        if not title and not author:
            return []

        logger.info("Searching Apple Books: %s / %s", title, author)
        payload = self.fetcher.get(
            ITUNES_SEARCH_URL,
            params={
                "term": " ".join(v for v in (title, author) if v),
                "media": "ebook",
                "entity": "ebook",
                "country": normalize_country(search.country or self.country),
                "limit": self._limit(search),
            },
        )
        context = ProviderRequestContext(QueryType.TITLE_AUTHOR, title=title, author=author)
        return self._normalize_results(payload, context)

    def fetch_by_isbn(
        self, isbn: str, search: MetadataSearchInput | None = None
    ) -> list[BookMetadata]:
        normalized = normalize_isbn(isbn)
        if not normalized:
            return []
        search = search or MetadataSearchInput()

        logger.info("Looking up Apple Books by ISBN: %s", normalized)
        payload = self.fetcher.get(
            ITUNES_LOOKUP_URL,
            params={
                "isbn": normalized,
                "entity": "ebook",
                "country": normalize_country(search.country or self.country),
                "limit": self._limit(search),
            },
        )
        context = ProviderRequestContext(QueryType.ISBN, isbn=normalized)
        return self._normalize_results(payload, context)

    def get_cover_url(self, raw: Any) -> str | None:
        if not _is_apple_book(raw):
            return None
        base = normalize_text(raw.get("artworkUrl100")) or normalize_text(raw.get("artworkUrl60"))
        return to_high_res_artwork(base) if base else None

    def normalize_result(self, raw: Any, context: ProviderRequestContext) -> BookMetadata | None:
        if not _is_apple_book(raw):
            return None
        if raw.get("kind") and raw["kind"] != "ebook":
            return None

        title = normalize_text(raw.get("trackName"))
        author = normalize_text(raw.get("artistName"))
        if not title and not author:
            return None

        authors = [author] if author else []
        if context.query_type is QueryType.ISBN:
            match_score = ISBN_MATCH_SCORE
        else:
            match_score = score_title_author_match(title, authors, context.title, context.author)
        boost = rating_boost(raw.get("averageUserRating"), raw.get("userRatingCount"))

        track_id = raw.get("trackId")
        return BookMetadata(
            source=self.name,
            confidence=match_confidence(match_score, boost),
            raw=raw,
            title=title,
            authors=authors,
            published_year=parse_year(raw.get("releaseDate")),
            description=normalize_text(raw.get("description")),
            identifiers=[context.isbn] if context.isbn else [],
            cover_url=self.get_cover_url(raw),
            source_id=str(track_id) if track_id else None,
            source_url=normalize_text(raw.get("trackViewUrl")),
        )

    def _limit(self, search: MetadataSearchInput) -> int:
        return int(clamp(search.limit or self.limit, 1, MAX_LIMIT))

    def _normalize_results(
        self, payload: Any, context: ProviderRequestContext
    ) -> list[BookMetadata]:
        if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
            return []
        candidates = normalize_entries(self, payload["results"], context)
        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates[: self.limit]
