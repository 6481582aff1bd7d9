"""Google Books volumes API provider."""

import logging
import re
import time
from collections.abc import Callable
from typing import Any

import requests

from folio.enrichment.http import JsonFetcher
from folio.enrichment.rate_limit import RateLimiter
from folio.enrichment.scoring import (
    match_confidence,
    normalize_text,
    parse_year,
    rating_boost,
    score_title_author_match,
    text_list,
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

GOOGLE_BOOKS_VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"
MIN_INTERVAL_SECONDS = 0.25
ISBN_RESULT_LIMIT = 5
FIRST_ISBN_CONFIDENCE = 0.85
OTHER_ISBN_CONFIDENCE = 0.7

# Largest first.
IMAGE_LINK_KEYS = ("extraLarge", "large", "medium", "small", "thumbnail", "smallThumbnail")


def _strip_html(text: str) -> str:
    return re.sub(r"<[^>]+>", "", text).strip()


class GoogleBooksProvider:
    """Looks up volumes by ISBN or by intitle/inauthor search."""

    name = "googlebooks"
    rate_limit_per_min = 240

    def __init__(
        self,
        session: requests.Session | None = None,
        api_key: str | None = None,
        limit: int = 5,
        max_retries: int = 3,
        min_interval: float = MIN_INTERVAL_SECONDS,
        timeout: float = 15.0,
        user_agent: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.limit = limit
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

        q_parts = []
        if title:
            q_parts.append(f'intitle:"{title}"')
        if author:
            q_parts.append(f'inauthor:"{author}"')

        logger.info("Searching Google Books: %s", " ".join(q_parts))
        items = self._volumes({"q": " ".join(q_parts), "maxResults": search.limit or self.limit})
        context = ProviderRequestContext(QueryType.TITLE_AUTHOR, title=title, author=author)

        candidates = normalize_entries(self, items, context)
        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates[: search.limit or self.limit]

    def fetch_by_isbn(
        self, isbn: str, search: MetadataSearchInput | None = None
    ) -> list[BookMetadata]:
        normalized = normalize_isbn(isbn)
        if not normalized:
            return []

        logger.info("Looking up Google Books by ISBN: %s", normalized)
        items = self._volumes({"q": f"isbn:{normalized}"})
        context = ProviderRequestContext(QueryType.ISBN, isbn=normalized)

        candidates = []
        for candidate in normalize_entries(self, items[:ISBN_RESULT_LIMIT], context):
            candidate.confidence = OTHER_ISBN_CONFIDENCE if candidates else FIRST_ISBN_CONFIDENCE
            candidates.append(candidate)
        return candidates

    def get_cover_url(self, raw: Any) -> str | None:
        if not isinstance(raw, dict):
            return None
        links = (raw.get("volumeInfo") or {}).get("imageLinks") or {}
        if not isinstance(links, dict):
            return None
        for key in IMAGE_LINK_KEYS:
            url = normalize_text(links.get(key))
            if url:
                return re.sub(r"^http://", "https://", url)
        return None

    def normalize_result(self, raw: Any, context: ProviderRequestContext) -> BookMetadata | None:
        if not isinstance(raw, dict) or not isinstance(raw.get("volumeInfo"), dict):
            return None
        info = raw["volumeInfo"]

        title = normalize_text(info.get("title"))
        authors = text_list(info.get("authors"))
        if not title and not authors:
            return None

        identifiers = []
        entries = info.get("industryIdentifiers")
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, dict) and (value := normalize_text(entry.get("identifier"))):
                identifiers.append(normalize_isbn(value) or value)

        if context.query_type is QueryType.ISBN:
            confidence = FIRST_ISBN_CONFIDENCE
        else:
            score = score_title_author_match(title, authors, context.title, context.author)
            confidence = match_confidence(
                score, rating_boost(info.get("averageRating"), info.get("ratingsCount"))
            )

        description = normalize_text(info.get("description"))
        return BookMetadata(
            source=self.name,
            confidence=confidence,
            raw=raw,
            title=title,
            subtitle=normalize_text(info.get("subtitle")),
            authors=authors,
            published_year=parse_year(info.get("publishedDate")),
            language=normalize_text(info.get("language")),
            identifiers=identifiers,
            cover_url=self.get_cover_url(raw),
            description=_strip_html(description) if description else None,
            source_id=normalize_text(raw.get("id")),
            source_url=normalize_text(info.get("canonicalVolumeLink"))
            or normalize_text(info.get("infoLink")),
        )

    def _volumes(self, params: dict[str, Any]) -> list[Any]:
        if self.api_key:
            params = {**params, "key": self.api_key}
        payload = self.fetcher.get(GOOGLE_BOOKS_VOLUMES_URL, params=params)
        if not isinstance(payload, dict) or not isinstance(payload.get("items"), list):
            return []
        return payload["items"]
