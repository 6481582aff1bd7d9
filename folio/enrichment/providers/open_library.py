"""Open Library provider: edition lookups by ISBN and title/author search."""

import logging
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

OPENLIBRARY_BASE_URL = "https://openlibrary.org"
OPENLIBRARY_SEARCH_URL = f"{OPENLIBRARY_BASE_URL}/search.json"
OPENLIBRARY_COVER_TEMPLATE = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"
MIN_INTERVAL_SECONDS = 1.0
ISBN_CONFIDENCE = 0.9
MAX_AUTHOR_LOOKUPS = 3


def _description(value: Any) -> str | None:
    # Editions store either a plain string or {"type": ..., "value": ...}.
    if isinstance(value, dict):
        value = value.get("value")
    return normalize_text(value)


def _language(value: Any) -> str | None:
    if isinstance(value, list) and value:
        value = value[0]
    if isinstance(value, dict):
        value = value.get("key")
    text = normalize_text(value)
    return text.rsplit("/", 1)[-1] if text else None


class OpenLibraryProvider:
    """Reads edition records and resolves up to three author names per edition."""

    name = "openlibrary"
    rate_limit_per_min = 60

    def __init__(
        self,
        session: requests.Session | None = None,
        limit: int = 5,
        max_retries: int = 3,
        min_interval: float = MIN_INTERVAL_SECONDS,
        timeout: float = 15.0,
        user_agent: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
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

        params: dict[str, Any] = {"limit": search.limit or self.limit}
        if title:
            params["title"] = title
        if author:
            params["author"] = author

        logger.info("Searching Open Library: %s / %s", title, author)
        payload = self.fetcher.get(OPENLIBRARY_SEARCH_URL, params=params)
        if not isinstance(payload, dict) or not isinstance(payload.get("docs"), list):
            return []

        context = ProviderRequestContext(QueryType.TITLE_AUTHOR, title=title, author=author)
        candidates = normalize_entries(self, payload["docs"], context)
        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates[: search.limit or self.limit]

    def fetch_by_isbn(
        self, isbn: str, search: MetadataSearchInput | None = None
    ) -> list[BookMetadata]:
        normalized = normalize_isbn(isbn)
        if not normalized:
            return []

        logger.info("Looking up Open Library by ISBN: %s", normalized)
        edition = self.fetcher.get(f"{OPENLIBRARY_BASE_URL}/isbn/{normalized}.json")
        if not isinstance(edition, dict):
            return []

        raw = {**edition, "author_names": self._author_names(edition.get("authors"))}
        context = ProviderRequestContext(QueryType.ISBN, isbn=normalized)
        return normalize_entries(self, [raw], context)

    def get_cover_url(self, raw: Any) -> str | None:
        if not isinstance(raw, dict):
            return None
        cover_id = raw.get("cover_i")
        if cover_id is None and isinstance(raw.get("covers"), list):
            cover_id = next((c for c in raw["covers"] if isinstance(c, int) and c > 0), None)
        if not isinstance(cover_id, int) or cover_id <= 0:
            return None
        return OPENLIBRARY_COVER_TEMPLATE.format(cover_id=cover_id)

    def normalize_result(self, raw: Any, context: ProviderRequestContext) -> BookMetadata | None:
        """Normalize an edition record (ISBN lookups) or a search doc."""
        if not isinstance(raw, dict):
            return None

        title = normalize_text(raw.get("title"))
        authors = text_list(raw.get("author_names")) or text_list(raw.get("author_name"))
        if not title and not authors:
            return None

        if context.query_type is QueryType.ISBN:
            confidence = ISBN_CONFIDENCE
            identifiers = [context.isbn] if context.isbn else []
            for key in ("isbn_13", "isbn_10"):
                identifiers.extend(text_list(raw.get(key)))
            year = parse_year(raw.get("publish_date"))
        else:
            score = score_title_author_match(title, authors, context.title, context.author)
            confidence = match_confidence(score)
            identifiers = text_list(raw.get("isbn"))[:5]
            year = parse_year(raw.get("first_publish_year"))

        key = normalize_text(raw.get("key"))
        return BookMetadata(
            source=self.name,
            confidence=confidence,
            raw=raw,
            title=title,
            subtitle=normalize_text(raw.get("subtitle")),
            authors=authors,
            published_year=year,
            language=_language(raw.get("languages") or raw.get("language")),
            identifiers=list(dict.fromkeys(identifiers)),
            cover_url=self.get_cover_url(raw),
            description=_description(raw.get("description")),
            source_id=key,
            source_url=f"{OPENLIBRARY_BASE_URL}{key}" if key else None,
        )

    def _author_names(self, authors: Any) -> list[str]:
        if not isinstance(authors, list):
            return []
        names = []
        for author in authors[:MAX_AUTHOR_LOOKUPS]:
            key = author.get("key") if isinstance(author, dict) else None
            if not isinstance(key, str):
                continue
            data = self.fetcher.get(f"{OPENLIBRARY_BASE_URL}{key}.json")
            if isinstance(data, dict) and (name := normalize_text(data.get("name"))):
                names.append(name)
        return names
