"""Enrichment response cache backed by the enrichment_results table."""

import json
import logging

from folio.database import LibraryRepository
from folio.database.repository import now_ms
from folio.enrichment.types import BookMetadata, MetadataSearchInput, QueryType

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def query_key(search: MetadataSearchInput) -> tuple[QueryType, str]:
    """Cache key for a search: ``isbn:<isbn>`` or ``title_author:<title>|<author>``."""
    if search.isbn:
        return QueryType.ISBN, f"isbn:{search.isbn}"
    title = (search.title or "").strip().lower()
    author = (search.author or "").strip().lower()
    return QueryType.TITLE_AUTHOR, f"title_author:{title}|{author}"


class EnrichmentCache:
    """Reads and writes cached candidates. Not thread-safe: use from the owning thread."""

    def __init__(self, repo: LibraryRepository, ttl_days: int = 30):
        self.repo = repo
        self.ttl_ms = ttl_days * DAY_MS
        self._source_ids: dict[str, str] = {}

    def source_id(self, name: str, rate_limit_per_min: int | None) -> str:
        if name not in self._source_ids:
            with self.repo.db.transaction():
                self._source_ids[name] = self.repo.get_or_create_source(name, rate_limit_per_min)
        return self._source_ids[name]

    def get(self, source_id: str, query: str) -> list[BookMetadata] | None:
        """Fresh cached candidates, or None on a miss."""
        rows = self.repo.find_cached_results(source_id, query, now_ms() - self.ttl_ms)
        if not rows:
            return None

        candidates = []
        for row in rows:
            try:
                data = json.loads(row["response_json"])
            except ValueError:
                logger.warning("Dropping unreadable cache row %s", row["id"])
                continue
            if not isinstance(data, dict):
                continue
            data["confidence"] = row["confidence"] if row["confidence"] is not None else 0.0
            candidates.append(BookMetadata.from_dict(data))
        return candidates or None

    def put(
        self,
        item_id: str,
        source_id: str,
        query_type: QueryType,
        query: str,
        candidates: list[BookMetadata],
    ) -> None:
        with self.repo.db.transaction():
            for candidate in candidates:
                self.repo.add_enrichment_result(
                    item_id,
                    source_id,
                    query_type.value,
                    query,
                    json.dumps(candidate.to_dict(), default=str),
                    candidate.confidence,
                )
