"""Enrichment fusion engine: cached, concurrent provider lookups merged into one record."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, wait
from dataclasses import dataclass
from typing import Any

from folio.config import EnrichmentConfig
from folio.database import (
    Database,
    IdentifierSource,
    IdentifierType,
    LibraryRepository,
)
from folio.enrichment.cache import EnrichmentCache, query_key
from folio.enrichment.merge import merge_provider_results
from folio.enrichment.types import BookMetadata, MetadataProvider, MetadataSearchInput
from folio.extractor.isbn import isbn_type, normalize_isbn
from folio.progress import (
    CancellationToken,
    ProgressCallback,
    ProgressEvent,
    ProgressStatus,
    is_cancelled,
)

logger = logging.getLogger(__name__)


@dataclass
class EnrichRequest:
    item_id: str
    isbn: str | None = None
    title: str | None = None
    author: str | None = None


@dataclass
class EnrichOutcome:
    item_id: str
    candidate: BookMetadata | None
    applied: bool = False


class EnrichmentEngine:
    """Queries every provider for an item and fuses the answers.

    Cache lookups and writes run on the calling thread because the SQLite
    connection is bound to it. Only provider calls run on worker threads, and
    the engine waits at most ``provider_timeout_seconds`` for them.
    """

    def __init__(
        self,
        db: Database,
        providers: list[MetadataProvider],
        config: EnrichmentConfig | None = None,
    ):
        self.db = db
        self.repo = LibraryRepository(db)
        self.providers = providers
        self.config = config or EnrichmentConfig()
        self.cache = EnrichmentCache(self.repo, ttl_days=self.config.cache_ttl_days)

    def enrich(
        self,
        item_id: str,
        isbn: str | None = None,
        title: str | None = None,
        author: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> BookMetadata | None:
        """Merged best candidate for the item, or None when no provider answered.

        Without an explicit query the item's best ISBN is used, falling back to
        its stored title and first author.
        """
        search = self._build_search(item_id, isbn, title, author)
        if search is None:
            logger.info("Nothing to search for item %s", item_id)
            return None
        if is_cancelled(cancel):
            return None

        candidates = self.collect_candidates(item_id, search)
        merged = merge_provider_results(candidates)
        if merged:
            logger.info(
                "Item %s: best candidate from %s (%.2f) out of %d",
                item_id,
                merged.source,
                merged.weighted_confidence or 0.0,
                len(candidates),
            )
        else:
            logger.info("Item %s: no enrichment candidates", item_id)
        return merged

    def collect_candidates(self, item_id: str, search: MetadataSearchInput) -> list[BookMetadata]:
        query_type, query = query_key(search)
        candidates: list[BookMetadata] = []
        to_fetch: list[tuple[MetadataProvider, str]] = []

        for provider in self.providers:
            source_id = self.cache.source_id(provider.name, provider.rate_limit_per_min)
            cached = self.cache.get(source_id, query)
            if cached is not None:
                logger.debug("Cache hit for %s %s", provider.name, query)
                candidates.extend(cached)
            else:
                to_fetch.append((provider, source_id))

        if not to_fetch:
            return candidates

        futures: dict[Future[list[BookMetadata]], tuple[MetadataProvider, str]] = {}
        for provider, source_id in to_fetch:
            future = _run_detached(provider.search, search, name=f"folio-enrich-{provider.name}")
            futures[future] = (provider, source_id)
        done, not_done = wait(futures, timeout=self.config.provider_timeout_seconds)

        for future in not_done:
            provider, _ = futures[future]
            logger.warning("Provider %s timed out for %s", provider.name, query)

        # Provider order, not completion order, so results are reproducible.
        for future, (provider, source_id) in futures.items():
            if future not in done:
                continue
            try:
                results = future.result()
            except Exception as e:
                logger.warning("Provider %s failed for %s: %s", provider.name, query, e)
                continue
            results = [r for r in results if isinstance(r, BookMetadata)]
            if results:
                self.cache.put(item_id, source_id, query_type, query, results)
                candidates.extend(results)

        return candidates

    def apply_candidate(self, item_id: str, candidate: BookMetadata) -> tuple[str, float]:
        """Write the candidate's fields, authors and identifiers onto the item."""
        confidence = (
            candidate.weighted_confidence
            if candidate.weighted_confidence is not None
            else candidate.confidence
        )
        fields = {
            "title": candidate.title,
            "subtitle": candidate.subtitle,
            "description": candidate.description,
            "language": candidate.language,
            "published_year": candidate.published_year,
        }
        fields = {name: value for name, value in fields.items() if value not in (None, "")}

        with self.db.transaction():
            if self.repo.get_item(item_id) is None:
                raise KeyError(f"Item not found: {item_id}")

            self.repo.update_item(item_id, **fields)
            for name in fields:
                self.repo.record_field_source(item_id, name, candidate.source, confidence)

            if candidate.authors:
                self.repo.set_item_authors(item_id, candidate.authors)
                self.repo.record_field_source(item_id, "authors", candidate.source, confidence)

            for value in candidate.identifiers:
                isbn = normalize_isbn(value)
                if isbn:
                    self.repo.add_identifier(
                        item_id, isbn_type(isbn), isbn, confidence, IdentifierSource.ENRICHMENT
                    )
                else:
                    self.repo.add_identifier(
                        item_id,
                        IdentifierType.OTHER,
                        value,
                        confidence,
                        IdentifierSource.ENRICHMENT,
                    )

        logger.info("Applied %s metadata to item %s", candidate.source, item_id)
        return candidate.source, confidence

    def enrich_many(
        self,
        requests: list[EnrichRequest],
        apply: bool = False,
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[EnrichOutcome]:
        outcomes = []
        total = len(requests)
        for index, request in enumerate(requests):
            if is_cancelled(cancel):
                break
            candidate = self.enrich(request.item_id, request.isbn, request.title, request.author)
            outcome = EnrichOutcome(request.item_id, candidate)
            if candidate and apply:
                self.apply_candidate(request.item_id, candidate)
                outcome.applied = True
            outcomes.append(outcome)

            if progress:
                status = ProgressStatus.PROCESSING if candidate else ProgressStatus.ERROR
                message = f"{request.item_id}: {candidate.source if candidate else 'no match'}"
                progress(ProgressEvent(index + 1, total, message, status))

        if progress:
            progress(
                ProgressEvent(len(outcomes), total, "Enrichment complete", ProgressStatus.DONE)
            )
        return outcomes

    def _build_search(
        self,
        item_id: str,
        isbn: str | None,
        title: str | None,
        author: str | None,
    ) -> MetadataSearchInput | None:
        country = self.config.country
        limit = self.config.search_limit

        if isbn:
            normalized = normalize_isbn(isbn)
            if normalized is None:
                logger.warning("Ignoring invalid ISBN %r", isbn)
                return None
            return MetadataSearchInput(isbn=normalized, country=country, limit=limit)
        if title or author:
            return MetadataSearchInput(title=title, author=author, country=country, limit=limit)

        identifiers = self.repo.get_identifiers(item_id)
        for id_type in (IdentifierType.ISBN13, IdentifierType.ISBN10):
            for ident in identifiers:
                if ident.type is id_type:
                    return MetadataSearchInput(isbn=ident.value, country=country, limit=limit)

        item = self.repo.get_item(item_id)
        if item and (item.title or item.authors):
            return MetadataSearchInput(
                title=item.title,
                author=item.authors[0] if item.authors else None,
                country=country,
                limit=limit,
            )
        return None


def _run_detached(fn: Callable[..., Any], *args: Any, name: str) -> Future:
    """Run fn on a daemon thread; a provider that never returns cannot block exit."""
    future: Future = Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)

    threading.Thread(target=run, name=name, daemon=True).start()
    return future
