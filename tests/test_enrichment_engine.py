"""Tests for the enrichment cache and fusion engine."""

# pylint: disable=redefined-outer-name

import threading
from dataclasses import replace
from pathlib import Path

import pytest

from folio.config import EnrichmentConfig
from folio.database import (
    Database,
    IdentifierSource,
    IdentifierType,
    LibraryRepository,
)
from folio.enrichment import (
    BookMetadata,
    EnrichmentCache,
    EnrichmentEngine,
    EnrichRequest,
    MetadataSearchInput,
    QueryType,
    query_key,
)
from folio.progress import CancellationToken, ProgressStatus

ISBN = "9780306406157"


class FakeProvider:
    """Returns canned candidates and records each search it receives."""

    rate_limit_per_min = 60

    def __init__(self, name: str, results=None, error: Exception | None = None, gate=None):
        self.name = name
        self.results = results or []
        self.error = error
        self.gate = gate
        self.calls: list[MetadataSearchInput] = []
        self.daemon_calls: list[bool] = []

    def search(self, search: MetadataSearchInput) -> list[BookMetadata]:
        self.calls.append(search)
        self.daemon_calls.append(threading.current_thread().daemon)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return [replace(r) for r in self.results]


@pytest.fixture
def db(tmp_path: Path):
    with Database(tmp_path / "library.db") as database:
        yield database


@pytest.fixture
def item_id(db: Database) -> str:
    repo = LibraryRepository(db)
    with db.transaction():
        return repo.create_item(title="Dune")


def _google() -> FakeProvider:
    return FakeProvider(
        "googlebooks",
        [
            BookMetadata(
                source="googlebooks",
                confidence=0.85,
                title="Dune",
                subtitle="Deluxe Edition",
                authors=["Frank Herbert"],
                published_year=1965,
                language="en",
                identifiers=[ISBN, "0306406152"],
            )
        ],
    )


def _openlibrary() -> FakeProvider:
    return FakeProvider(
        "openlibrary",
        [
            BookMetadata(
                source="openlibrary",
                confidence=0.9,
                title="Dune (Open Library)",
                authors=["Frank Herbert"],
                description="The longest description wins the merge.",
            )
        ],
    )


class TestQueryKey:
    """Tests for query_key function."""

    def test_isbn_key(self):
        assert query_key(MetadataSearchInput(isbn=ISBN)) == (QueryType.ISBN, f"isbn:{ISBN}")

    def test_title_author_key_normalized(self):
        key = query_key(MetadataSearchInput(title=" Dune ", author="Frank HERBERT"))
        assert key == (QueryType.TITLE_AUTHOR, "title_author:dune|frank herbert")

    def test_title_only_key(self):
        assert query_key(MetadataSearchInput(title="Dune"))[1] == "title_author:dune|"


class TestEnrichmentCache:
    """Tests for EnrichmentCache class."""

    def test_round_trip_uses_row_confidence(self, db: Database, item_id: str):
        cache = EnrichmentCache(LibraryRepository(db))
        source_id = cache.source_id("openlibrary", 60)
        candidate = BookMetadata(source="openlibrary", confidence=0.9, title="Dune", raw={"a": 1})

        cache.put(item_id, source_id, QueryType.ISBN, f"isbn:{ISBN}", [candidate])
        db.conn.execute("UPDATE enrichment_results SET confidence = 0.5")

        (cached,) = cache.get(source_id, f"isbn:{ISBN}")
        assert cached.title == "Dune"
        assert cached.raw == {"a": 1}
        assert cached.confidence == pytest.approx(0.5)

    def test_miss(self, db: Database):
        cache = EnrichmentCache(LibraryRepository(db))
        assert cache.get(cache.source_id("openlibrary", 60), "isbn:1") is None

    def test_expired_rows_ignored(self, db: Database, item_id: str):
        cache = EnrichmentCache(LibraryRepository(db), ttl_days=30)
        source_id = cache.source_id("openlibrary", 60)
        cache.put(item_id, source_id, QueryType.ISBN, "isbn:1", [BookMetadata("openlibrary", 0.9)])
        db.conn.execute("UPDATE enrichment_results SET created_at = 0")

        assert cache.get(source_id, "isbn:1") is None

    def test_unreadable_rows_skipped(self, db: Database, item_id: str):
        repo = LibraryRepository(db)
        cache = EnrichmentCache(repo)
        source_id = cache.source_id("openlibrary", 60)
        repo.add_enrichment_result(item_id, source_id, "isbn", "isbn:1", "{not json", 0.9)

        assert cache.get(source_id, "isbn:1") is None


class TestEnrichmentEngine:
    """Tests for EnrichmentEngine class."""

    def test_merges_providers(self, db: Database, item_id: str):
        engine = EnrichmentEngine(db, [_openlibrary(), _google()])

        merged = engine.enrich(item_id, isbn=ISBN)

        # googlebooks 0.85 * 0.92 beats openlibrary 0.9 * 0.85
        assert merged.source == "googlebooks"
        assert merged.weighted_confidence == pytest.approx(0.85 * 0.92)
        assert merged.description == "The longest description wins the merge."

    def test_second_lookup_served_from_cache(self, db: Database, item_id: str):
        google, openlibrary = _google(), _openlibrary()
        engine = EnrichmentEngine(db, [google, openlibrary])

        first = engine.enrich(item_id, isbn=ISBN)
        second = engine.enrich(item_id, isbn="978-0-306-40615-7")

        assert len(google.calls) == 1
        assert len(openlibrary.calls) == 1
        assert second.title == first.title
        assert second.weighted_confidence == pytest.approx(first.weighted_confidence)

    def test_cache_shared_between_engines(self, db: Database, item_id: str):
        EnrichmentEngine(db, [_google()]).enrich(item_id, isbn=ISBN)
        google = _google()

        EnrichmentEngine(db, [google]).enrich(item_id, isbn=ISBN)

        assert google.calls == []

    def test_empty_results_not_cached(self, db: Database, item_id: str):
        empty = FakeProvider("openlibrary")
        engine = EnrichmentEngine(db, [empty])

        assert engine.enrich(item_id, isbn=ISBN) is None
        assert engine.enrich(item_id, isbn=ISBN) is None
        assert len(empty.calls) == 2

    def test_failing_provider_isolated(self, db: Database, item_id: str):
        broken = FakeProvider("applebooks", error=RuntimeError("boom"))
        engine = EnrichmentEngine(db, [broken, _google()])

        merged = engine.enrich(item_id, isbn=ISBN)

        assert merged.source == "googlebooks"

    def test_slow_provider_times_out(self, db: Database, item_id: str):
        gate = threading.Event()
        late = [BookMetadata("applebooks", 0.99, title="Late")]
        slow = FakeProvider("applebooks", late, gate=gate)
        config = EnrichmentConfig(provider_timeout_seconds=0.2)
        engine = EnrichmentEngine(db, [slow, _google()], config)
        try:
            merged = engine.enrich(item_id, isbn=ISBN)
        finally:
            gate.set()

        assert slow.daemon_calls == [True]
        assert merged.source == "googlebooks"
        assert LibraryRepository(db).find_cached_results(
            engine.cache.source_id("applebooks", 60), f"isbn:{ISBN}", 0
        ) == []

    def test_invalid_isbn(self, db: Database, item_id: str):
        google = _google()

        assert EnrichmentEngine(db, [google]).enrich(item_id, isbn="123") is None
        assert google.calls == []

    def test_falls_back_to_stored_isbn(self, db: Database, item_id: str):
        repo = LibraryRepository(db)
        with db.transaction():
            repo.add_identifier(
                item_id, IdentifierType.ISBN10, "0306406152", 0.9, IdentifierSource.EMBEDDED
            )
            repo.add_identifier(item_id, IdentifierType.ISBN13, ISBN, 0.6, IdentifierSource.HEURISTIC)
        google = _google()

        EnrichmentEngine(db, [google]).enrich(item_id)

        assert google.calls[0].isbn == ISBN

    def test_falls_back_to_title_and_author(self, db: Database, item_id: str):
        repo = LibraryRepository(db)
        with db.transaction():
            repo.set_item_authors(item_id, ["Frank Herbert", "Brian Herbert"])
        google = _google()

        EnrichmentEngine(db, [google], EnrichmentConfig(country="gb")).enrich(item_id)

        search = google.calls[0]
        assert (search.isbn, search.title, search.author) == (None, "Dune", "Frank Herbert")
        assert search.country == "gb"

    def test_nothing_to_search(self, db: Database):
        with db.transaction():
            bare = LibraryRepository(db).create_item()
        google = _google()

        assert EnrichmentEngine(db, [google]).enrich(bare) is None
        assert google.calls == []

    def test_cancelled(self, db: Database, item_id: str):
        token = CancellationToken()
        token.cancel()
        google = _google()

        assert EnrichmentEngine(db, [google]).enrich(item_id, isbn=ISBN, cancel=token) is None
        assert google.calls == []


class TestApplyCandidate:
    """Tests for EnrichmentEngine.apply_candidate."""

    def test_writes_fields_authors_and_identifiers(self, db: Database, item_id: str):
        engine = EnrichmentEngine(db, [_google(), _openlibrary()])
        merged = engine.enrich(item_id, isbn=ISBN)

        source, confidence = engine.apply_candidate(item_id, merged)

        assert source == "googlebooks"
        assert confidence == pytest.approx(0.85 * 0.92)
        repo = LibraryRepository(db)
        item = repo.get_item(item_id)
        assert item.title == "Dune"
        assert item.subtitle == "Deluxe Edition"
        assert item.published_year == 1965
        assert item.authors == ["Frank Herbert"]
        identifiers = {(i.type, i.value, i.source) for i in repo.get_identifiers(item_id)}
        assert identifiers == {
            (IdentifierType.ISBN13, ISBN, IdentifierSource.ENRICHMENT),
            (IdentifierType.ISBN10, "0306406152", IdentifierSource.ENRICHMENT),
        }
        fields = {
            row["field"]
            for row in db.conn.execute(
                "SELECT field FROM item_field_sources WHERE item_id = ?", (item_id,)
            )
        }
        assert {"title", "subtitle", "description", "language", "published_year", "authors"} <= fields

    def test_blank_fields_do_not_overwrite(self, db: Database, item_id: str):
        engine = EnrichmentEngine(db, [])
        candidate = BookMetadata(source="openlibrary", confidence=0.9, title="", authors=[])

        engine.apply_candidate(item_id, candidate)

        assert LibraryRepository(db).get_item(item_id).title == "Dune"

    def test_non_isbn_identifier_stored_as_other(self, db: Database, item_id: str):
        engine = EnrichmentEngine(db, [])
        candidate = BookMetadata(source="googlebooks", confidence=0.8, identifiers=["UOM:39015"])

        engine.apply_candidate(item_id, candidate)

        (identifier,) = LibraryRepository(db).get_identifiers(item_id)
        assert identifier.type is IdentifierType.OTHER
        assert identifier.confidence == pytest.approx(0.8)

    def test_unknown_item(self, db: Database):
        engine = EnrichmentEngine(db, [])
        with pytest.raises(KeyError):
            engine.apply_candidate("missing", BookMetadata(source="x", confidence=1.0, title="X"))


class TestEnrichMany:
    """Tests for EnrichmentEngine.enrich_many."""

    def test_batch_with_apply_and_progress(self, db: Database, item_id: str):
        with db.transaction():
            other = LibraryRepository(db).create_item(title="Emma")
        events = []
        engine = EnrichmentEngine(db, [_google()])

        outcomes = engine.enrich_many(
            [EnrichRequest(item_id, isbn=ISBN), EnrichRequest(other, isbn="123")],
            apply=True,
            progress=events.append,
        )

        assert [(o.item_id, o.applied) for o in outcomes] == [(item_id, True), (other, False)]
        assert outcomes[1].candidate is None
        assert [e.status for e in events] == [
            ProgressStatus.PROCESSING,
            ProgressStatus.ERROR,
            ProgressStatus.DONE,
        ]

    def test_cancelled_batch(self, db: Database, item_id: str):
        token = CancellationToken()
        token.cancel()

        outcomes = EnrichmentEngine(db, [_google()]).enrich_many(
            [EnrichRequest(item_id, isbn=ISBN)], cancel=token
        )

        assert outcomes == []
