"""Tests for scanner module."""

# pylint: disable=redefined-outer-name

import os
from pathlib import Path

import pytest

from folio.database import (
    Database,
    FileStatus,
    IdentifierSource,
    IdentifierType,
    LibraryRepository,
    ScanAction,
    ScanStatus,
)
from folio.extractor import ExtractedIdentifier, ExtractedMetadata
from folio.progress import CancellationToken, ProgressStatus
from folio.scanner.hashing import CHUNK_SIZE, sha256_file
from folio.scanner.scanner import Scanner


def fake_extractor(path: Path) -> ExtractedMetadata:
    return ExtractedMetadata(title=path.stem.replace("_", " ").title(), authors=["Jane Doe"])


@pytest.fixture
def db(tmp_path: Path):
    with Database(tmp_path / "library.db") as database:
        yield database


@pytest.fixture
def library(tmp_path: Path) -> Path:
    root = tmp_path / "books"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def scanner(db: Database) -> Scanner:
    return Scanner(db, extractor=fake_extractor)


def _write(path: Path, content: bytes, mtime_ns: int | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


def _actions(db: Database, session_id: str) -> list[tuple[str, ScanAction]]:
    entries = LibraryRepository(db).list_scan_entries(session_id)
    return [(Path(e.path).name, e.action) for e in entries]


class TestScanner:
    """Tests for Scanner class."""

    def test_scan_empty_directory(self, scanner: Scanner, library: Path):
        stats = scanner.scan(library)

        assert stats.status is ScanStatus.SUCCESS
        assert stats.files_seen == 0

    def test_scan_adds_files(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "dune.epub", b"dune")
        _write(library / "sub" / "emma.pdf", b"emma")
        _write(library / "notes.txt", b"ignored")

        stats = scanner.scan(library)

        assert stats.added == 2
        repo = LibraryRepository(db)
        record = repo.get_file_by_path(str(library / "dune.epub"))
        assert record is not None
        assert record.extension == "epub"
        assert record.mime_type == "application/epub+zip"
        assert record.size_bytes == 4
        assert record.sha256 is not None and len(record.sha256) == 64
        item = repo.get_item(record.item_id)
        assert item.title == "Dune"
        assert item.authors == ["Jane Doe"]

    def test_scan_creates_session(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "dune.epub", b"dune")

        stats = scanner.scan(library)

        session = LibraryRepository(db).get_session(stats.session_id)
        assert session.root_path == str(library)
        assert session.status is ScanStatus.SUCCESS
        assert session.stage == "done"
        assert session.ended_at is not None

    def test_rescan_is_unchanged(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "dune.epub", b"dune")
        _write(library / "emma.epub", b"emma")
        scanner.scan(library)

        stats = scanner.scan(library)

        assert (stats.added, stats.updated, stats.moved, stats.missing) == (0, 0, 0, 0)
        assert stats.unchanged == 2
        assert len(LibraryRepository(db).list_items()) == 2

    def test_detects_move(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "dune.epub", b"dune")
        scanner.scan(library)
        original = LibraryRepository(db).get_file_by_path(str(library / "dune.epub"))

        (library / "scifi").mkdir()
        (library / "dune.epub").rename(library / "scifi" / "dune.epub")
        stats = scanner.scan(library)

        assert stats.moved == 1
        assert stats.missing == 0
        moved = LibraryRepository(db).get_file(original.id)
        assert moved.path == str(library / "scifi" / "dune.epub")
        assert moved.status is FileStatus.ACTIVE
        assert moved.item_id == original.item_id

    def test_detects_content_update(self, db: Database, scanner: Scanner, library: Path):
        path = _write(library / "dune.epub", b"dune")
        scanner.scan(library)
        before = LibraryRepository(db).get_file_by_path(str(path))

        _write(path, b"dune, second edition")
        stats = scanner.scan(library)

        assert stats.updated == 1
        after = LibraryRepository(db).get_file(before.id)
        assert after.sha256 != before.sha256
        assert after.size_bytes == len(b"dune, second edition")

    def test_touch_without_content_change_is_update(self, scanner: Scanner, library: Path):
        path = _write(library / "dune.epub", b"dune", mtime_ns=1_600_000_000_000_000_000)
        scanner.scan(library)

        os.utime(path, ns=(1_700_000_000_000_000_000, 1_700_000_000_000_000_000))
        stats = scanner.scan(library)

        assert stats.updated == 1
        assert stats.moved == 0

    def test_marks_missing(self, db: Database, scanner: Scanner, library: Path):
        path = _write(library / "dune.epub", b"dune")
        _write(library / "emma.epub", b"emma")
        scanner.scan(library)

        path.unlink()
        stats = scanner.scan(library)

        assert stats.missing == 1
        assert stats.unchanged == 1
        record = LibraryRepository(db).get_file_by_path(str(path))
        assert record.status is FileStatus.MISSING
        assert ("dune.epub", ScanAction.MISSING) in _actions(db, stats.session_id)

    def test_missing_file_reappears(self, db: Database, scanner: Scanner, library: Path):
        mtime = 1_650_000_000_000_000_000
        path = _write(library / "dune.epub", b"dune", mtime_ns=mtime)
        scanner.scan(library)
        path.unlink()
        scanner.scan(library)

        _write(path, b"dune", mtime_ns=mtime)
        stats = scanner.scan(library)

        assert stats.updated == 1
        assert stats.added == 0
        record = LibraryRepository(db).get_file_by_path(str(path))
        assert record.status is FileStatus.ACTIVE

    def test_missing_scoped_to_root(self, db: Database, scanner: Scanner, tmp_path: Path):
        first = (tmp_path / "first").resolve()
        second = (tmp_path / "first-extra").resolve()
        _write(first / "a.epub", b"a")
        _write(second / "b.epub", b"b")
        scanner.scan(first)
        scanner.scan(second)

        stats = scanner.scan(first)

        assert stats.missing == 0
        record = LibraryRepository(db).get_file_by_path(str(second / "b.epub"))
        assert record.status is FileStatus.ACTIVE

    def test_duplicate_content_shares_item(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "a" / "dune.epub", b"same bytes")
        _write(library / "b" / "dune copy.epub", b"same bytes")

        stats = scanner.scan(library)

        assert stats.added == 2
        records = LibraryRepository(db).list_files()
        assert len({r.item_id for r in records}) == 1
        assert len(LibraryRepository(db).list_items()) == 1

    def test_move_onto_occupied_path(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "a.epub", b"alpha")
        _write(library / "b.epub", b"beta")
        scanner.scan(library)
        repo = LibraryRepository(db)
        a_record = repo.get_file_by_path(str(library / "a.epub"))
        b_record = repo.get_file_by_path(str(library / "b.epub"))

        (library / "a.epub").replace(library / "b.epub")
        stats = scanner.scan(library)

        assert stats.moved == 1
        assert repo.get_file(a_record.id).path == str(library / "b.epub")
        assert repo.get_file(b_record.id).status is FileStatus.MISSING
        assert repo.get_file_by_path(str(library / "b.epub")).id == a_record.id

    def test_entry_sequence_is_contiguous(self, db: Database, scanner: Scanner, library: Path):
        _write(library / "a.epub", b"a")
        gone = _write(library / "b.epub", b"b")
        scanner.scan(library)
        gone.unlink()
        _write(library / "c.epub", b"c")

        stats = scanner.scan(library)

        entries = LibraryRepository(db).list_scan_entries(stats.session_id)
        assert [e.seq for e in entries] == list(range(len(entries)))
        assert [(Path(e.path).name, e.action) for e in entries] == [
            ("a.epub", ScanAction.UNCHANGED),
            ("c.epub", ScanAction.ADDED),
            ("b.epub", ScanAction.MISSING),
        ]

    def test_one_scanner_scans_roots_in_turn(
        self, db: Database, scanner: Scanner, library: Path, tmp_path: Path
    ):
        other = (tmp_path / "more").resolve()
        _write(library / "a.epub", b"a")
        _write(other / "b.epub", b"b")

        first = scanner.scan(library)
        second = scanner.scan(other)

        repo = LibraryRepository(db)
        for stats in (first, second):
            assert [e.seq for e in repo.list_scan_entries(stats.session_id)] == [0]
        assert (first.added, second.added, second.missing) == (1, 1, 0)
        assert repo.get_file_by_path(str(library / "a.epub")).status is FileStatus.ACTIVE

    def test_missing_root_fails_session(self, db: Database, scanner: Scanner, tmp_path: Path):
        stats = scanner.scan(tmp_path / "does-not-exist")

        assert stats.status is ScanStatus.FAILED
        assert stats.errors
        session = LibraryRepository(db).get_session(stats.session_id)
        assert session.status is ScanStatus.FAILED
        assert session.stage == "walk"
        assert session.error_message

    def test_cancelled_scan_keeps_catalog(self, db: Database, scanner: Scanner, library: Path):
        path = _write(library / "dune.epub", b"dune")
        scanner.scan(library)
        path.unlink()
        _write(library / "emma.epub", b"emma")

        token = CancellationToken()
        token.cancel()
        stats = scanner.scan(library, cancel=token)

        assert stats.status is ScanStatus.CANCELLED
        repo = LibraryRepository(db)
        assert repo.get_file_by_path(str(path)).status is FileStatus.ACTIVE
        assert repo.get_file_by_path(str(library / "emma.epub")) is None
        assert repo.get_session(stats.session_id).status is ScanStatus.CANCELLED

    def test_unreadable_file_recorded_as_error(
        self, db: Database, scanner: Scanner, library: Path, monkeypatch
    ):
        _write(library / "bad.epub", b"bad")
        _write(library / "good.epub", b"good")

        def flaky_hash(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
            if path.name == "bad.epub":
                raise PermissionError(13, "Permission denied")
            return sha256_file(path, chunk_size)

        monkeypatch.setattr("folio.scanner.scanner.sha256_file", flaky_hash)
        stats = scanner.scan(library)

        assert stats.status is ScanStatus.SUCCESS
        assert stats.added == 1
        assert len(stats.errors) == 1
        assert ("bad.epub", ScanAction.ERROR) in _actions(db, stats.session_id)
        issues = LibraryRepository(db).list_open_issues()
        assert [row["type"] for row in issues] == ["scan_io_error"]

    def test_extension_override(self, scanner: Scanner, library: Path):
        _write(library / "dune.epub", b"dune")
        _write(library / "dune.mobi", b"mobi")

        stats = scanner.scan(library, extensions=[".mobi"])

        assert stats.added == 1

    def test_seeds_identifiers_from_extractor(self, db: Database, library: Path):
        def extractor(path: Path) -> ExtractedMetadata:
            return ExtractedMetadata(
                title="Dune",
                published_year=1965,
                identifiers=[
                    ExtractedIdentifier(
                        IdentifierType.ISBN13, "9780306406157", 0.8, IdentifierSource.EMBEDDED
                    )
                ],
            )

        _write(library / "dune.epub", b"dune")
        Scanner(db, extractor=extractor).scan(library)

        repo = LibraryRepository(db)
        item_id = repo.find_item_by_identifier(IdentifierType.ISBN13, "9780306406157")
        assert item_id is not None
        assert repo.get_item(item_id).published_year == 1965

    def test_reports_progress(self, scanner: Scanner, library: Path):
        _write(library / "a.epub", b"a")
        _write(library / "b.epub", b"b")
        events = []

        scanner.scan(library, progress=events.append)

        assert [e.current for e in events] == [1, 2, 2]
        assert events[-1].status is ProgressStatus.DONE
