"""Incremental library scanner."""

import logging
import os
import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from folio.config import ScannerConfig
from folio.database import (
    Database,
    FileRecord,
    FileStatus,
    LibraryRepository,
    ScanAction,
    ScanStatus,
)
from folio.extractor import ExtractedMetadata, extract_metadata
from folio.progress import (
    CancellationToken,
    ProgressCallback,
    ProgressEvent,
    ProgressStatus,
    is_cancelled,
)
from folio.scanner.filesystem import FileInfo, ScanRootError, walk_files
from folio.scanner.hashing import sha256_file

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "epub": "application/epub+zip",
    "pdf": "application/pdf",
    "mobi": "application/x-mobipocket-ebook",
    "azw": "application/vnd.amazon.ebook",
    "azw3": "application/vnd.amazon.mobi8-ebook",
}


@dataclass
class ScanStats:
    """Outcome of one scan session."""

    session_id: str | None = None
    status: ScanStatus = ScanStatus.RUNNING
    added: int = 0
    updated: int = 0
    moved: int = 0
    unchanged: int = 0
    missing: int = 0
    errors: list[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    @property
    def files_seen(self) -> int:
        return self.added + self.updated + self.moved + self.unchanged + len(self.errors)


@dataclass
class _ScanRun:
    """State of a single scan, so one Scanner can run any number of scans."""

    session_id: str
    stats: ScanStats
    seen_ids: set[str] = field(default_factory=set)
    seq: int = 0

    def next_seq(self) -> int:
        seq = self.seq
        self.seq += 1
        return seq


class Scanner:
    """Walks a library root and reconciles what it finds with the catalog.

    Each file is classified as added, updated, moved or unchanged, and every
    catalogued file under the root that was not seen becomes missing. Hashing
    runs on a thread pool; classification and all database writes stay on the
    calling thread, one transaction per file.
    """

    def __init__(
        self,
        db: Database,
        config: ScannerConfig | None = None,
        extractor=extract_metadata,
    ):
        self.db = db
        self.repo = LibraryRepository(db)
        self.config = config or ScannerConfig()
        self.extractor = extractor

    def scan(
        self,
        root: Path,
        extensions: Iterable[str] | None = None,
        cancel: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> ScanStats:
        root = root.expanduser().resolve()
        extensions = tuple(extensions) if extensions else self.config.extensions
        stats = ScanStats()

        with self.db.transaction():
            session_id = self.repo.create_session(str(root))
        stats.session_id = session_id
        run = _ScanRun(session_id, stats)
        logger.info("Starting scan of %s (session %s)", root, session_id)

        stage = "walk"
        try:
            try:
                files = list(walk_files(root, extensions, self._directory_error_handler(stats)))
            except ScanRootError as e:
                logger.error("%s", e)
                stats.errors.append(str(e))
                self._finish(run, stage, ScanStatus.FAILED, str(e))
                return stats

            stage = "classify"
            self._set_stage(session_id, stage)
            completed = self._classify_all(run, files, cancel, progress)

            if not completed:
                logger.info("Scan of %s cancelled after %d files", root, stats.files_seen)
                self._finish(run, stage, ScanStatus.CANCELLED)
                return stats

            stage = "missing"
            self._set_stage(session_id, stage)
            self._mark_missing(run, root)

            self._finish(run, "done", ScanStatus.SUCCESS)
        except Exception as e:
            logger.exception("Scan of %s failed during %s", root, stage)
            self._finish(run, stage, ScanStatus.FAILED, str(e))
            raise

        if progress:
            progress(ProgressEvent(len(files), len(files), "Scan complete", ProgressStatus.DONE))
        logger.info(
            "Scan complete: %d added, %d updated, %d moved, %d unchanged, %d missing",
            stats.added,
            stats.updated,
            stats.moved,
            stats.unchanged,
            stats.missing,
        )
        return stats

    def _classify_all(
        self,
        run: _ScanRun,
        files: list[FileInfo],
        cancel: CancellationToken | None,
        progress: ProgressCallback | None,
    ) -> bool:
        total = len(files)

        with ThreadPoolExecutor(max_workers=max(1, self.config.hash_workers)) as pool:
            hashes: dict[int, Future[str]] = {
                index: pool.submit(sha256_file, info.path, self.config.hash_chunk_size)
                for index, info in enumerate(files)
                if not self._is_unchanged_by_stat(info)
            }

            for index, info in enumerate(files):
                if is_cancelled(cancel):
                    for future in hashes.values():
                        future.cancel()
                    return False

                status = ProgressStatus.PROCESSING
                with self.db.transaction():
                    try:
                        self._classify(run, info, hashes.get(index))
                    except OSError as e:
                        self._record_error(run, info, e)
                        status = ProgressStatus.ERROR

                if progress:
                    progress(ProgressEvent(index + 1, total, str(info.path), status))

        return True

    def _is_unchanged_by_stat(self, info: FileInfo) -> bool:
        record = self.repo.get_file_by_path(str(info.path))
        return record is not None and _stat_matches(record, info)

    def _classify(self, run: _ScanRun, info: FileInfo, hash_future: Future[str] | None) -> None:
        stats = run.stats
        path = str(info.path)
        existing = self.repo.get_file_by_path(path)

        if existing and _stat_matches(existing, info):
            if existing.status is FileStatus.ACTIVE:
                self._entry(run, info, ScanAction.UNCHANGED, existing.id, existing.sha256)
                stats.unchanged += 1
            else:
                self.repo.update_file(existing.id, status=FileStatus.ACTIVE)
                self._entry(run, info, ScanAction.UPDATED, existing.id, existing.sha256)
                stats.updated += 1
            run.seen_ids.add(existing.id)
            return

        if hash_future is not None:
            sha256 = hash_future.result()
        else:
            sha256 = sha256_file(info.path, self.config.hash_chunk_size)
        same_content = [r for r in self.repo.find_files_by_hash(sha256) if r.path != path]

        moved_from = self._move_candidate(run, same_content)
        if moved_from:
            if existing and existing.id != moved_from.id:
                self._supersede(run, existing)
            self.repo.update_file(
                moved_from.id,
                path=path,
                filename=info.parsed_filename.full,
                extension=info.parsed_filename.extension or "",
                size_bytes=info.size,
                modified_at=info.modified_at,
                status=FileStatus.ACTIVE,
            )
            logger.debug("Moved: %s -> %s", moved_from.path, path)
            self._entry(run, info, ScanAction.MOVED, moved_from.id, sha256)
            run.seen_ids.add(moved_from.id)
            stats.moved += 1
            return

        if existing:
            self.repo.update_file(
                existing.id,
                filename=info.parsed_filename.full,
                extension=info.parsed_filename.extension or "",
                size_bytes=info.size,
                modified_at=info.modified_at,
                sha256=sha256,
                status=FileStatus.ACTIVE,
            )
            self._entry(run, info, ScanAction.UPDATED, existing.id, sha256)
            run.seen_ids.add(existing.id)
            stats.updated += 1
            return

        duplicate_of = next((r for r in same_content if r.item_id), None)
        item_id = duplicate_of.item_id if duplicate_of else self._create_item(info.path)
        record = self.repo.insert_file(
            item_id=item_id,
            path=path,
            filename=info.parsed_filename.full,
            extension=info.parsed_filename.extension or "",
            size_bytes=info.size,
            sha256=sha256,
            modified_at=info.modified_at,
            mime_type=MIME_TYPES.get(info.parsed_filename.extension or ""),
        )
        self._entry(run, info, ScanAction.ADDED, record.id, sha256)
        run.seen_ids.add(record.id)
        stats.added += 1

    def _move_candidate(
        self, run: _ScanRun, same_content: list[FileRecord]
    ) -> FileRecord | None:
        """Record whose content reappeared elsewhere: its old path is gone from disk.

        Candidates arrive ordered by path, so the first qualifying one is the
        lexicographically smallest old path.
        """
        for record in same_content:
            if record.id in run.seen_ids:
                continue
            if not os.path.lexists(record.path):
                return record
        return None

    def _supersede(self, run: _ScanRun, record: FileRecord) -> None:
        # The content at this path was replaced by a file moved in from elsewhere.
        self.repo.update_file(record.id, status=FileStatus.MISSING)
        self.repo.add_scan_entry(
            run.session_id,
            run.next_seq(),
            record.path,
            ScanAction.MISSING,
            file_id=record.id,
            sha256=record.sha256,
        )
        run.stats.missing += 1

    def _create_item(self, path: Path) -> str:
        metadata: ExtractedMetadata = self.extractor(path)
        item_id = self.repo.create_item(
            title=metadata.title,
            description=metadata.description,
            language=metadata.language,
            published_year=metadata.published_year,
        )
        if metadata.authors:
            self.repo.set_item_authors(item_id, metadata.authors)
        for ident in metadata.identifiers:
            self.repo.add_identifier(
                item_id, ident.type, ident.value, ident.confidence, ident.source
            )
        return item_id

    def _record_error(self, run: _ScanRun, info: FileInfo, error: OSError) -> None:
        message = f"{info.path}: {error}"
        logger.warning("Error scanning %s", message)
        run.stats.errors.append(message)
        existing = self.repo.get_file_by_path(str(info.path))
        if existing:
            run.seen_ids.add(existing.id)
        self.repo.add_issue(
            "scan_io_error",
            message,
            file_id=existing.id if existing else None,
            item_id=existing.item_id if existing else None,
        )
        self._entry(run, info, ScanAction.ERROR, existing.id if existing else None, None)

    def _directory_error_handler(self, stats: ScanStats):
        def handle(directory: Path, error: OSError) -> None:
            message = f"{directory}: {error}"
            stats.errors.append(message)
            with self.db.transaction():
                self.repo.add_issue("scan_directory_unreadable", message)

        return handle

    def _mark_missing(self, run: _ScanRun, root: Path) -> None:
        with self.db.transaction():
            for record in self.repo.list_active_files_under(str(root), os.sep):
                if record.id in run.seen_ids:
                    continue
                self.repo.update_file(record.id, status=FileStatus.MISSING)
                self.repo.add_scan_entry(
                    run.session_id,
                    run.next_seq(),
                    record.path,
                    ScanAction.MISSING,
                    file_id=record.id,
                    sha256=record.sha256,
                )
                run.stats.missing += 1

    def _entry(
        self,
        run: _ScanRun,
        info: FileInfo,
        action: ScanAction,
        file_id: str | None,
        sha256: str | None,
    ) -> None:
        self.repo.add_scan_entry(
            run.session_id,
            run.next_seq(),
            str(info.path),
            action,
            file_id=file_id,
            sha256=sha256,
            size_bytes=info.size,
            modified_at=info.modified_at,
        )

    def _set_stage(self, session_id: str, stage: str) -> None:
        with self.db.transaction():
            self.repo.set_session_stage(session_id, stage)

    def _finish(
        self,
        run: _ScanRun,
        stage: str,
        status: ScanStatus,
        error_message: str | None = None,
    ) -> None:
        run.stats.status = status
        with self.db.transaction():
            self.repo.set_session_stage(run.session_id, stage)
            self.repo.finish_session(run.session_id, status, error_message)


def _stat_matches(record: FileRecord, info: FileInfo) -> bool:
    return record.size_bytes == info.size and record.modified_at == info.modified_at
