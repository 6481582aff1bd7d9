"""Parameterized queries over the folio catalog."""

import sqlite3
import time
import uuid

from .connection import Database
from .models import (
    FileRecord,
    FileStatus,
    Identifier,
    IdentifierSource,
    IdentifierType,
    LibraryItem,
    ScanAction,
    ScanEntry,
    ScanSession,
    ScanStatus,
)

ITEM_FIELDS = (
    "title",
    "subtitle",
    "description",
    "language",
    "published_year",
    "series",
    "series_index",
)

FILE_FIELDS = (
    "item_id",
    "path",
    "filename",
    "extension",
    "mime_type",
    "size_bytes",
    "sha256",
    "modified_at",
    "status",
)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def new_id() -> str:
    return str(uuid.uuid4())


class LibraryRepository:
    """Row access for items, files, identifiers, scan sessions and enrichment cache.

    Methods do not commit. Callers group writes with ``Database.transaction()``.
    """

    def __init__(self, db: Database):
        self.db = db

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db.conn

    # Items

    def create_item(self, **fields) -> str:
        unknown = set(fields) - set(ITEM_FIELDS)
        if unknown:
            raise ValueError(f"Unknown item fields: {sorted(unknown)}")

        item_id = new_id()
        now = now_ms()
        columns = ["id", "created_at", "updated_at", *fields]
        values = [item_id, now, now, *fields.values()]
        placeholders = ", ".join("?" for _ in columns)
        self.conn.execute(
            f"INSERT INTO items ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )
        return item_id

    def update_item(self, item_id: str, **fields) -> None:
        fields = {k: v for k, v in fields.items() if k in ITEM_FIELDS}
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        self.conn.execute(
            f"UPDATE items SET {assignments}, updated_at = ? WHERE id = ?",
            (*fields.values(), now_ms(), item_id),
        )

    def get_item(self, item_id: str) -> LibraryItem | None:
        row = self.conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        item = _row_to_item(row)
        item.authors = self.get_item_authors(item_id)
        return item

    def list_items(self) -> list[LibraryItem]:
        rows = self.conn.execute(
            "SELECT * FROM items ORDER BY COALESCE(title, ''), created_at"
        ).fetchall()
        return [_row_to_item(row) for row in rows]

    # Authors

    def set_item_authors(self, item_id: str, names: list[str]) -> None:
        """Replace the ordered author list of an item."""
        self.conn.execute(
            "DELETE FROM item_authors WHERE item_id = ? AND role = 'author'", (item_id,)
        )
        seen: set[str] = set()
        for ord_, name in enumerate(n.strip() for n in names):
            if not name or name in seen:
                continue
            seen.add(name)
            author_id = self._get_or_create_author(name)
            self.conn.execute(
                "INSERT INTO item_authors (item_id, author_id, role, ord) "
                "VALUES (?, ?, 'author', ?)",
                (item_id, author_id, ord_),
            )

    def get_item_authors(self, item_id: str) -> list[str]:
        rows = self.conn.execute(
            """
            SELECT a.name FROM item_authors ia
            JOIN authors a ON a.id = ia.author_id
            WHERE ia.item_id = ? AND ia.role = 'author'
            ORDER BY ia.ord
            """,
            (item_id,),
        ).fetchall()
        return [row["name"] for row in rows]

    def author_names_by_item(self) -> dict[str, list[str]]:
        rows = self.conn.execute(
            """
            SELECT ia.item_id, a.name FROM item_authors ia
            JOIN authors a ON a.id = ia.author_id
            WHERE ia.role = 'author'
            ORDER BY ia.item_id, ia.ord
            """
        ).fetchall()
        result: dict[str, list[str]] = {}
        for row in rows:
            result.setdefault(row["item_id"], []).append(row["name"])
        return result

    def _get_or_create_author(self, name: str) -> str:
        row = self.conn.execute("SELECT id FROM authors WHERE name = ?", (name,)).fetchone()
        if row:
            return row["id"]
        author_id = new_id()
        now = now_ms()
        self.conn.execute(
            "INSERT INTO authors (id, name, sort_name, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (author_id, name, _sort_name(name), now, now),
        )
        return author_id

    # Identifiers

    def add_identifier(
        self,
        item_id: str,
        id_type: IdentifierType,
        value: str,
        confidence: float,
        source: IdentifierSource,
    ) -> bool:
        """Insert an identifier unless (type, value) is already known.

        Returns True when a new row was written. An existing row owned by the same
        item keeps the higher confidence.
        """
        cursor = self.conn.execute(
            """
            INSERT OR IGNORE INTO identifiers
            (id, item_id, type, value, source, confidence, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id(), item_id, id_type.value, value, source.value, confidence, now_ms()),
        )
        if cursor.rowcount:
            return True

        self.conn.execute(
            """
            UPDATE identifiers SET confidence = ?, source = ?
            WHERE type = ? AND value = ? AND item_id = ? AND confidence < ?
            """,
            (confidence, source.value, id_type.value, value, item_id, confidence),
        )
        return False

    def get_identifiers(self, item_id: str) -> list[Identifier]:
        rows = self.conn.execute(
            "SELECT * FROM identifiers WHERE item_id = ? ORDER BY confidence DESC, type, value",
            (item_id,),
        ).fetchall()
        return [_row_to_identifier(row) for row in rows]

    def find_item_by_identifier(self, id_type: IdentifierType, value: str) -> str | None:
        row = self.conn.execute(
            "SELECT item_id FROM identifiers WHERE type = ? AND value = ?",
            (id_type.value, value),
        ).fetchone()
        return row["item_id"] if row else None

    # Files

    def insert_file(
        self,
        item_id: str | None,
        path: str,
        filename: str,
        extension: str,
        size_bytes: int | None,
        sha256: str | None,
        modified_at: int | None,
        mime_type: str | None = None,
    ) -> FileRecord:
        file_id = new_id()
        now = now_ms()
        self.conn.execute(
            """
            INSERT INTO files (
                id, item_id, path, filename, extension, mime_type,
                size_bytes, sha256, hash_algo, modified_at, status,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'sha256', ?, ?, ?, ?)
            """,
            (
                file_id,
                item_id,
                path,
                filename,
                extension,
                mime_type,
                size_bytes,
                sha256,
                modified_at,
                FileStatus.ACTIVE.value,
                now,
                now,
            ),
        )
        record = self.get_file(file_id)
        assert record is not None
        return record

    def update_file(self, file_id: str, **fields) -> None:
        fields = {k: v for k, v in fields.items() if k in FILE_FIELDS}
        if "status" in fields and isinstance(fields["status"], FileStatus):
            fields["status"] = fields["status"].value
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        self.conn.execute(
            f"UPDATE files SET {assignments}, updated_at = ? WHERE id = ?",
            (*fields.values(), now_ms(), file_id),
        )

    def get_file(self, file_id: str) -> FileRecord | None:
        row = self.conn.execute("SELECT * FROM files WHERE id = ?", (file_id,)).fetchone()
        return _row_to_file(row) if row else None

    def get_file_by_path(self, path: str) -> FileRecord | None:
        row = self.conn.execute(
            """
            SELECT * FROM files WHERE path = ?
            ORDER BY CASE status WHEN 'active' THEN 0 ELSE 1 END, updated_at DESC
            LIMIT 1
            """,
            (path,),
        ).fetchone()
        return _row_to_file(row) if row else None

    def find_files_by_hash(self, sha256: str) -> list[FileRecord]:
        rows = self.conn.execute(
            "SELECT * FROM files WHERE sha256 = ? ORDER BY path", (sha256,)
        ).fetchall()
        return [_row_to_file(row) for row in rows]

    def list_files(self, status: FileStatus | None = None) -> list[FileRecord]:
        if status is None:
            rows = self.conn.execute("SELECT * FROM files ORDER BY path").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM files WHERE status = ? ORDER BY path", (status.value,)
            ).fetchall()
        return [_row_to_file(row) for row in rows]

    def list_active_files_under(self, root: str, separator: str) -> list[FileRecord]:
        """Active files whose path lies under root on a separator boundary."""
        prefix = root if root.endswith(separator) else root + separator
        pattern = _escape_like(prefix) + "%"
        rows = self.conn.execute(
            "SELECT * FROM files WHERE status = ? AND path LIKE ? ESCAPE '\\' ORDER BY path",
            (FileStatus.ACTIVE.value, pattern),
        ).fetchall()
        return [_row_to_file(row) for row in rows if row["path"].startswith(prefix)]

    # Issues

    def add_issue(
        self,
        issue_type: str,
        message: str,
        severity: str = "warning",
        item_id: str | None = None,
        file_id: str | None = None,
    ) -> str:
        issue_id = new_id()
        self.conn.execute(
            """
            INSERT INTO issues (id, item_id, file_id, type, message, severity, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (issue_id, item_id, file_id, issue_type, message, severity, now_ms()),
        )
        return issue_id

    def list_open_issues(self) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM issues WHERE resolved_at IS NULL ORDER BY created_at"
        ).fetchall()

    # Field provenance

    def record_field_source(self, item_id: str, field: str, source: str, confidence: float) -> None:
        self.conn.execute(
            """
            INSERT INTO item_field_sources (id, item_id, field, source, confidence, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (new_id(), item_id, field, source, confidence, now_ms()),
        )

    # Scan sessions

    def create_session(self, root_path: str) -> str:
        session_id = new_id()
        self.conn.execute(
            """
            INSERT INTO scan_sessions (id, root_path, started_at, status, stage)
            VALUES (?, ?, ?, ?, 'started')
            """,
            (session_id, root_path, now_ms(), ScanStatus.RUNNING.value),
        )
        return session_id

    def set_session_stage(self, session_id: str, stage: str) -> None:
        self.conn.execute("UPDATE scan_sessions SET stage = ? WHERE id = ?", (stage, session_id))

    def finish_session(
        self,
        session_id: str,
        status: ScanStatus,
        error_message: str | None = None,
    ) -> None:
        self.conn.execute(
            "UPDATE scan_sessions SET status = ?, ended_at = ?, error_message = ? WHERE id = ?",
            (status.value, now_ms(), error_message, session_id),
        )

    def get_session(self, session_id: str) -> ScanSession | None:
        row = self.conn.execute(
            "SELECT * FROM scan_sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return _row_to_session(row) if row else None

    def latest_session(self) -> ScanSession | None:
        row = self.conn.execute(
            "SELECT * FROM scan_sessions ORDER BY started_at DESC LIMIT 1"
        ).fetchone()
        return _row_to_session(row) if row else None

    def add_scan_entry(
        self,
        session_id: str,
        seq: int,
        path: str,
        action: ScanAction,
        file_id: str | None = None,
        sha256: str | None = None,
        size_bytes: int | None = None,
        modified_at: int | None = None,
    ) -> None:
        self.conn.execute(
            """
            INSERT INTO scan_entries
            (id, session_id, seq, path, modified_at, size_bytes, sha256, action, file_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                session_id,
                seq,
                path,
                modified_at,
                size_bytes,
                sha256,
                action.value,
                file_id,
            ),
        )

    def list_scan_entries(self, session_id: str) -> list[ScanEntry]:
        rows = self.conn.execute(
            "SELECT * FROM scan_entries WHERE session_id = ? ORDER BY seq", (session_id,)
        ).fetchall()
        return [
            ScanEntry(
                id=row["id"],
                session_id=row["session_id"],
                seq=row["seq"],
                path=row["path"],
                modified_at=row["modified_at"],
                size_bytes=row["size_bytes"],
                sha256=row["sha256"],
                action=ScanAction(row["action"]),
                file_id=row["file_id"],
            )
            for row in rows
        ]

    # Enrichment cache

    def get_or_create_source(self, name: str, rate_limit_per_min: int | None) -> str:
        row = self.conn.execute(
            "SELECT id FROM enrichment_sources WHERE name = ?", (name,)
        ).fetchone()
        if row:
            return row["id"]
        source_id = new_id()
        self.conn.execute(
            """
            INSERT INTO enrichment_sources (id, name, rate_limit_per_min, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (source_id, name, rate_limit_per_min, now_ms()),
        )
        return source_id

    def find_cached_results(self, source_id: str, query: str, since_ms: int) -> list[sqlite3.Row]:
        return self.conn.execute(
            """
            SELECT * FROM enrichment_results
            WHERE source_id = ? AND query = ? AND created_at >= ?
            ORDER BY created_at DESC, confidence DESC
            """,
            (source_id, query, since_ms),
        ).fetchall()

    def add_enrichment_result(
        self,
        item_id: str,
        source_id: str,
        query_type: str,
        query: str,
        response_json: str,
        confidence: float,
    ) -> None:
        self.conn.execute(
            """
            INSERT INTO enrichment_results
            (id, item_id, source_id, query_type, query, response_json, confidence, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (new_id(), item_id, source_id, query_type, query, response_json, confidence, now_ms()),
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _sort_name(name: str) -> str:
    parts = name.split()
    if len(parts) < 2 or "," in name:
        return name
    return f"{parts[-1]}, {' '.join(parts[:-1])}"


def _row_to_item(row: sqlite3.Row) -> LibraryItem:
    return LibraryItem(
        id=row["id"],
        title=row["title"],
        subtitle=row["subtitle"],
        description=row["description"],
        language=row["language"],
        published_year=row["published_year"],
        series=row["series"],
        series_index=row["series_index"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        item_id=row["item_id"],
        path=row["path"],
        filename=row["filename"],
        extension=row["extension"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"],
        sha256=row["sha256"],
        hash_algo=row["hash_algo"] or "sha256",
        modified_at=row["modified_at"],
        status=FileStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_identifier(row: sqlite3.Row) -> Identifier:
    return Identifier(
        id=row["id"],
        item_id=row["item_id"],
        type=IdentifierType(row["type"]),
        value=row["value"],
        source=IdentifierSource(row["source"]) if row["source"] else None,
        confidence=row["confidence"],
        created_at=row["created_at"],
    )


def _row_to_session(row: sqlite3.Row) -> ScanSession:
    return ScanSession(
        id=row["id"],
        root_path=row["root_path"],
        started_at=row["started_at"],
        ended_at=row["ended_at"],
        status=ScanStatus(row["status"]),
        stage=row["stage"],
        error_message=row["error_message"],
    )
