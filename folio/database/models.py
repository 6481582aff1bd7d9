"""Data models for the database."""

from dataclasses import dataclass, field
from enum import Enum


class ScanStatus(Enum):
    """Status of a scan session."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileStatus(Enum):
    """Presence of a file at its recorded path."""

    ACTIVE = "active"
    MISSING = "missing"


class ScanAction(Enum):
    """Classification recorded for a path in a scan session."""

    ADDED = "added"
    UPDATED = "updated"
    MOVED = "moved"
    UNCHANGED = "unchanged"
    MISSING = "missing"
    ERROR = "error"


class IdentifierType(Enum):
    ISBN10 = "ISBN10"
    ISBN13 = "ISBN13"
    ASIN = "ASIN"
    DOI = "DOI"
    OTHER = "OTHER"


class IdentifierSource(Enum):
    EMBEDDED = "embedded"
    HEURISTIC = "heuristic"
    ENRICHMENT = "enrichment"


@dataclass
class LibraryItem:
    """Represents a work in the library, independent of its files."""

    id: str
    title: str | None
    subtitle: str | None
    description: str | None
    language: str | None
    published_year: int | None
    series: str | None
    series_index: float | None
    created_at: int
    updated_at: int
    authors: list[str] = field(default_factory=list)


@dataclass
class FileRecord:
    """Represents a physical file owned by a library item."""

    id: str
    item_id: str | None
    path: str
    filename: str
    extension: str
    mime_type: str | None
    size_bytes: int | None
    sha256: str | None
    hash_algo: str
    modified_at: int | None
    status: FileStatus
    created_at: int
    updated_at: int


@dataclass
class Identifier:
    """An identifier attached to an item, unique on (type, value)."""

    id: str
    item_id: str
    type: IdentifierType
    value: str
    source: IdentifierSource | None
    confidence: float
    created_at: int


@dataclass
class ScanSession:
    """Represents a scan session record."""

    id: str
    root_path: str
    started_at: int
    ended_at: int | None
    status: ScanStatus
    stage: str | None
    error_message: str | None


@dataclass
class ScanEntry:
    """One classification decision within a scan session."""

    id: str
    session_id: str
    seq: int
    path: str
    modified_at: int | None
    size_bytes: int | None
    sha256: str | None
    action: ScanAction
    file_id: str | None


@dataclass
class ParsedFilename:
    """Parsed components of a filename."""

    full: str
    base: str
    extension: str | None
