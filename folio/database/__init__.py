"""Database module for folio."""

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
from .repository import LibraryRepository
from .schema import create_schema

__all__ = [
    "Database",
    "LibraryRepository",
    "create_schema",
    "LibraryItem",
    "FileRecord",
    "FileStatus",
    "Identifier",
    "IdentifierType",
    "IdentifierSource",
    "ScanSession",
    "ScanEntry",
    "ScanAction",
    "ScanStatus",
]
