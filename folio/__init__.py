"""Folio - A tool for cataloguing, enriching and organizing e-book collections."""

__version__ = "0.1.0"

from folio.database import Database
from folio.scanner import Scanner

__all__ = ["Database", "Scanner"]
