"""Extraction result types and helpers shared by the format readers."""

import re
from dataclasses import dataclass, field

from folio.database.models import IdentifierSource, IdentifierType
from folio.extractor.isbn import isbn_type

_YEAR_RE = re.compile(r"\b(\d{4})\b")


@dataclass
class ExtractedIdentifier:
    type: IdentifierType
    value: str
    confidence: float
    source: IdentifierSource


@dataclass
class ExtractedCover:
    data: bytes
    mime_type: str | None = None


@dataclass
class ExtractedMetadata:
    """Metadata read from a single file; every field is optional."""

    title: str | None = None
    authors: list[str] = field(default_factory=list)
    language: str | None = None
    published_year: int | None = None
    description: str | None = None
    identifiers: list[ExtractedIdentifier] = field(default_factory=list)
    cover: ExtractedCover | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.title
            or self.authors
            or self.language
            or self.published_year
            or self.description
            or self.identifiers
            or self.cover
        )


def parse_year(value: str | None) -> int | None:
    if not value:
        return None
    match = _YEAR_RE.search(value)
    return int(match.group(1)) if match else None


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def isbn_identifiers(
    isbns: list[str],
    confidence: float,
    source: IdentifierSource,
    known: list[ExtractedIdentifier] | None = None,
) -> list[ExtractedIdentifier]:
    """Wrap normalized ISBNs, skipping values already present in known."""
    seen = {ident.value for ident in known or []}
    identifiers = []
    for isbn in isbns:
        if isbn in seen:
            continue
        seen.add(isbn)
        identifiers.append(ExtractedIdentifier(isbn_type(isbn), isbn, confidence, source))
    return identifiers
