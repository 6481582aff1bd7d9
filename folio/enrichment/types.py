"""Common types shared by metadata providers and the fusion engine."""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol, Self

logger = logging.getLogger(__name__)


class QueryType(Enum):
    ISBN = "isbn"
    TITLE_AUTHOR = "title_author"


@dataclass
class MetadataSearchInput:
    isbn: str | None = None
    title: str | None = None
    author: str | None = None
    country: str | None = None
    limit: int | None = None


@dataclass
class ProviderRequestContext:
    query_type: QueryType
    title: str | None = None
    author: str | None = None
    isbn: str | None = None


@dataclass
class BookMetadata:
    """A normalized candidate record returned by one provider."""

    source: str
    confidence: float
    raw: Any = None
    title: str | None = None
    subtitle: str | None = None
    authors: list[str] = field(default_factory=list)
    published_year: int | None = None
    language: str | None = None
    identifiers: list[str] = field(default_factory=list)
    cover_url: str | None = None
    description: str | None = None
    source_id: str | None = None
    source_url: str | None = None
    weighted_confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known = {name for name in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        values["authors"] = list(values.get("authors") or [])
        values["identifiers"] = list(values.get("identifiers") or [])
        return cls(**values)


class MetadataProvider(Protocol):
    """A remote bibliographic source.

    Implementations never raise for network or payload problems; they return
    an empty list instead.
    """

    name: str
    rate_limit_per_min: int

    def search(self, search: MetadataSearchInput) -> list[BookMetadata]: ...

    def fetch_by_isbn(
        self, isbn: str, search: MetadataSearchInput | None = None
    ) -> list[BookMetadata]: ...

    def normalize_result(
        self, raw: Any, context: ProviderRequestContext
    ) -> BookMetadata | None: ...

    def get_cover_url(self, raw: Any) -> str | None: ...


def normalize_entries(
    provider: MetadataProvider, entries: Iterable[Any], context: ProviderRequestContext
) -> list[BookMetadata]:
    """Normalize each payload entry, dropping the ones that do not fit."""
    candidates = []
    for entry in entries:
        try:
            candidate = provider.normalize_result(entry, context)
        except (TypeError, AttributeError, ValueError) as e:
            logger.debug("Dropping malformed %s entry: %s", provider.name, e)
            continue
        if candidate is not None:
            candidates.append(candidate)
    return candidates
