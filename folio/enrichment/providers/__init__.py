"""Metadata providers."""

import requests

from folio.config import EnrichmentConfig
from folio.enrichment.providers.apple_books import AppleBooksProvider
from folio.enrichment.providers.google_books import GoogleBooksProvider
from folio.enrichment.providers.open_library import OpenLibraryProvider
from folio.enrichment.types import MetadataProvider


def default_providers(
    config: EnrichmentConfig,
    session: requests.Session | None = None,
) -> list[MetadataProvider]:
    """Apple Books, Google Books and Open Library, configured from config."""
    common = dict(
        max_retries=config.max_retries,
        timeout=config.request_timeout_seconds,
        user_agent=config.user_agent,
    )
    return [
        AppleBooksProvider(
            session=session, country=config.country, limit=config.search_limit, **common
        ),
        GoogleBooksProvider(
            session=session, api_key=config.google_api_key, limit=config.search_limit, **common
        ),
        OpenLibraryProvider(session=session, limit=config.search_limit, **common),
    ]


__all__ = [
    "AppleBooksProvider",
    "GoogleBooksProvider",
    "OpenLibraryProvider",
    "default_providers",
]
