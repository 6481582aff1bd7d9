"""Metadata enrichment from remote providers."""

from folio.enrichment.cache import EnrichmentCache, query_key
from folio.enrichment.engine import EnrichmentEngine, EnrichOutcome, EnrichRequest
from folio.enrichment.merge import merge_provider_results, score_with_provider_weight
from folio.enrichment.providers import default_providers
from folio.enrichment.types import (
    BookMetadata,
    MetadataProvider,
    MetadataSearchInput,
    ProviderRequestContext,
    QueryType,
)

__all__ = [
    "EnrichmentEngine",
    "EnrichRequest",
    "EnrichOutcome",
    "EnrichmentCache",
    "query_key",
    "merge_provider_results",
    "score_with_provider_weight",
    "default_providers",
    "BookMetadata",
    "MetadataProvider",
    "MetadataSearchInput",
    "ProviderRequestContext",
    "QueryType",
]
