"""Configuration module for folio."""

from dataclasses import dataclass, field
from pathlib import Path


def _get_data_home() -> Path:
    return Path.home() / ".folio"


@dataclass
class ScannerConfig:
    extensions: tuple[str, ...] = ("epub", "pdf")
    hash_workers: int = 4
    hash_chunk_size: int = 8 * 1024 * 1024


@dataclass
class EnrichmentConfig:
    cache_ttl_days: int = 30
    max_retries: int = 3
    provider_timeout_seconds: float = 30.0
    request_timeout_seconds: float = 15.0
    country: str = "us"
    search_limit: int = 5
    google_api_key: str | None = None
    user_agent: str = "folio/0.1"


@dataclass
class OrganizerConfig:
    template: str = "{Author}/{Title} ({Year}) [{ISBN13}].{ext}"
    max_collision_attempts: int = 1000


@dataclass
class Config:
    database_path: Path = field(default_factory=lambda: _get_data_home() / "library.db")
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    organizer: OrganizerConfig = field(default_factory=OrganizerConfig)
