"""Remote collaborators: station registry, country table and archive fetcher."""

from .archive import ArchiveFile, FetchResult, GsodArchiveClient
from .base import BatchExecutorMixin
from .countries import load_country_table, resolve_country
from .retry import build_retrying, call_with_retry
from .stations import StationRecord, StationRegistry, load_station_registry

__all__ = [
    "ArchiveFile",
    "FetchResult",
    "GsodArchiveClient",
    "BatchExecutorMixin",
    "load_country_table",
    "resolve_country",
    "build_retrying",
    "call_with_retry",
    "StationRecord",
    "StationRegistry",
    "load_station_registry",
]
