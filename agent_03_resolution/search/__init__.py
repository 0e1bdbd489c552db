"""Buprenorphine Pharmacy Locator — Multi-Source Pharmacy Search."""

from .cache import MemoryTTLCache, NullCache, TTLCache, make_cache_key
from .circuit_breaker import CircuitBreaker
from .source_merger import (
    LocalEntryStore,
    MapSearchProvider,
    MergerConfig,
    SourceMerger,
    merge_candidates,
    sanitize_query,
)

__all__ = [
    "MemoryTTLCache",
    "NullCache",
    "TTLCache",
    "make_cache_key",
    "CircuitBreaker",
    "LocalEntryStore",
    "MapSearchProvider",
    "MergerConfig",
    "SourceMerger",
    "merge_candidates",
    "sanitize_query",
]
