"""
Cover enrichment: durable + in-memory cache, rate limiting and the batch
scheduler that fills in missing cover images for library records.
"""

from .cache import CoverCache, build_cover_cache_key
from .enrichment import CoverEnrichmentService
from .rate_limit import MinGapRateLimiter
from .store import JsonFileStore, KeyValueStore, MemoryStore, SqlCoverStore, build_store

__all__ = [
    "CoverCache",
    "CoverEnrichmentService",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "MinGapRateLimiter",
    "SqlCoverStore",
    "build_cover_cache_key",
    "build_store",
]
