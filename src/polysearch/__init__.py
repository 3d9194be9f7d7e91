from polysearch.base import (
    AggregateResponse,
    Pagination,
    ProviderBinding,
    ProviderError,
    ProviderResponse,
    RawResult,
    SearchRequest,
    SearchResult,
)
from polysearch.cache import CacheConfig, MemoryStorage, ResponseCache
from polysearch.engine import AggregationEngine

__all__ = [
    "AggregateResponse",
    "AggregationEngine",
    "CacheConfig",
    "MemoryStorage",
    "Pagination",
    "ProviderBinding",
    "ProviderError",
    "ProviderResponse",
    "RawResult",
    "ResponseCache",
    "SearchRequest",
    "SearchResult",
]
