"""Transport layer: retry envelope, rate limiting, and lookup caching.

The Ape-backed native balance reader lives in ``portfolio_scanner.rpc.provider``
and is imported on demand so that pricing and discovery do not require a node
connection.
"""

from portfolio_scanner.rpc.cache import JSONFileLookupCache, LookupCache, MemoryLookupCache
from portfolio_scanner.rpc.ratelimit import RateLimiter
from portfolio_scanner.rpc.retry import JSONFetcher, RetryConfig, with_retry

__all__ = [
    "JSONFetcher",
    "JSONFileLookupCache",
    "LookupCache",
    "MemoryLookupCache",
    "RateLimiter",
    "RetryConfig",
    "with_retry",
]
