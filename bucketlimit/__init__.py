"""Token bucket admission control per (resource, account).

Three interchangeable backends share one async interface
(set_limit / get_limit / get_token):

- InMemoryRateLimiter: single process, one lock around a dict
- RedisRateLimiter: atomic server-side Lua script
- SqlRateLimiter: conditional-write claim plus best-effort settle
"""

from bucketlimit.backends import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    RequestRateLimiter,
    SqlRateLimiter,
)
from bucketlimit.exceptions import (
    CapacityReachedError,
    InvalidConfigurationError,
    NotConfiguredError,
    RateLimitError,
    StorageError,
)
from bucketlimit.factory import create_rate_limiter
from bucketlimit.models import BucketState, LimitConfig, LimiterOptions, create_key

__all__ = [
    # Backends
    "RequestRateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "SqlRateLimiter",
    "create_rate_limiter",
    # Models
    "LimitConfig",
    "BucketState",
    "LimiterOptions",
    "create_key",
    # Exceptions
    "RateLimitError",
    "CapacityReachedError",
    "NotConfiguredError",
    "InvalidConfigurationError",
    "StorageError",
]
