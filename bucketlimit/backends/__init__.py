"""Storage backends for the token bucket limiter.

- InMemoryRateLimiter: process-local dict guarded by one lock
- RedisRateLimiter: one atomic Lua script per call
- SqlRateLimiter: conditional-write claim followed by a best-effort settle
"""

from .base import RequestRateLimiter
from .memory import InMemoryRateLimiter
from .redis import RedisRateLimiter
from .redis_lua import TOKEN_BUCKET_SCRIPT
from .sql import SqlRateLimiter

__all__ = [
    "RequestRateLimiter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "SqlRateLimiter",
    "TOKEN_BUCKET_SCRIPT",
]
