"""Data models for rate limit configuration and bucket state."""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

KEY_SEPARATOR = "."
DEFAULT_LIMIT_TABLE = "rate_limits"
DEFAULT_TOKEN_TABLE = "rate_tokens"


def create_key(*parts: str) -> str:
    """Join parts into a single composite key."""
    return KEY_SEPARATOR.join(parts)


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


@dataclass
class LimitConfig:
    """Configured capacity and window for one resource/account pair.

    Attributes:
        resource_name: The limited resource
        account_id: The account using the resource
        limit: Bucket capacity (tokens per window)
        window_sec: Window length in seconds
        service_name: Optional tag naming the owning service
    """
    resource_name: str
    account_id: str
    limit: int
    window_sec: float
    service_name: Optional[str] = None

    @property
    def key(self) -> str:
        return create_key(self.resource_name, self.account_id)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "resource_name": self.resource_name,
            "account_id": self.account_id,
            "limit": self.limit,
            "window_sec": self.window_sec,
            "service_name": self.service_name,
        }


@dataclass
class BucketState:
    """Live token bookkeeping for one resource/account pair.

    ``tokens`` may be transiently negative under the conditional-write
    protocol. Timestamps are epoch milliseconds; ``None`` means the
    field has never been written.
    """
    tokens: Optional[float] = None
    last_refill: Optional[float] = None
    last_claim: Optional[float] = None


@dataclass
class LimiterOptions:
    """Construction options shared by every limiter backend.

    Attributes:
        service_name: Tag stored alongside limits written by this limiter
        key_prefix: Prefix prepended to every storage key (Redis backend)
        limit_cache_ttl: Seconds a loaded limit is reused by get_token (0 disables)
        limit_table: Name of the limit table (SQL backend)
        token_table: Name of the token table (SQL backend)
        clock: Callable returning the current time in epoch milliseconds
    """
    service_name: Optional[str] = None
    key_prefix: str = ""
    limit_cache_ttl: float = 0.0
    limit_table: str = DEFAULT_LIMIT_TABLE
    token_table: str = DEFAULT_TOKEN_TABLE
    clock: Callable[[], float] = field(default=now_ms)
