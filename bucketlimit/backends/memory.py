"""In-process token bucket limiter.

Suitable for single-instance deployments. State lives in a plain dict
and is lost when the process exits.

One lock guards the whole mapping, so every set_limit/get_token call is
serialized. That is fine for low to moderate call volume; striping the
lock per key would be the next step under heavy load.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import Dict, Optional

from bucketlimit.core.logging import get_log_context, get_logger
from bucketlimit.core.refill import RefillRate, validate_limit
from bucketlimit.exceptions import NotConfiguredError
from bucketlimit.models import LimiterOptions, create_key

from .base import RequestRateLimiter

logger = get_logger(__name__)


@dataclass
class _AccountBucket:
    """Limit and live bucket state for one resource/account.

    A bucket starts full when its limit is first set.
    """
    limit: int
    window_sec: float
    tokens: float
    last_filled: float  # epoch ms of the last whole-tick boundary


class InMemoryRateLimiter(RequestRateLimiter):
    """Token bucket limiter backed by a process-local dict.

    Tokens are regained in whole ticks of ``window / limit``. The fractional
    remainder of a tick is kept by advancing ``last_filled`` only to the last
    tick boundary instead of to ``now``.
    """

    backend_name = "memory"

    def __init__(self, options: Optional[LimiterOptions] = None) -> None:
        super().__init__(options)
        self._resources: Dict[str, _AccountBucket] = {}
        self._lock = asyncio.Lock()

    async def set_limit(
        self, resource_name: str, account_id: str, limit: int, window_sec: float
    ) -> None:
        validate_limit(limit, window_sec)
        key = create_key(resource_name, account_id)
        async with self._lock:
            bucket = self._resources.get(key)
            if bucket is None:
                self._resources[key] = _AccountBucket(
                    limit=limit,
                    window_sec=float(window_sec),
                    tokens=float(limit),
                    last_filled=self._clock(),
                )
            else:
                bucket.limit = limit
                bucket.window_sec = float(window_sec)

    async def get_limit(self, resource_name: str, account_id: str) -> tuple[int, float]:
        key = create_key(resource_name, account_id)
        async with self._lock:
            bucket = self._resources.get(key)
            if bucket is None:
                raise NotConfiguredError(resource_name, account_id)
            return bucket.limit, bucket.window_sec

    async def get_token(self, resource_name: str, account_id: str) -> bool:
        key = create_key(resource_name, account_id)
        async with self._lock:
            bucket = self._resources.get(key)
            if bucket is None:
                raise NotConfiguredError(resource_name, account_id)

            rate = RefillRate.from_limit(bucket.limit, bucket.window_sec)
            now = self._clock()
            tokens_before = bucket.tokens

            delta = max(0.0, now - bucket.last_filled)
            ticks = math.floor(delta / rate.ms_per_token)
            filled = min(float(bucket.limit), bucket.tokens + ticks)
            allowed = filled >= 1
            if allowed:
                filled -= 1

            bucket.tokens = filled
            bucket.last_filled += rate.ms_per_token * ticks

        logger.debug(
            "token %s",
            "granted" if allowed else "denied",
            extra=get_log_context(
                resource_name,
                account_id,
                backend=self.backend_name,
                allowed=allowed,
                tokens_before=tokens_before,
                tokens_after=filled,
            ),
        )
        return allowed
