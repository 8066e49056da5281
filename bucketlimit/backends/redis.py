"""Redis-based distributed token bucket limiter.

Limits are stored in a hash per resource/account. Bucket state is two
scalar keys updated by a Lua script registered once per limiter
instance, so each get_token is a single round trip.

Redis key format:
- {prefix}{resource}.{account}.limit     - hash with limit, window_sec[, service_name]
- {prefix}{resource}.{account}.token     - current token count
- {prefix}{resource}.{account}.timestamp - last refresh time in epoch ms
"""

import math
from typing import Any, Optional

from redis.exceptions import RedisError

from bucketlimit.core.logging import get_log_context, get_logger
from bucketlimit.core.refill import RefillRate, validate_limit
from bucketlimit.exceptions import InvalidConfigurationError, NotConfiguredError, StorageError
from bucketlimit.models import LimiterOptions, create_key

from .base import RequestRateLimiter
from .redis_lua import TOKEN_BUCKET_SCRIPT

logger = get_logger(__name__)


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisRateLimiter(RequestRateLimiter):
    """Token bucket limiter using a Redis server-side script.

    Args:
        redis_client: A ``redis.asyncio.Redis`` client (owned by the caller
            until close() is called)
        options: Limiter options
    """

    backend_name = "redis"

    LIMIT_SUFFIX = "limit"
    TOKEN_SUFFIX = "token"
    TIMESTAMP_SUFFIX = "timestamp"
    LIMIT_FIELD = "limit"
    WINDOW_FIELD = "window_sec"
    SERVICE_FIELD = "service_name"

    def __init__(self, redis_client: Any, options: Optional[LimiterOptions] = None) -> None:
        super().__init__(options)
        self._redis = redis_client
        self._script = redis_client.register_script(TOKEN_BUCKET_SCRIPT)

    def _make_key(self, resource_name: str, account_id: str, suffix: str) -> str:
        return self.options.key_prefix + create_key(resource_name, account_id, suffix)

    async def set_limit(
        self, resource_name: str, account_id: str, limit: int, window_sec: float
    ) -> None:
        validate_limit(limit, window_sec)
        mapping: dict[str, Any] = {
            self.LIMIT_FIELD: limit,
            self.WINDOW_FIELD: float(window_sec),
        }
        if self.options.service_name:
            mapping[self.SERVICE_FIELD] = self.options.service_name
        key = self._make_key(resource_name, account_id, self.LIMIT_SUFFIX)
        try:
            await self._redis.hset(key, mapping=mapping)
        except RedisError as e:
            raise StorageError("set limit", str(e)) from e
        await self._forget_limit(resource_name, account_id)

    async def get_limit(self, resource_name: str, account_id: str) -> tuple[int, float]:
        key = self._make_key(resource_name, account_id, self.LIMIT_SUFFIX)
        try:
            raw = await self._redis.hgetall(key)
        except RedisError as e:
            raise StorageError("get limit", str(e)) from e

        if not raw:
            raise NotConfiguredError(resource_name, account_id)
        fields = {_decode(k): _decode(v) for k, v in raw.items()}
        try:
            limit = int(fields[self.LIMIT_FIELD])
            window_sec = float(fields[self.WINDOW_FIELD])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfigurationError(
                f"stored limit for {resource_name} on {account_id} is unreadable: {fields}"
            ) from e
        validate_limit(limit, window_sec)
        return limit, window_sec

    async def get_token(self, resource_name: str, account_id: str) -> bool:
        config = await self._load_limit(resource_name, account_id)
        rate = RefillRate.from_limit(config.limit, config.window_sec)
        now = self._clock()
        ttl_ms = max(1, math.ceil(2 * rate.window_ms))

        keys = [
            self._make_key(resource_name, account_id, self.TOKEN_SUFFIX),
            self._make_key(resource_name, account_id, self.TIMESTAMP_SUFFIX),
        ]
        args = [rate.tokens_per_ms, config.limit, now, 1, ttl_ms]
        try:
            result = await self._script(keys=keys, args=args)
        except RedisError as e:
            raise StorageError("token script", str(e)) from e

        try:
            allowed = int(result[0]) == 1
            tokens_after = float(_decode(result[1]))
            tokens_before = float(_decode(result[2]))
            filled = float(_decode(result[3]))
        except (IndexError, TypeError, ValueError) as e:
            raise StorageError("token script", f"unexpected response {result!r}") from e

        logger.debug(
            "token %s",
            "granted" if allowed else "denied",
            extra=get_log_context(
                resource_name,
                account_id,
                backend=self.backend_name,
                allowed=allowed,
                tokens_before=tokens_before,
                tokens_filled=filled,
                tokens_after=tokens_after,
            ),
        )
        return allowed

    async def close(self) -> None:
        """Close the Redis connection."""
        try:
            await self._redis.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis connection: {e}")
