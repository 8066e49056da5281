"""Limiter facade shared by every storage backend."""

from abc import ABC, abstractmethod
from typing import Optional

from bucketlimit.core.cache import LimitCache
from bucketlimit.exceptions import CapacityReachedError
from bucketlimit.models import LimitConfig, LimiterOptions, create_key


class RequestRateLimiter(ABC):
    """Token-bucket admission control per (resource, account).

    Backends differ only in how they make refill-and-consume atomic:
    in-process lock, server-side script, or conditional writes.
    """

    backend_name: str = "base"

    def __init__(self, options: Optional[LimiterOptions] = None) -> None:
        self.options = options or LimiterOptions()
        self._clock = self.options.clock
        self._limit_cache = LimitCache(self.options.limit_cache_ttl)

    @abstractmethod
    async def set_limit(
        self, resource_name: str, account_id: str, limit: int, window_sec: float
    ) -> None:
        """Store the capacity and window for a resource/account.

        Overwrites any previous limit without touching the bucket state.

        Raises:
            InvalidConfigurationError: If limit or window_sec is not positive
            StorageError: If the backend write fails
        """

    @abstractmethod
    async def get_limit(self, resource_name: str, account_id: str) -> tuple[int, float]:
        """Return ``(limit, window_sec)`` for a resource/account.

        Raises:
            NotConfiguredError: If no limit has been set
            InvalidConfigurationError: If the stored limit cannot be used
            StorageError: If the backend read fails
        """

    @abstractmethod
    async def get_token(self, resource_name: str, account_id: str) -> bool:
        """Consume one token if available.

        A denial is the return value, not an exception. Callers that want
        CapacityReachedError on denial use acquire() instead.

        Returns:
            True if the request is admitted, False if the bucket is empty

        Raises:
            NotConfiguredError: If no limit has been set
            StorageError: If the backend fails
        """

    async def acquire(self, resource_name: str, account_id: str) -> None:
        """Consume one token or raise CapacityReachedError."""
        if not await self.get_token(resource_name, account_id):
            raise CapacityReachedError(resource_name, account_id)

    async def close(self) -> None:
        """Release resources held by the backend."""

    async def _load_limit(self, resource_name: str, account_id: str) -> LimitConfig:
        """Read a limit through the per-instance cache."""
        key = create_key(resource_name, account_id)
        cached = await self._limit_cache.get(key)
        if cached is not None:
            return cached
        limit, window_sec = await self.get_limit(resource_name, account_id)
        config = LimitConfig(
            resource_name=resource_name,
            account_id=account_id,
            limit=limit,
            window_sec=window_sec,
            service_name=self.options.service_name,
        )
        await self._limit_cache.set(key, config)
        return config

    async def _forget_limit(self, resource_name: str, account_id: str) -> None:
        await self._limit_cache.delete(create_key(resource_name, account_id))
