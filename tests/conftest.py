"""Shared fixtures: a controllable clock and an in-memory Redis stand-in."""

from unittest.mock import MagicMock

import pytest


class FakeClock:
    """Clock returning epoch milliseconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeTokenScript:
    """Python rendition of TOKEN_BUCKET_SCRIPT running against FakeRedis data.

    Each call runs to completion without awaiting, so concurrent callers
    are serialized exactly like scripts on a Redis server.
    """

    def __init__(self, redis: "FakeRedis", source: str):
        self.redis = redis
        self.source = source
        self.calls = []

    async def __call__(self, keys=None, args=None, client=None):
        self.calls.append((list(keys), list(args)))
        tokens_key, timestamp_key = keys
        tokens_per_ms, capacity, now, requested, ttl = (float(a) for a in args)

        raw_tokens = self.redis.data.get(tokens_key)
        last_tokens = float(raw_tokens) if raw_tokens is not None else capacity
        raw_ts = self.redis.data.get(timestamp_key)
        last_refreshed = float(raw_ts) if raw_ts is not None else 0.0

        delta = max(0.0, now - last_refreshed)
        filled = min(capacity, last_tokens + delta * tokens_per_ms)
        allowed = filled >= requested
        new_tokens = filled - requested if allowed else filled

        self.redis.data[tokens_key] = repr(new_tokens)
        self.redis.data[timestamp_key] = repr(now)
        self.redis.ttls[tokens_key] = int(ttl)
        self.redis.ttls[timestamp_key] = int(ttl)
        return [1 if allowed else 0, repr(new_tokens).encode(), repr(last_tokens).encode(), repr(filled).encode()]


class FakeRedis:
    """Minimal async Redis stand-in returning bytes like a non-decoding client."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.scripts: list[FakeTokenScript] = []
        self.closed = False
        self.hgetall_calls = 0

    def register_script(self, source: str) -> FakeTokenScript:
        script = FakeTokenScript(self, source)
        self.scripts.append(script)
        return script

    async def hset(self, key, mapping=None):
        fields = self.hashes.setdefault(key, {})
        for field, value in (mapping or {}).items():
            fields[field] = str(value)
        return len(mapping or {})

    async def hgetall(self, key):
        self.hgetall_calls += 1
        return {k.encode(): v.encode() for k, v in self.hashes.get(key, {}).items()}

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def failing_redis():
    """Redis client whose every command raises a connection error."""
    from redis.exceptions import ConnectionError as RedisConnectionError

    redis = MagicMock()

    async def _fail(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    redis.register_script.return_value = _fail
    redis.hset.side_effect = _fail
    redis.hgetall.side_effect = _fail
    return redis
