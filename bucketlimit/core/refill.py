"""Token refill arithmetic shared by every backend.

Times are epoch milliseconds and token counts are floats. Rounding only
happens where a backend compares a count against the single token a
request needs.
"""

from dataclasses import dataclass

from bucketlimit.exceptions import InvalidConfigurationError


def validate_limit(limit: int, window_sec: float) -> None:
    """Reject a capacity or window that would break the refill math."""
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidConfigurationError(f"limit must be an integer, got {limit!r}")
    if limit <= 0:
        raise InvalidConfigurationError(f"limit must be positive, got {limit}")
    if isinstance(window_sec, bool) or not isinstance(window_sec, (int, float)):
        raise InvalidConfigurationError(f"window must be a number, got {window_sec!r}")
    if not window_sec > 0:
        raise InvalidConfigurationError(f"window must be positive, got {window_sec}")


@dataclass(frozen=True)
class RefillRate:
    """Refill constants derived from a capacity and a window.

    Attributes:
        limit: Bucket capacity
        window_ms: Window length in milliseconds
        tokens_per_ms: Tokens the bucket regains per millisecond
        ms_per_token: Milliseconds needed to regain one token (never below 1)
    """
    limit: int
    window_ms: float
    tokens_per_ms: float
    ms_per_token: float

    @classmethod
    def from_limit(cls, limit: int, window_sec: float) -> "RefillRate":
        validate_limit(limit, window_sec)
        window_ms = window_sec * 1000.0
        return cls(
            limit=limit,
            window_ms=window_ms,
            tokens_per_ms=limit / window_ms,
            ms_per_token=max(1.0, window_ms / limit),
        )


def refill_amount(
    baseline: float,
    elapsed_ms: float,
    tokens_per_ms: float,
    capacity: float,
) -> float:
    """Return the token count after ``elapsed_ms`` of refill.

    Args:
        baseline: Token count at the last refill; negative counts start from 0
        elapsed_ms: Milliseconds since the last refill; negative means none
        tokens_per_ms: Refill speed
        capacity: Ceiling for the result

    Returns:
        ``min(capacity, baseline + tokens_per_ms * elapsed_ms)``
    """
    baseline = max(0.0, baseline)
    if elapsed_ms <= 0:
        return min(capacity, baseline)
    return min(capacity, baseline + tokens_per_ms * elapsed_ms)
