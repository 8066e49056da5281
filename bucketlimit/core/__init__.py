"""Core utilities: configuration, logging, refill math and caching."""

from bucketlimit.core.config import Settings, settings
from bucketlimit.core.logging import get_log_context, get_logger, setup_logging
from bucketlimit.core.refill import RefillRate, refill_amount, validate_limit

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "get_log_context",
    "setup_logging",
    "RefillRate",
    "refill_amount",
    "validate_limit",
]
