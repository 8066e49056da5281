"""Database layer for the conditional-write backend."""

from bucketlimit.db.models import (
    DEFAULT_LIMIT_TABLE,
    DEFAULT_TOKEN_TABLE,
    BucketTables,
    bucket_tables,
)
from bucketlimit.db.session import get_async_engine, get_session_factory, init_db

__all__ = [
    "BucketTables",
    "bucket_tables",
    "DEFAULT_LIMIT_TABLE",
    "DEFAULT_TOKEN_TABLE",
    "get_async_engine",
    "get_session_factory",
    "init_db",
]
