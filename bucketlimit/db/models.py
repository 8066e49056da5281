"""Tables for the conditional-write backend.

Table names are configurable, so the tables are built per name pair
instead of declared once. Building the same pair twice returns the same
Table objects.
"""

from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import Column, Float, Integer, MetaData, String, Table

from bucketlimit.models import DEFAULT_LIMIT_TABLE, DEFAULT_TOKEN_TABLE


@dataclass(frozen=True)
class BucketTables:
    """The limit table and the token table used by one limiter.

    Attributes:
        limits: Configured capacity and window per resource/account
        tokens: Live bucket state per resource/account. Timestamps are
            epoch milliseconds; tokens may go negative between a claim
            and its settle.
    """
    limits: Table
    tokens: Table

    @property
    def metadata(self) -> MetaData:
        return self.limits.metadata


@lru_cache(maxsize=None)
def bucket_tables(
    limit_table: str = DEFAULT_LIMIT_TABLE,
    token_table: str = DEFAULT_TOKEN_TABLE,
) -> BucketTables:
    """Build (or reuse) the table pair for the given names."""
    metadata = MetaData()
    limits = Table(
        limit_table,
        metadata,
        Column("resource_name", String, primary_key=True),
        Column("account_id", String, primary_key=True),
        Column("capacity", Integer),
        Column("window_sec", Float),
        Column("service_name", String, nullable=True),
    )
    tokens = Table(
        token_table,
        metadata,
        Column("resource_name", String, primary_key=True),
        Column("account_id", String, primary_key=True),
        Column("tokens", Float, nullable=True),
        Column("last_refill", Float, nullable=True),
        Column("last_claim", Float, nullable=True),
    )
    return BucketTables(limits=limits, tokens=tokens)
