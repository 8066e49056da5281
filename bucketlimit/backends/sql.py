"""Relational token bucket limiter built on conditional writes.

The store is only trusted for single-row conditional updates
(``UPDATE ... WHERE <predicate> RETURNING``), so get_token runs in two
phases:

- claim: one conditional update takes a token. It succeeds only if the
  bucket holds at least one token or a token has accrued since the last
  claim. A missing bucket is inserted full, minus the claimed token. This
  is the admission decision.
- settle: a second, best-effort update writes the refilled count. It is
  guarded so the refill timestamp never moves backward; when a newer
  settle already landed the write is skipped.

A settle that fails never revokes the admission granted by its claim.
"""

from typing import Optional

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bucketlimit.core.logging import get_log_context, get_logger
from bucketlimit.core.refill import RefillRate, refill_amount, validate_limit
from bucketlimit.db.models import bucket_tables
from bucketlimit.exceptions import InvalidConfigurationError, NotConfiguredError, StorageError
from bucketlimit.models import BucketState, LimiterOptions

from .base import RequestRateLimiter

logger = get_logger(__name__)


class SqlRateLimiter(RequestRateLimiter):
    """Token bucket limiter over SQLAlchemy async sessions.

    Args:
        session_factory: Factory producing AsyncSession objects
        options: Limiter options
        engine: Engine to dispose on close(), if this limiter owns it

    Table names come from ``options.limit_table`` and ``options.token_table``.
    """

    backend_name = "sql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        options: Optional[LimiterOptions] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        super().__init__(options)
        self._session_factory = session_factory
        self._engine = engine
        self._tables = bucket_tables(self.options.limit_table, self.options.token_table)

    async def set_limit(
        self, resource_name: str, account_id: str, limit: int, window_sec: float
    ) -> None:
        validate_limit(limit, window_sec)
        limits = self._tables.limits
        values = {
            "capacity": limit,
            "window_sec": float(window_sec),
            "service_name": self.options.service_name,
        }
        overwrite = (
            update(limits)
            .where(limits.c.resource_name == resource_name, limits.c.account_id == account_id)
            .values(**values)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(overwrite)
                if result.rowcount == 0:
                    try:
                        await session.execute(
                            insert(limits).values(
                                resource_name=resource_name, account_id=account_id, **values
                            )
                        )
                    except IntegrityError:
                        # A concurrent set_limit created the row; last writer wins
                        await session.rollback()
                        await session.execute(overwrite)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("set limit", str(e)) from e
        await self._forget_limit(resource_name, account_id)

    async def get_limit(self, resource_name: str, account_id: str) -> tuple[int, float]:
        limits = self._tables.limits
        stmt = select(limits.c.capacity, limits.c.window_sec).where(
            limits.c.resource_name == resource_name,
            limits.c.account_id == account_id,
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("get limit", str(e)) from e

        if row is None:
            raise NotConfiguredError(resource_name, account_id)
        if row.capacity is None or row.window_sec is None:
            raise InvalidConfigurationError(
                f"stored limit for {resource_name} on {account_id} is incomplete"
            )
        validate_limit(row.capacity, row.window_sec)
        return row.capacity, row.window_sec

    async def get_token(self, resource_name: str, account_id: str) -> bool:
        config = await self._load_limit(resource_name, account_id)
        rate = RefillRate.from_limit(config.limit, config.window_sec)
        now = self._clock()

        try:
            async with self._session_factory() as session:
                claimed = await self._claim(session, resource_name, account_id, now, rate)
        except SQLAlchemyError as e:
            raise StorageError("claim token", str(e)) from e

        if claimed is None:
            logger.debug(
                "token denied: capacity exhausted",
                extra=get_log_context(
                    resource_name, account_id, backend=self.backend_name, allowed=False
                ),
            )
            return False

        await self._settle(resource_name, account_id, claimed, now, rate)
        return True

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def _claim(
        self,
        session: AsyncSession,
        resource_name: str,
        account_id: str,
        now: float,
        rate: RefillRate,
    ) -> Optional[BucketState]:
        """Atomically take one token; None means the bucket is exhausted."""
        buckets = self._tables.tokens
        stmt = (
            update(buckets)
            .where(
                buckets.c.resource_name == resource_name,
                buckets.c.account_id == account_id,
                or_(
                    buckets.c.tokens.is_(None),
                    buckets.c.tokens >= 1,
                    buckets.c.last_claim < now - rate.ms_per_token,
                ),
            )
            .values(tokens=func.coalesce(buckets.c.tokens, 0.0) - 1, last_claim=now)
            .returning(buckets.c.tokens, buckets.c.last_refill)
        )

        claimed = await self._execute_claim(session, stmt, now)
        if claimed is not None:
            return claimed

        # Zero rows matched: either the bucket is exhausted or it does not exist yet
        exists = await session.scalar(
            select(buckets.c.resource_name).where(
                buckets.c.resource_name == resource_name,
                buckets.c.account_id == account_id,
            )
        )
        if exists is not None:
            await session.rollback()
            return None

        # A new bucket starts full and this call takes the first token.
        # last_refill=now makes the following settle a no-op.
        fresh = BucketState(tokens=float(rate.limit - 1), last_refill=now, last_claim=now)
        try:
            await session.execute(
                insert(buckets).values(
                    resource_name=resource_name,
                    account_id=account_id,
                    tokens=fresh.tokens,
                    last_refill=fresh.last_refill,
                    last_claim=fresh.last_claim,
                )
            )
            await session.commit()
        except IntegrityError:
            # Another caller created the bucket first; claim against its row
            await session.rollback()
            return await self._execute_claim(session, stmt, now)
        return fresh

    async def _execute_claim(
        self, session: AsyncSession, stmt, now: float
    ) -> Optional[BucketState]:
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        await session.commit()
        return BucketState(tokens=row.tokens, last_refill=row.last_refill, last_claim=now)

    async def _settle(
        self,
        resource_name: str,
        account_id: str,
        claimed: BucketState,
        now: float,
        rate: RefillRate,
    ) -> None:
        """Write the refilled token count unless a newer refill already landed.

        The refill is computed on the level before this call's claim, then
        the claimed token is taken back out, so the stored count never
        exceeds ``limit - 1``.
        """
        last_refill = claimed.last_refill if claimed.last_refill is not None else 0.0
        pre_claim = claimed.tokens + 1
        settled = refill_amount(pre_claim, now - last_refill, rate.tokens_per_ms, rate.limit) - 1

        buckets = self._tables.tokens
        stmt = (
            update(buckets)
            .where(
                buckets.c.resource_name == resource_name,
                buckets.c.account_id == account_id,
                or_(buckets.c.last_refill.is_(None), buckets.c.last_refill < now),
            )
            .values(tokens=settled, last_refill=now)
        )
        context = get_log_context(
            resource_name,
            account_id,
            backend=self.backend_name,
            allowed=True,
            tokens_before=claimed.tokens,
            tokens_after=settled,
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Token settle failed: {e}", extra=context)
            return

        if result.rowcount == 0:
            logger.debug("token granted; settle skipped, newer refill recorded", extra=context)
        else:
            logger.debug("token granted", extra=context)
