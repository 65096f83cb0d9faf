"""
Rate Limiting
Failed-attempt counting per client IP in fixed windows
"""

import asyncio
import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import case, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.config import settings
from access_control.core.exceptions import DatabaseException, RateLimitExceededException
from access_control.core.logging import get_logger
from access_control.db.models import FailedAttempt
from access_control.models.access import as_utc, utc_now

logger = get_logger(__name__)

# (attempt count, window start)
AttemptWindow = Tuple[int, Optional[datetime]]


class AttemptStore(ABC):
    """Keyed counter store with fixed expiry windows"""

    @abstractmethod
    async def increment(self, key: str, window_seconds: int) -> AttemptWindow:
        """Atomically add one attempt, starting a new window if the old one ended"""

    @abstractmethod
    async def get(self, key: str, window_seconds: int) -> AttemptWindow:
        """Attempts in the current window, (0, None) if there is none"""

    @abstractmethod
    async def reset(self, key: str) -> None:
        pass


class InMemoryAttemptStore(AttemptStore):
    """
    Process-local attempt store

    Suitable for a single worker and for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._attempts: Dict[str, Tuple[int, datetime]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _is_expired(self, started_at: datetime, window_seconds: int) -> bool:
        return self._clock() - started_at >= timedelta(seconds=window_seconds)

    async def increment(self, key: str, window_seconds: int) -> AttemptWindow:
        async with self._lock:
            current = self._attempts.get(key)
            if current is None or self._is_expired(current[1], window_seconds):
                current = (1, self._clock())
            else:
                current = (current[0] + 1, current[1])
            self._attempts[key] = current
            return current

    async def get(self, key: str, window_seconds: int) -> AttemptWindow:
        async with self._lock:
            current = self._attempts.get(key)
            if current is None:
                return 0, None
            if self._is_expired(current[1], window_seconds):
                del self._attempts[key]
                return 0, None
            return current

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._attempts.pop(key, None)


class SQLAttemptStore(AttemptStore):
    """Attempt store on the failed_access_attempts table"""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    def _new_session(self) -> AsyncSession:
        if self._session_factory is None:
            from access_control.db.session import get_session_maker

            self._session_factory = get_session_maker()
        return self._session_factory()

    async def increment(self, key: str, window_seconds: int) -> AttemptWindow:
        now = utc_now()
        cutoff = now - timedelta(seconds=window_seconds)
        window_ended = FailedAttempt.window_started_at <= cutoff

        statement = pg_insert(FailedAttempt).values(
            ip_address=key,
            attempt_count=1,
            window_started_at=now,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[FailedAttempt.ip_address],
            set_={
                "attempt_count": case(
                    (window_ended, 1),
                    else_=FailedAttempt.attempt_count + 1,
                ),
                "window_started_at": case(
                    (window_ended, now),
                    else_=FailedAttempt.window_started_at,
                ),
            },
        ).returning(FailedAttempt.attempt_count, FailedAttempt.window_started_at)

        async with self._new_session() as session:
            try:
                result = await session.execute(statement)
                count, started_at = result.one()
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseException(str(e))

        return count, started_at

    async def get(self, key: str, window_seconds: int) -> AttemptWindow:
        async with self._new_session() as session:
            try:
                result = await session.execute(
                    select(FailedAttempt.attempt_count, FailedAttempt.window_started_at).where(
                        FailedAttempt.ip_address == key
                    )
                )
            except SQLAlchemyError as e:
                raise DatabaseException(str(e))

        row = result.one_or_none()
        if row is None:
            return 0, None

        count, started_at = row
        if utc_now() - as_utc(started_at) >= timedelta(seconds=window_seconds):
            return 0, None
        return count, started_at

    async def reset(self, key: str) -> None:
        async with self._new_session() as session:
            try:
                row = await session.get(FailedAttempt, key)
                if row is not None:
                    await session.delete(row)
                    await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseException(str(e))


class RateLimiter:
    """Blocks an IP after too many failed attempts within a window"""

    def __init__(
        self,
        store: AttemptStore,
        max_attempts: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the rate limiter

        Args:
            store: Attempt counter store
            max_attempts: Failures allowed per window,
                defaults to RATE_LIMIT_MAX_FAILED_ATTEMPTS
            window_seconds: Window length, defaults to RATE_LIMIT_WINDOW_SECONDS
            clock: Current time source
        """
        self.store = store
        self.max_attempts = (
            settings.RATE_LIMIT_MAX_FAILED_ATTEMPTS if max_attempts is None else max_attempts
        )
        self.window_seconds = (
            settings.RATE_LIMIT_WINDOW_SECONDS if window_seconds is None else window_seconds
        )
        self._clock = clock

    def _retry_after(self, started_at: Optional[datetime]) -> int:
        if started_at is None:
            return self.window_seconds
        window_end = as_utc(started_at) + timedelta(seconds=self.window_seconds)
        return max(math.ceil((window_end - self._clock()).total_seconds()), 1)

    async def check(self, ip_address: str) -> None:
        """
        Reject the request if the IP is over its failure allowance

        Raises:
            RateLimitExceededException: If the allowance is used up
        """
        count, started_at = await self.store.get(ip_address, self.window_seconds)
        if count >= self.max_attempts:
            retry_after = self._retry_after(started_at)
            logger.warning(
                f"IP {ip_address} blocked after {count} failed attempts, "
                f"retry after {retry_after}s"
            )
            raise RateLimitExceededException(ip_address, retry_after)

    async def record_failure(self, ip_address: str) -> int:
        """Count one failed attempt and return the window total"""
        count, _ = await self.store.increment(ip_address, self.window_seconds)
        if count == self.max_attempts:
            logger.warning(f"IP {ip_address} reached {count} failed access attempts")
        return count

    async def reset(self, ip_address: str) -> None:
        await self.store.reset(ip_address)


# Global rate limiter instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create the global rate limiter"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(SQLAttemptStore())
    return _rate_limiter
