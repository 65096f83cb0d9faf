"""
Audit Logger
Persistent trail of security-relevant access decisions
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from sqlalchemy import case, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.exceptions import DatabaseException
from access_control.core.logging import get_logger
from access_control.core.permissions import Permission, ResourceType
from access_control.db.models import AuditLog
from access_control.models.access import AccessLayer, utc_now
from access_control.models.audit import AuditLogEntry, AuditStats

logger = get_logger(__name__)


class AuditLogger(ABC):
    """Sink for audit log entries"""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> None:
        """
        Persist one entry

        Raises:
            DatabaseException: If the entry could not be stored
        """


class SQLAuditLogger(AuditLogger):
    """
    Audit logger writing to the access_audit_log table

    Uses its own sessions so entries survive a rollback of the
    request transaction.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        """
        Initialize the audit logger

        Args:
            session_factory: Callable returning a new AsyncSession,
                defaults to the application session maker
        """
        self._session_factory = session_factory

    def _new_session(self) -> AsyncSession:
        if self._session_factory is None:
            from access_control.db.session import get_session_maker

            self._session_factory = get_session_maker()
        return self._session_factory()

    async def append(self, entry: AuditLogEntry) -> None:
        row = AuditLog(
            user_id=entry.user_id,
            access_key=entry.access_key,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            resource_type=entry.resource_type.value,
            resource_id=entry.resource_id,
            permission_requested=entry.permission_requested.as_str(),
            permission_granted=(
                entry.permission_granted.as_str() if entry.permission_granted else None
            ),
            access_granted=entry.access_granted,
            access_layer=entry.access_layer.value if entry.access_layer else None,
            reason=entry.reason,
            error_code=entry.error_code,
            created_at=entry.created_at,
        )

        async with self._new_session() as session:
            try:
                session.add(row)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseException(f"Failed to write audit entry: {e}")

    async def _query(self, statement: Any) -> Any:
        async with self._new_session() as session:
            try:
                return await session.execute(statement)
            except SQLAlchemyError as e:
                raise DatabaseException(str(e))

    async def get_resource_audit_log(
        self,
        resource_type: ResourceType,
        resource_id: int,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        """Most recent entries for one resource"""
        result = await self._query(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type.value,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return [_to_entry(row) for row in result.scalars().all()]

    async def get_denied_attempts(
        self,
        since: datetime,
        limit: int = 100,
    ) -> List[AuditLogEntry]:
        """Denied attempts since a point in time, newest first"""
        result = await self._query(
            select(AuditLog)
            .where(AuditLog.access_granted.is_(False), AuditLog.created_at >= since)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return [_to_entry(row) for row in result.scalars().all()]

    async def get_denied_by_ip(
        self,
        ip_address: str,
        since: datetime,
    ) -> List[AuditLogEntry]:
        result = await self._query(
            select(AuditLog)
            .where(
                AuditLog.ip_address == ip_address,
                AuditLog.access_granted.is_(False),
                AuditLog.created_at >= since,
            )
            .order_by(AuditLog.created_at.desc())
        )
        return [_to_entry(row) for row in result.scalars().all()]

    async def count_failed_attempts(self, ip_address: str, since: datetime) -> int:
        result = await self._query(
            select(func.count(AuditLog.id)).where(
                AuditLog.ip_address == ip_address,
                AuditLog.access_granted.is_(False),
                AuditLog.created_at >= since,
            )
        )
        return result.scalar_one() or 0

    async def get_user_stats(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> AuditStats:
        conditions = [AuditLog.user_id == user_id]
        if since is not None:
            conditions.append(AuditLog.created_at >= since)
        return await self._stats(conditions)

    async def get_resource_stats(
        self,
        resource_type: ResourceType,
        resource_id: int,
    ) -> AuditStats:
        return await self._stats(
            [
                AuditLog.resource_type == resource_type.value,
                AuditLog.resource_id == resource_id,
            ]
        )

    async def _stats(self, conditions: List[Any]) -> AuditStats:
        result = await self._query(
            select(
                func.count(AuditLog.id),
                func.sum(case((AuditLog.access_granted.is_(True), 1), else_=0)),
            ).where(*conditions)
        )
        total, granted = result.one()
        total = total or 0
        granted = granted or 0
        return AuditStats(
            total_attempts=total,
            granted_count=granted,
            denied_count=total - granted,
        )

    async def cleanup_old_logs(self, retention_days: int) -> int:
        """
        Delete entries older than the retention period

        Returns:
            Number of deleted entries
        """
        cutoff = utc_now() - timedelta(days=retention_days)

        async with self._new_session() as session:
            try:
                result = await session.execute(
                    delete(AuditLog).where(AuditLog.created_at < cutoff)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseException(str(e))

        deleted = result.rowcount or 0
        logger.info(f"Removed {deleted} audit entries older than {retention_days} days")
        return deleted


def _to_entry(row: AuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        user_id=row.user_id,
        access_key=row.access_key,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        resource_type=ResourceType.parse(row.resource_type),
        resource_id=row.resource_id,
        permission_requested=Permission.parse(row.permission_requested),
        permission_granted=(
            Permission.parse(row.permission_granted) if row.permission_granted else None
        ),
        access_granted=row.access_granted,
        access_layer=AccessLayer(row.access_layer) if row.access_layer else None,
        reason=row.reason,
        error_code=row.error_code,
        created_at=row.created_at,
    )


# Global audit logger instance
_audit_logger: Optional[SQLAuditLogger] = None


def get_audit_logger() -> SQLAuditLogger:
    """Get or create the global audit logger"""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = SQLAuditLogger()
    return _audit_logger
