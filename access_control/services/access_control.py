"""
Access Control Service
Evaluates access layers in order and records security events
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.config import settings
from access_control.core.exceptions import (
    AccessException,
    DatabaseException,
    DownloadLimitExceededException,
    ExpiredAccessKeyException,
    ForbiddenException,
    InactiveAccessKeyException,
    InvalidAccessKeyException,
    RateLimitExceededException,
    UnauthorizedException,
)
from access_control.core.logging import get_logger
from access_control.core.permissions import Permission, ResourceType
from access_control.models.access import (
    AccessContext,
    AccessDecision,
    AccessLayer,
    mask_key,
)
from access_control.models.audit import AuditLogEntry
from access_control.services.audit import AuditLogger
from access_control.services.layers import (
    NOT_PUBLIC_REASON,
    AccessKeyLayer,
    BaseAccessLayer,
    GroupLayer,
    OwnerLayer,
    PublicLayer,
)
from access_control.services.rate_limit import RateLimiter
from access_control.services.repository import AccessRepository

logger = get_logger(__name__)

# Errors that count as a failed attempt for rate limiting
FAILED_ATTEMPT_ERRORS = (
    ForbiddenException,
    InvalidAccessKeyException,
    ExpiredAccessKeyException,
    InactiveAccessKeyException,
    DownloadLimitExceededException,
)


class AccessControlService:
    """
    Access control orchestrator

    Layers are evaluated strongest first: Owner, Group, AccessKey,
    Public. The first decision that covers the requested permission
    wins. Credential errors abort the check immediately.
    """

    def __init__(
        self,
        repository: AccessRepository,
        audit_logger: Optional[AuditLogger] = None,
        rate_limiter: Optional[RateLimiter] = None,
        layers: Optional[List[BaseAccessLayer]] = None,
        audit_grants: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the service

        Args:
            repository: Data source shared by all layers
            audit_logger: Audit sink, auditing is off when None
            rate_limiter: Failed-attempt limiter, off when None
            layers: Layer list in evaluation order, defaults to the four
                built-in layers
            audit_grants: Also audit granted decisions,
                defaults to AUDIT_LOG_GRANTS
            timeout: Seconds allowed per check,
                defaults to ACCESS_CHECK_TIMEOUT_SECONDS
        """
        self.repository = repository
        self.audit_logger = audit_logger
        self.rate_limiter = rate_limiter

        if layers is None:
            self.key_layer = AccessKeyLayer(repository)
            layers = [
                OwnerLayer(repository),
                GroupLayer(repository),
                self.key_layer,
                PublicLayer(repository),
            ]
        else:
            # Key-only operations share the orchestrated key layer when there is one
            key_layers = [layer for layer in layers if isinstance(layer, AccessKeyLayer)]
            self.key_layer = key_layers[0] if key_layers else AccessKeyLayer(repository)

        self.layers = list(layers)
        self.audit_grants = settings.AUDIT_LOG_GRANTS if audit_grants is None else audit_grants
        self.timeout = settings.ACCESS_CHECK_TIMEOUT_SECONDS if timeout is None else timeout

    async def check_access(
        self,
        context: AccessContext,
        permission: Permission,
        timeout: Optional[float] = None,
    ) -> AccessDecision:
        """
        Decide whether a request may use a resource

        Args:
            context: Request context
            permission: Requested permission
            timeout: Seconds allowed, defaults to the service timeout

        Returns:
            Granting decision, or the last layer's denial

        Raises:
            UnauthorizedException: No credentials and resource not public
            RateLimitExceededException: Client IP is blocked
            AccessException: Key lifecycle and storage errors
        """
        return await self._check(context, permission, timeout)

    async def require_permission(
        self,
        context: AccessContext,
        permission: Permission,
        timeout: Optional[float] = None,
    ) -> AccessDecision:
        """
        Like check_access, but a denial raises ForbiddenException

        Raises:
            ForbiddenException: If no layer grants the permission
        """
        decision = await self._check(context, permission, timeout, audit_denial=False)

        if not decision.allows(permission):
            error = ForbiddenException(decision.reason, decision.layer.display_name)
            await self._audit(
                AuditLogEntry.from_error(context, permission, error, decision.layer)
            )
            raise error

        return decision

    async def check_group_access(
        self,
        user_id: str,
        group_id: int,
        permission: Permission,
    ) -> bool:
        """Whether the user's role in the group covers the permission"""
        role = await self._with_timeout(
            self.repository.get_user_role(group_id, user_id), None
        )
        return role is not None and role.to_permission().includes(permission)

    async def check_key_access(
        self,
        key: str,
        resource_type: ResourceType,
        resource_id: int,
        ip_address: Optional[str] = None,
    ) -> bool:
        """
        Whether an access key grants read access to a resource

        Raises:
            AccessException: On key lifecycle errors
        """
        context = AccessContext(
            access_key=key,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
        )
        decision = await self._guarded(
            context,
            Permission.READ,
            lambda: self.key_layer.evaluate(context, Permission.READ),
            None,
        )
        return decision is not None and decision.granted

    async def batch_check_access(
        self,
        context: AccessContext,
        resources: Sequence[Tuple[ResourceType, int]],
        permission: Permission,
    ) -> List[AccessDecision]:
        """
        Check the same requester against several resources

        Resources are checked one after another and the decisions keep
        the input order. The first error aborts the batch.
        """
        decisions = []
        for resource_type, resource_id in resources:
            decision = await self.check_access(
                context.for_resource(resource_type, resource_id), permission
            )
            decisions.append(decision)
        return decisions

    async def get_effective_permission(
        self,
        context: AccessContext,
        timeout: Optional[float] = None,
    ) -> Optional[Permission]:
        """
        Highest permission any layer grants, or None

        Denials are not audited since no specific permission was
        requested. Key errors are audited and counted like in check_access.
        """
        try:
            return await self._guarded(
                context, Permission.READ, lambda: self._highest_permission(context), timeout
            )
        except UnauthorizedException:
            return None

    async def consume_download(
        self,
        key: str,
        resource_type: ResourceType,
        resource_id: int,
        ip_address: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Count one download of a resource against an access key

        Args:
            key: Access key presented by the client
            resource_type: Type of the downloaded resource
            resource_id: ID of the downloaded resource
            ip_address: Client IP for rate limiting and auditing
            timeout: Seconds allowed, defaults to the service timeout

        Returns:
            New download count

        Raises:
            ForbiddenException: If the key does not grant download on the resource
            DownloadLimitExceededException: If the limit is reached,
                including when a concurrent download took the last slot
            AccessException: Other key lifecycle and storage errors
        """
        context = AccessContext(
            access_key=key,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
        )
        return await self._guarded(
            context, Permission.DOWNLOAD, lambda: self._consume(context), timeout
        )

    async def is_owner(self, user_id: str, resource_type: ResourceType, resource_id: int) -> bool:
        owner_id = await self._with_timeout(
            self.repository.get_owner(resource_type, resource_id), None
        )
        return owner_id is not None and owner_id == user_id

    async def is_public(self, resource_type: ResourceType, resource_id: int) -> bool:
        return await self._with_timeout(
            self.repository.is_resource_public(resource_type, resource_id), None
        )

    async def can_read(self, context: AccessContext) -> bool:
        return (await self.check_access(context, Permission.READ)).granted

    async def can_download(self, context: AccessContext) -> bool:
        return (await self.check_access(context, Permission.DOWNLOAD)).granted

    async def can_edit(self, context: AccessContext) -> bool:
        return (await self.check_access(context, Permission.EDIT)).granted

    async def can_delete(self, context: AccessContext) -> bool:
        return (await self.check_access(context, Permission.DELETE)).granted

    async def can_admin(self, context: AccessContext) -> bool:
        return (await self.check_access(context, Permission.ADMIN)).granted

    async def _highest_permission(self, context: AccessContext) -> Optional[Permission]:
        for permission in sorted(Permission, reverse=True):
            decision = await self._evaluate(context, permission)
            if decision.allows(permission):
                return permission
        return None

    async def _consume(self, context: AccessContext) -> int:
        key_data = await self.key_layer.load_valid_key(context.access_key)
        decision = await self.key_layer.decide(key_data, context, Permission.DOWNLOAD)

        if not decision.allows(Permission.DOWNLOAD):
            raise ForbiddenException(decision.reason, decision.layer.display_name)

        new_count = await self.repository.increment_access_key_usage(key_data.id)
        if new_count is None:
            limit = key_data.max_downloads or 0
            raise DownloadLimitExceededException(mask_key(context.access_key), limit, limit)

        logger.info(
            f"Access key {mask_key(context.access_key)} download {new_count} recorded "
            f"for {context.resource_type}:{context.resource_id}"
        )
        return new_count

    async def _guarded(
        self,
        context: AccessContext,
        permission: Permission,
        operation: Callable[[], Awaitable[Any]],
        timeout: Optional[float],
    ) -> Any:
        """Run an operation behind the IP limiter and timeout, auditing its errors"""
        try:
            if self.rate_limiter is not None and context.ip_address:
                await self.rate_limiter.check(context.ip_address)
            return await self._with_timeout(operation(), timeout)
        except AccessException as e:
            await self._handle_error(context, permission, e)
            raise

    async def _check(
        self,
        context: AccessContext,
        permission: Permission,
        timeout: Optional[float],
        audit_denial: bool = True,
    ) -> AccessDecision:
        decision = await self._guarded(
            context, permission, lambda: self._evaluate(context, permission), timeout
        )

        if decision.allows(permission):
            logger.debug(decision.summary())
            if self.audit_grants:
                await self._audit(AuditLogEntry.from_decision(decision))
        else:
            logger.info(
                f"{decision.summary()} "
                f"({context.resource_type}:{context.resource_id}, requested {permission})"
            )
            await self._record_failure(context)
            if audit_denial:
                await self._audit(AuditLogEntry.from_decision(decision))

        return decision

    async def _evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> AccessDecision:
        last_denial: Optional[AccessDecision] = None

        for layer in self.layers:
            decision = await layer.evaluate(context, permission)
            if decision is None:
                continue
            if decision.allows(permission):
                return decision
            last_denial = decision

        if last_denial is None:
            raise UnauthorizedException("No credentials that could grant access were provided")

        if (
            context.is_anonymous
            and last_denial.layer == AccessLayer.PUBLIC
            and last_denial.reason == NOT_PUBLIC_REASON
        ):
            raise UnauthorizedException("Sign in or provide an access key to view this resource")

        return last_denial

    async def _with_timeout(self, awaitable: Awaitable[Any], timeout: Optional[float]) -> Any:
        seconds = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, seconds)
        except asyncio.TimeoutError:
            logger.error(f"Access check exceeded {seconds}s")
            raise DatabaseException(f"storage timed out after {seconds} seconds")

    async def _handle_error(
        self,
        context: AccessContext,
        permission: Permission,
        error: AccessException,
    ) -> None:
        if error.is_security_event():
            logger.warning(f"Security event on {context.resource_type}:{context.resource_id}: {error}")
            layer = None
            if context.has_access_key and not isinstance(error, RateLimitExceededException):
                layer = AccessLayer.ACCESS_KEY
            await self._audit(AuditLogEntry.from_error(context, permission, error, layer))
        elif error.status_code >= 500:
            logger.error(f"Access check failed: {error}")
        else:
            logger.info(f"Access check rejected: {error}")

        if isinstance(error, FAILED_ATTEMPT_ERRORS):
            await self._record_failure(context)

    async def _record_failure(self, context: AccessContext) -> None:
        if self.rate_limiter is None or not context.ip_address:
            return
        try:
            await self.rate_limiter.record_failure(context.ip_address)
        except Exception as e:
            logger.warning(f"Failed to record failed attempt for {context.ip_address}: {e}")

    async def _audit(self, entry: AuditLogEntry) -> None:
        if self.audit_logger is None:
            return
        try:
            await self.audit_logger.append(entry)
        except Exception as e:
            logger.warning(f"Failed to write audit entry: {e}")


def get_access_control_service(db: AsyncSession) -> AccessControlService:
    """
    Build an access control service for a request-scoped session

    Args:
        db: Database session for the request

    Returns:
        AccessControlService wired with the SQL repository and the
        configured audit logger and rate limiter
    """
    from access_control.db.repository import SQLAccessRepository
    from access_control.services.audit import get_audit_logger
    from access_control.services.rate_limit import get_rate_limiter

    return AccessControlService(
        repository=SQLAccessRepository(db),
        audit_logger=get_audit_logger() if settings.AUDIT_ENABLED else None,
        rate_limiter=get_rate_limiter() if settings.RATE_LIMIT_ENABLED else None,
    )
