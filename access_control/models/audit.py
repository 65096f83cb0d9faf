"""
Audit Models
Audit log entries and aggregate statistics
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from access_control.core.exceptions import AccessException
from access_control.core.permissions import Permission, ResourceType
from access_control.models.access import (
    AccessContext,
    AccessDecision,
    AccessLayer,
    mask_key,
    utc_now,
)


class AuditLogEntry(BaseModel):
    """Append-only record of one access attempt"""

    user_id: Optional[str] = None
    access_key: Optional[str] = Field(default=None, description="Masked access key")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    resource_type: ResourceType
    resource_id: int
    permission_requested: Permission
    permission_granted: Optional[Permission] = None
    access_granted: bool
    access_layer: Optional[AccessLayer] = None
    reason: str
    error_code: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_decision(cls, decision: AccessDecision) -> "AuditLogEntry":
        context = decision.context
        return cls(
            user_id=context.user_id,
            access_key=mask_key(context.access_key),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            resource_type=context.resource_type,
            resource_id=context.resource_id,
            permission_requested=decision.permission_requested,
            permission_granted=decision.permission_granted,
            access_granted=decision.granted,
            access_layer=decision.layer,
            reason=decision.reason,
            created_at=decision.timestamp,
        )

    @classmethod
    def from_error(
        cls,
        context: AccessContext,
        permission: Permission,
        error: AccessException,
        layer: Optional[AccessLayer] = None,
    ) -> "AuditLogEntry":
        return cls(
            user_id=context.user_id,
            access_key=mask_key(context.access_key),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            resource_type=context.resource_type,
            resource_id=context.resource_id,
            permission_requested=permission,
            access_granted=False,
            access_layer=layer,
            reason=error.user_message(),
            error_code=error.code,
        )


class AuditStats(BaseModel):
    """Grant/deny counts for a user or resource"""

    total_attempts: int = 0
    granted_count: int = 0
    denied_count: int = 0

    @property
    def denial_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.denied_count / self.total_attempts

    @property
    def is_suspicious(self) -> bool:
        """Mostly denied and more than a handful of denials"""
        return self.denial_rate > 0.5 and self.denied_count > 10
