"""
Access Models
Request context, layer decisions and access key data
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from access_control.core.permissions import Permission, ResourceType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read from storage"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def mask_key(key: Optional[str]) -> Optional[str]:
    """Shorten an access key for logs and audit records"""
    if key is None:
        return None
    if len(key) <= 8:
        return key[:2] + "***"
    return f"{key[:4]}...{key[-4:]}"


class AccessLayer(str, Enum):
    """Trust source that produced a decision"""

    PUBLIC = "public"
    ACCESS_KEY = "access_key"
    GROUP = "group"
    OWNER = "owner"

    @property
    def priority(self) -> int:
        return _LAYER_PRIORITY[self]

    @property
    def display_name(self) -> str:
        return _LAYER_NAMES[self]

    def __str__(self) -> str:
        return self.display_name


_LAYER_PRIORITY = {
    AccessLayer.PUBLIC: 1,
    AccessLayer.ACCESS_KEY: 2,
    AccessLayer.GROUP: 3,
    AccessLayer.OWNER: 4,
}

_LAYER_NAMES = {
    AccessLayer.PUBLIC: "Public Access",
    AccessLayer.ACCESS_KEY: "Access Key",
    AccessLayer.GROUP: "Group Membership",
    AccessLayer.OWNER: "Ownership",
}


class AccessContext(BaseModel):
    """Everything known about one authorization request"""

    user_id: Optional[str] = Field(default=None, description="Authenticated user ID")
    access_key: Optional[str] = Field(default=None, description="Share key supplied with the request")
    resource_type: ResourceType = Field(description="Type of the requested resource")
    resource_id: int = Field(description="ID of the requested resource")
    ip_address: Optional[str] = Field(default=None, description="Client IP address")
    user_agent: Optional[str] = Field(default=None, description="Client user agent")
    referer: Optional[str] = Field(default=None, description="HTTP referer")
    requested_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def has_access_key(self) -> bool:
        return self.access_key is not None

    @property
    def is_anonymous(self) -> bool:
        return not self.is_authenticated and not self.has_access_key

    def for_resource(self, resource_type: ResourceType, resource_id: int) -> "AccessContext":
        """Same requester, different resource"""
        return self.model_copy(
            update={"resource_type": resource_type, "resource_id": resource_id}
        )


class AccessDecision(BaseModel):
    """
    Outcome of an access check.

    ``permission_granted`` is set exactly when ``granted`` is true.
    """

    granted: bool
    layer: AccessLayer
    permission_requested: Permission
    permission_granted: Optional[Permission] = None
    reason: str = Field(min_length=1)
    context: AccessContext
    timestamp: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True

    @model_validator(mode="after")
    def check_grant_consistency(self) -> "AccessDecision":
        if self.granted and self.permission_granted is None:
            raise ValueError("granted decision must carry permission_granted")
        if not self.granted and self.permission_granted is not None:
            raise ValueError("denied decision must not carry permission_granted")
        return self

    @classmethod
    def grant(
        cls,
        layer: AccessLayer,
        permission: Permission,
        requested: Permission,
        reason: str,
        context: AccessContext,
    ) -> "AccessDecision":
        return cls(
            granted=True,
            layer=layer,
            permission_requested=requested,
            permission_granted=permission,
            reason=reason,
            context=context,
        )

    @classmethod
    def deny(
        cls,
        layer: AccessLayer,
        requested: Permission,
        reason: str,
        context: AccessContext,
    ) -> "AccessDecision":
        return cls(
            granted=False,
            layer=layer,
            permission_requested=requested,
            reason=reason,
            context=context,
        )

    def allows(self, permission: Permission) -> bool:
        """Whether this decision covers the given permission"""
        return (
            self.granted
            and self.permission_granted is not None
            and self.permission_granted.includes(permission)
        )

    def summary(self) -> str:
        if self.granted:
            return (
                f"Access granted via {self.layer.display_name} "
                f"with {self.permission_granted} permission: {self.reason}"
            )
        return f"Access denied at {self.layer.display_name}: {self.reason}"


class AccessKeyData(BaseModel):
    """Access key as loaded from storage"""

    id: int
    key: str
    description: Optional[str] = None
    permission_level: Optional[Permission] = None
    group_id: Optional[int] = None
    share_all_group_resources: bool = False
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    current_downloads: int = 0
    is_active: bool = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or utc_now()
        return as_utc(self.expires_at) < now

    def is_limit_exceeded(self) -> bool:
        return self.max_downloads is not None and self.current_downloads >= self.max_downloads

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.is_active and not self.is_expired(now) and not self.is_limit_exceeded()

    def remaining_downloads(self) -> Optional[int]:
        """Downloads left, or None when unlimited"""
        if self.max_downloads is None:
            return None
        return max(self.max_downloads - self.current_downloads, 0)

    @property
    def is_group_key(self) -> bool:
        return self.group_id is not None and self.share_all_group_resources
