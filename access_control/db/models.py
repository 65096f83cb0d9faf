"""
SQLAlchemy Database Models
Resources, group memberships, access keys and the audit trail
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from access_control.db.base import Base, IntegerIDMixin, TimestampMixin


class ResourceMixin(IntegerIDMixin, TimestampMixin):
    """Columns every protected resource table shares"""

    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    group_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Video(ResourceMixin, Base):
    __tablename__ = "videos"

    title: Mapped[str] = mapped_column(String(512), nullable=False)


class Image(ResourceMixin, Base):
    __tablename__ = "images"

    title: Mapped[str] = mapped_column(String(512), nullable=False)


class File(ResourceMixin, Base):
    __tablename__ = "files"

    title: Mapped[str] = mapped_column(String(512), nullable=False)


class Folder(ResourceMixin, Base):
    __tablename__ = "folders"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class GroupMember(IntegerIDMixin, TimestampMixin, Base):
    """Membership of a user in a group"""

    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    group_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")


class AccessKey(IntegerIDMixin, TimestampMixin, Base):
    """Share key granting anonymous access"""

    __tablename__ = "access_codes"

    code: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    permission_level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    access_group_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    share_all_group_resources: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_downloads: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class AccessKeyPermission(IntegerIDMixin, Base):
    """Explicit grant of one resource to an access key"""

    __tablename__ = "access_key_permissions"
    __table_args__ = (
        UniqueConstraint(
            "access_key_id", "resource_type", "resource_id", name="uq_access_key_resource"
        ),
    )

    access_key_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("access_codes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[int] = mapped_column(Integer, nullable=False)


class AuditLog(IntegerIDMixin, Base):
    """Append-only access audit record"""

    __tablename__ = "access_audit_log"

    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    access_key: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True, index=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[int] = mapped_column(Integer, nullable=False)
    permission_requested: Mapped[str] = mapped_column(String(20), nullable=False)
    permission_granted: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    access_granted: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    access_layer: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )


class FailedAttempt(Base):
    """Failed access attempts per IP within the current window"""

    __tablename__ = "failed_access_attempts"

    ip_address: Mapped[str] = mapped_column(String(45), primary_key=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
