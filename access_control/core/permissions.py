"""
Permission Model
Ordered permission levels, group roles and resource types
"""

from enum import Enum, IntEnum
from typing import Any, List

from access_control.core.exceptions import (
    InvalidPermissionException,
    InvalidResourceTypeException,
)


class Permission(IntEnum):
    """
    Permission levels, ordered from weakest to strongest.

    A higher level implies every lower one, so ``Edit`` also
    allows ``Download`` and ``Read``.
    """

    READ = 1
    DOWNLOAD = 2
    EDIT = 3
    DELETE = 4
    ADMIN = 5

    def includes(self, other: "Permission") -> bool:
        """Check whether this level covers the other level"""
        return self >= other

    def included_permissions(self) -> List["Permission"]:
        """All levels covered by this one, ascending"""
        return [p for p in Permission if p <= self]

    def as_str(self) -> str:
        return self.name.lower()

    @property
    def description(self) -> str:
        return _PERMISSION_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: Any) -> "Permission":
        """
        Parse a permission token such as ``"download"``

        Args:
            value: Token, case-insensitive

        Returns:
            Matching Permission

        Raises:
            InvalidPermissionException: If the token is not recognized
        """
        if isinstance(value, Permission):
            return value
        if not isinstance(value, str):
            raise InvalidPermissionException(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise InvalidPermissionException(value)

    @classmethod
    def default(cls) -> "Permission":
        return cls.READ

    def __str__(self) -> str:
        return self.as_str()

    def __format__(self, format_spec: str) -> str:
        return format(self.as_str(), format_spec)


_PERMISSION_DESCRIPTIONS = {
    Permission.READ: "View only",
    Permission.DOWNLOAD: "View and download",
    Permission.EDIT: "View, download, and edit",
    Permission.DELETE: "View, download, edit, and delete",
    Permission.ADMIN: "Full administrative control",
}


class GroupRole(str, Enum):
    """Membership role inside a group"""

    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"

    def to_permission(self) -> Permission:
        """Permission ceiling granted by this role"""
        return _ROLE_PERMISSIONS[self]

    @classmethod
    def parse(cls, value: str) -> "GroupRole":
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid group role: {value}")

    def __str__(self) -> str:
        return self.value


_ROLE_PERMISSIONS = {
    GroupRole.OWNER: Permission.ADMIN,
    GroupRole.ADMIN: Permission.ADMIN,
    GroupRole.EDITOR: Permission.EDIT,
    GroupRole.CONTRIBUTOR: Permission.DOWNLOAD,
    GroupRole.VIEWER: Permission.READ,
}


class ResourceType(str, Enum):
    """Kinds of resources that can be protected"""

    VIDEO = "video"
    IMAGE = "image"
    FILE = "file"
    FOLDER = "folder"

    @property
    def table_name(self) -> str:
        return f"{self.value}s"

    @classmethod
    def parse(cls, value: Any) -> "ResourceType":
        if isinstance(value, ResourceType):
            return value
        if not isinstance(value, str):
            raise InvalidResourceTypeException(value)
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidResourceTypeException(value)

    def __str__(self) -> str:
        return self.value
