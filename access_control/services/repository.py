"""
Access Repository Interface
Data access operations needed by the access layers
"""

from abc import ABC, abstractmethod
from typing import Optional

from access_control.core.permissions import GroupRole, ResourceType
from access_control.models.access import AccessKeyData


class AccessRepository(ABC):
    """
    Abstract data source for access checks

    Implementations raise DatabaseException on storage failures.
    """

    @abstractmethod
    async def is_resource_public(self, resource_type: ResourceType, resource_id: int) -> bool:
        """
        Check whether a resource is publicly visible

        Raises:
            NotFoundException: If the resource does not exist
        """

    @abstractmethod
    async def get_owner(self, resource_type: ResourceType, resource_id: int) -> Optional[str]:
        """Owner user id of a resource, or None"""

    @abstractmethod
    async def get_group_id(self, resource_type: ResourceType, resource_id: int) -> Optional[int]:
        """Group a resource belongs to, or None"""

    @abstractmethod
    async def is_group_member(self, group_id: int, user_id: str) -> bool:
        pass

    @abstractmethod
    async def get_user_role(self, group_id: int, user_id: str) -> Optional[GroupRole]:
        """Role of a user in a group, or None for non-members"""

    @abstractmethod
    async def get_access_key(self, key: str) -> Optional[AccessKeyData]:
        """Load an access key, including inactive ones"""

    @abstractmethod
    async def resource_belongs_to_group(
        self,
        resource_type: ResourceType,
        resource_id: int,
        group_id: int,
    ) -> bool:
        pass

    @abstractmethod
    async def access_key_grants_resource(
        self,
        key_id: int,
        resource_type: ResourceType,
        resource_id: int,
    ) -> bool:
        """Whether an explicit per-resource grant exists for the key"""

    @abstractmethod
    async def increment_access_key_usage(self, key_id: int) -> Optional[int]:
        """
        Atomically count one download against a key

        Returns:
            New download count, or None if the key is at its limit
        """
