"""
SQL Access Repository
AccessRepository backed by PostgreSQL through SQLAlchemy
"""

from typing import Any, Dict, Optional, Type

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.exceptions import (
    AccessException,
    DatabaseException,
    InternalException,
    NotFoundException,
)
from access_control.core.logging import get_logger
from access_control.core.permissions import GroupRole, Permission, ResourceType
from access_control.db.models import (
    AccessKey,
    AccessKeyPermission,
    File,
    Folder,
    GroupMember,
    Image,
    ResourceMixin,
    Video,
)
from access_control.models.access import AccessKeyData, mask_key
from access_control.services.repository import AccessRepository

logger = get_logger(__name__)

RESOURCE_MODELS: Dict[ResourceType, Type[ResourceMixin]] = {
    ResourceType.VIDEO: Video,
    ResourceType.IMAGE: Image,
    ResourceType.FILE: File,
    ResourceType.FOLDER: Folder,
}


class SQLAccessRepository(AccessRepository):
    """
    Access repository on a request-scoped AsyncSession

    Every SQLAlchemy error is converted to DatabaseException.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, statement: Any) -> Any:
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            logger.error(f"Access query failed: {e}")
            raise DatabaseException(str(e))

    async def is_resource_public(self, resource_type: ResourceType, resource_id: int) -> bool:
        model = RESOURCE_MODELS[resource_type]
        result = await self._execute(select(model.is_public).where(model.id == resource_id))
        is_public = result.scalar_one_or_none()

        if is_public is None:
            raise NotFoundException(resource_type.value, resource_id)

        return bool(is_public)

    async def get_owner(self, resource_type: ResourceType, resource_id: int) -> Optional[str]:
        model = RESOURCE_MODELS[resource_type]
        result = await self._execute(select(model.owner_id).where(model.id == resource_id))
        return result.scalar_one_or_none()

    async def get_group_id(self, resource_type: ResourceType, resource_id: int) -> Optional[int]:
        model = RESOURCE_MODELS[resource_type]
        result = await self._execute(select(model.group_id).where(model.id == resource_id))
        return result.scalar_one_or_none()

    async def is_group_member(self, group_id: int, user_id: str) -> bool:
        result = await self._execute(
            select(GroupMember.id).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def get_user_role(self, group_id: int, user_id: str) -> Optional[GroupRole]:
        result = await self._execute(
            select(GroupMember.role).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            return None

        try:
            return GroupRole.parse(role)
        except ValueError as e:
            raise InternalException(str(e))

    async def get_access_key(self, key: str) -> Optional[AccessKeyData]:
        result = await self._execute(select(AccessKey).where(AccessKey.code == key))
        row = result.scalar_one_or_none()
        if row is None:
            return None

        try:
            permission_level = (
                Permission.parse(row.permission_level) if row.permission_level else None
            )
        except AccessException as e:
            logger.error(f"Stored permission for key {mask_key(key)} is invalid: {e.message}")
            raise InternalException(e.message)

        return AccessKeyData(
            id=row.id,
            key=row.code,
            description=row.description,
            permission_level=permission_level,
            group_id=row.access_group_id,
            share_all_group_resources=row.share_all_group_resources,
            expires_at=row.expires_at,
            max_downloads=row.max_downloads,
            current_downloads=row.current_downloads,
            is_active=row.is_active,
        )

    async def resource_belongs_to_group(
        self,
        resource_type: ResourceType,
        resource_id: int,
        group_id: int,
    ) -> bool:
        model = RESOURCE_MODELS[resource_type]
        result = await self._execute(
            select(model.id).where(model.id == resource_id, model.group_id == group_id)
        )
        return result.scalar_one_or_none() is not None

    async def access_key_grants_resource(
        self,
        key_id: int,
        resource_type: ResourceType,
        resource_id: int,
    ) -> bool:
        result = await self._execute(
            select(AccessKeyPermission.id)
            .where(
                AccessKeyPermission.access_key_id == key_id,
                AccessKeyPermission.resource_type == resource_type.value,
                AccessKeyPermission.resource_id == resource_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def increment_access_key_usage(self, key_id: int) -> Optional[int]:
        statement = (
            update(AccessKey)
            .where(
                AccessKey.id == key_id,
                or_(
                    AccessKey.max_downloads.is_(None),
                    AccessKey.current_downloads < AccessKey.max_downloads,
                ),
            )
            .values(
                current_downloads=AccessKey.current_downloads + 1,
                last_accessed_at=func.now(),
            )
            .returning(AccessKey.current_downloads)
        )
        result = await self._execute(statement)
        new_count = result.scalar_one_or_none()

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseException(str(e))

        if new_count is None:
            logger.info(f"Download limit guard rejected increment for key {key_id}")
        return new_count
