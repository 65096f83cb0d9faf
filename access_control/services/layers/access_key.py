"""
Access Key Layer
Share-key access with expiry, download limits and group scope
"""

from typing import Optional

from access_control.core.config import settings
from access_control.core.exceptions import (
    DownloadLimitExceededException,
    ExpiredAccessKeyException,
    InactiveAccessKeyException,
    InvalidAccessKeyException,
)
from access_control.core.logging import get_logger
from access_control.core.permissions import Permission
from access_control.models.access import (
    AccessContext,
    AccessDecision,
    AccessKeyData,
    AccessLayer,
    mask_key,
)
from access_control.services.layers.base import BaseAccessLayer
from access_control.services.repository import AccessRepository

logger = get_logger(__name__)


class AccessKeyLayer(BaseAccessLayer):
    """
    Evaluates the access key attached to a request

    Key lifecycle problems (unknown, inactive, expired, exhausted)
    are raised rather than returned as denials so the caller aborts.
    """

    layer = AccessLayer.ACCESS_KEY

    def __init__(
        self,
        repository: AccessRepository,
        default_permission: Optional[Permission] = None,
    ):
        """
        Initialize the layer

        Args:
            repository: Data source for keys and grants
            default_permission: Ceiling for keys without their own
                permission level, defaults to ACCESS_KEY_DEFAULT_PERMISSION
        """
        super().__init__(repository)
        self.default_permission = default_permission or Permission.parse(
            settings.ACCESS_KEY_DEFAULT_PERMISSION
        )

    async def load_valid_key(self, key: str) -> AccessKeyData:
        """
        Load a key and verify it can still be used

        Raises:
            InvalidAccessKeyException: Key does not exist
            InactiveAccessKeyException: Key was deactivated
            ExpiredAccessKeyException: Key is past expires_at
            DownloadLimitExceededException: Key used up its downloads
        """
        key_data = await self.repository.get_access_key(key)

        if key_data is None:
            logger.warning(f"Unknown access key {mask_key(key)}")
            raise InvalidAccessKeyException(mask_key(key))

        if not key_data.is_active:
            raise InactiveAccessKeyException(mask_key(key))

        if key_data.is_expired():
            raise ExpiredAccessKeyException(mask_key(key), key_data.expires_at)

        if key_data.is_limit_exceeded():
            raise DownloadLimitExceededException(
                mask_key(key), key_data.max_downloads, key_data.current_downloads
            )

        return key_data

    def effective_permission(self, key_data: AccessKeyData) -> Permission:
        return key_data.permission_level or self.default_permission

    async def evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> Optional[AccessDecision]:
        if context.access_key is None:
            return None

        key_data = await self.load_valid_key(context.access_key)
        return await self.decide(key_data, context, permission)

    async def decide(
        self,
        key_data: AccessKeyData,
        context: AccessContext,
        permission: Permission,
    ) -> AccessDecision:
        """Decide for an already validated key"""
        key_permission = self.effective_permission(key_data)

        if await self._covers_resource(key_data, context):
            if not key_permission.includes(permission):
                return self._deny(
                    context,
                    permission,
                    f"Access key grants {key_permission} permission, but {permission} was requested",
                )
            return self._grant(
                context, key_permission, permission, "Valid access key for this resource"
            )

        return self._deny(
            context, permission, "Access key does not grant permission to this resource"
        )

    async def _covers_resource(self, key_data: AccessKeyData, context: AccessContext) -> bool:
        if key_data.is_group_key:
            in_group = await self.repository.resource_belongs_to_group(
                context.resource_type, context.resource_id, key_data.group_id
            )
            if in_group:
                return True

        return await self.repository.access_key_grants_resource(
            key_data.id, context.resource_type, context.resource_id
        )
