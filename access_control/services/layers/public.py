"""
Public Layer
Read-only access to resources marked as public
"""

from typing import Optional

from access_control.core.permissions import Permission
from access_control.models.access import AccessContext, AccessDecision, AccessLayer
from access_control.services.layers.base import BaseAccessLayer

NOT_PUBLIC_REASON = "Resource is not marked as public"


class PublicLayer(BaseAccessLayer):
    """Grants Read on public resources, nothing more"""

    layer = AccessLayer.PUBLIC

    async def evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> Optional[AccessDecision]:
        is_public = await self.repository.is_resource_public(
            context.resource_type, context.resource_id
        )

        if not is_public:
            return self._deny(context, permission, NOT_PUBLIC_REASON)

        if permission > Permission.READ:
            return self._deny(
                context,
                permission,
                f"Public resources only grant read access, but {permission} was requested",
            )

        return self._grant(
            context, Permission.READ, permission, "Resource is publicly accessible"
        )
