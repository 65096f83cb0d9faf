"""
Owner Layer
Full control for the user who owns a resource
"""

from typing import Optional

from access_control.core.permissions import Permission
from access_control.models.access import AccessContext, AccessDecision, AccessLayer
from access_control.services.layers.base import BaseAccessLayer


class OwnerLayer(BaseAccessLayer):
    layer = AccessLayer.OWNER

    async def evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> Optional[AccessDecision]:
        if context.user_id is None:
            return None

        owner_id = await self.repository.get_owner(
            context.resource_type, context.resource_id
        )

        if owner_id is not None and owner_id == context.user_id:
            return self._grant(context, Permission.ADMIN, permission, "User owns this resource")

        return self._deny(context, permission, "User is not the owner")
