"""
Group Layer
Role-based access for members of a resource's group
"""

from typing import Optional

from access_control.core.permissions import Permission
from access_control.models.access import AccessContext, AccessDecision, AccessLayer
from access_control.services.layers.base import BaseAccessLayer


class GroupLayer(BaseAccessLayer):
    """
    Maps the member's role to a permission ceiling

    Applies only to authenticated users requesting a resource
    that belongs to a group.
    """

    layer = AccessLayer.GROUP

    async def evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> Optional[AccessDecision]:
        if context.user_id is None:
            return None

        group_id = await self.repository.get_group_id(
            context.resource_type, context.resource_id
        )
        if group_id is None:
            return None

        role = await self.repository.get_user_role(group_id, context.user_id)
        if role is None:
            return self._deny(
                context, permission, "User is not a member of the resource's group"
            )

        role_permission = role.to_permission()
        if not role_permission.includes(permission):
            return self._deny(
                context, permission, f"Role {role} does not grant {permission}"
            )

        return self._grant(
            context,
            role_permission,
            permission,
            f"User has {role} role in group {group_id}",
        )
