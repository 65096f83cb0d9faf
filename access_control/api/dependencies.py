"""
API Dependencies
Request identity, access context and permission guards for routes
"""

from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from access_control.core.exceptions import NotFoundException, UnauthorizedException
from access_control.core.permissions import Permission, ResourceType
from access_control.core.security import get_user_id_from_token
from access_control.db.session import get_db_session
from access_control.models.access import AccessContext, AccessDecision
from access_control.services.access_control import (
    AccessControlService,
    get_access_control_service,
)

ACCESS_KEY_HEADER = "X-Access-Key"
ACCESS_KEY_QUERY_PARAM = "access_code"


async def get_current_user_id_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """
    User id from the bearer token, or None for anonymous requests

    Raises:
        UnauthorizedException: If a token is present but invalid
    """
    if not authorization:
        return None

    if not authorization.startswith("Bearer "):
        raise UnauthorizedException("Invalid authorization header format")

    return get_user_id_from_token(authorization.split(" ", 1)[1])


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, preferring the first X-Forwarded-For hop"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def build_access_context(
    request: Request,
    resource_type: ResourceType,
    resource_id: int,
    user_id: Optional[str] = None,
) -> AccessContext:
    """
    Build an AccessContext from an incoming request

    Args:
        request: Incoming request
        resource_type: Type of the requested resource
        resource_id: ID of the requested resource
        user_id: Authenticated user, falls back to ``request.state.user_id``

    Returns:
        AccessContext for the request
    """
    if user_id is None:
        user_id = getattr(request.state, "user_id", None)

    access_key = request.headers.get(ACCESS_KEY_HEADER) or request.query_params.get(
        ACCESS_KEY_QUERY_PARAM
    )

    return AccessContext(
        user_id=user_id,
        access_key=access_key or None,
        resource_type=resource_type,
        resource_id=resource_id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        referer=request.headers.get("Referer"),
    )


async def get_access_service(
    db: AsyncSession = Depends(get_db_session),
) -> AccessControlService:
    """Access control service bound to the request session"""
    return get_access_control_service(db)


def require_access(
    resource_type: ResourceType,
    permission: Permission,
    id_param: str = "resource_id",
) -> Callable:
    """
    Route dependency that enforces a permission on a path resource

    Args:
        resource_type: Type of resource the route serves
        permission: Permission the route needs
        id_param: Name of the path parameter holding the resource ID

    Returns:
        Dependency returning the granting AccessDecision
    """

    async def dependency(
        request: Request,
        user_id: Optional[str] = Depends(get_current_user_id_optional),
        service: AccessControlService = Depends(get_access_service),
    ) -> AccessDecision:
        raw_id = request.path_params.get(id_param)
        try:
            resource_id = int(raw_id)
        except (TypeError, ValueError):
            raise NotFoundException(resource_type.value, raw_id)

        context = build_access_context(request, resource_type, resource_id, user_id)
        return await service.require_permission(context, permission)

    return dependency
