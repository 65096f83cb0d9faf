"""
Access Check API Routes
Decision lookup, effective permission and download accounting
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from access_control.api.dependencies import (
    ACCESS_KEY_QUERY_PARAM,
    build_access_context,
    get_access_service,
    get_client_ip,
    get_current_user_id_optional,
)
from access_control.core.logging import get_logger
from access_control.core.permissions import Permission, ResourceType
from access_control.services.access_control import AccessControlService

logger = get_logger(__name__)
router = APIRouter()


class AccessCheckResponse(BaseModel):
    """Response model for an access check"""
    granted: bool
    layer: str
    permission_requested: str
    permission_granted: Optional[str] = None
    reason: str


class EffectivePermissionResponse(BaseModel):
    """Response model for the effective permission lookup"""
    resource_type: str
    resource_id: int
    permission: Optional[str] = Field(default=None, description="Highest granted level")


class DownloadResponse(BaseModel):
    """Response model for a recorded download"""
    current_downloads: int


@router.get("/{resource_type}/{resource_id}", response_model=AccessCheckResponse)
async def check_access(
    request: Request,
    resource_type: str,
    resource_id: int,
    permission: str = Query("read", description="read, download, edit, delete or admin"),
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    service: AccessControlService = Depends(get_access_service),
):
    """
    Check access to a resource

    Returns the decision for granted and denied requests alike.
    Key errors and missing credentials are returned as errors.
    """
    context = build_access_context(
        request, ResourceType.parse(resource_type), resource_id, user_id
    )
    requested = Permission.parse(permission)

    decision = await service.check_access(context, requested)

    return AccessCheckResponse(
        granted=decision.granted,
        layer=decision.layer.value,
        permission_requested=decision.permission_requested.as_str(),
        permission_granted=(
            decision.permission_granted.as_str() if decision.permission_granted else None
        ),
        reason=decision.reason,
    )


@router.get("/{resource_type}/{resource_id}/effective", response_model=EffectivePermissionResponse)
async def get_effective_permission(
    request: Request,
    resource_type: str,
    resource_id: int,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    service: AccessControlService = Depends(get_access_service),
):
    """Highest permission the requester holds on a resource"""
    parsed_type = ResourceType.parse(resource_type)
    context = build_access_context(request, parsed_type, resource_id, user_id)

    permission = await service.get_effective_permission(context)

    return EffectivePermissionResponse(
        resource_type=parsed_type.value,
        resource_id=resource_id,
        permission=permission.as_str() if permission else None,
    )


@router.post("/{resource_type}/{resource_id}/downloads", response_model=DownloadResponse)
async def record_download(
    request: Request,
    resource_type: str,
    resource_id: int,
    access_code: str = Query(..., alias=ACCESS_KEY_QUERY_PARAM),
    service: AccessControlService = Depends(get_access_service),
):
    """Count one download of a resource against an access key"""
    current = await service.consume_download(
        access_code,
        ResourceType.parse(resource_type),
        resource_id,
        ip_address=get_client_ip(request),
    )
    return DownloadResponse(current_downloads=current)
