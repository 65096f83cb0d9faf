# API v1 routes
from fastapi import APIRouter

from access_control.api.v1 import access

router = APIRouter()

router.include_router(access.router, prefix="/access", tags=["access"])
