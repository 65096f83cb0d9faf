"""
Access Layers
Independent trust sources evaluated by the access control service
"""

from access_control.services.layers.access_key import AccessKeyLayer
from access_control.services.layers.base import BaseAccessLayer
from access_control.services.layers.group import GroupLayer
from access_control.services.layers.owner import OwnerLayer
from access_control.services.layers.public import NOT_PUBLIC_REASON, PublicLayer

__all__ = [
    "BaseAccessLayer",
    "OwnerLayer",
    "GroupLayer",
    "AccessKeyLayer",
    "PublicLayer",
    "NOT_PUBLIC_REASON",
]
