"""
Base Access Layer
Abstract contract shared by every trust source
"""

from abc import ABC, abstractmethod
from typing import Optional

from access_control.core.logging import get_logger
from access_control.core.permissions import Permission
from access_control.models.access import AccessContext, AccessDecision, AccessLayer
from access_control.services.repository import AccessRepository

logger = get_logger(__name__)


class BaseAccessLayer(ABC):
    """
    Abstract base class for access layers

    A layer returns None when it does not apply to the request,
    a decision when it does, and raises on credential errors.
    """

    layer: AccessLayer

    def __init__(self, repository: AccessRepository):
        """
        Initialize the layer

        Args:
            repository: Data source for ownership, groups and keys
        """
        self.repository = repository

    @abstractmethod
    async def evaluate(
        self,
        context: AccessContext,
        permission: Permission,
    ) -> Optional[AccessDecision]:
        """
        Evaluate the request against this layer

        Args:
            context: Request context
            permission: Requested permission

        Returns:
            AccessDecision, or None if the layer was skipped

        Raises:
            AccessException: On invalid credentials or storage failures
        """

    def _grant(
        self,
        context: AccessContext,
        granted: Permission,
        requested: Permission,
        reason: str,
    ) -> AccessDecision:
        logger.debug(
            f"{self.layer.value} granted {granted} on "
            f"{context.resource_type}:{context.resource_id}"
        )
        return AccessDecision.grant(self.layer, granted, requested, reason, context)

    def _deny(
        self,
        context: AccessContext,
        requested: Permission,
        reason: str,
    ) -> AccessDecision:
        logger.debug(
            f"{self.layer.value} denied {requested} on "
            f"{context.resource_type}:{context.resource_id}: {reason}"
        )
        return AccessDecision.deny(self.layer, requested, reason, context)
