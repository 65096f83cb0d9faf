"""
Access Control Services
Layer evaluation, auditing and rate limiting
"""

from access_control.services.access_control import (
    AccessControlService,
    get_access_control_service,
)
from access_control.services.audit import AuditLogger, SQLAuditLogger, get_audit_logger
from access_control.services.rate_limit import (
    AttemptStore,
    InMemoryAttemptStore,
    RateLimiter,
    SQLAttemptStore,
    get_rate_limiter,
)
from access_control.services.repository import AccessRepository

__all__ = [
    # Main service
    "AccessControlService",
    "get_access_control_service",
    # Data access
    "AccessRepository",
    # Audit
    "AuditLogger",
    "SQLAuditLogger",
    "get_audit_logger",
    # Rate limiting
    "AttemptStore",
    "InMemoryAttemptStore",
    "SQLAttemptStore",
    "RateLimiter",
    "get_rate_limiter",
]
