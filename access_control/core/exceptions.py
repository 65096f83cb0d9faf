"""
Access Control Exceptions
Error taxonomy for authorization checks with HTTP status mapping
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AccessException(Exception):
    """Base access control exception"""

    def __init__(
        self,
        message: str,
        code: str = "access_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def user_message(self) -> str:
        """Message safe to show to end users"""
        return self.message

    def is_security_event(self) -> bool:
        """Whether this error must always be written to the audit log"""
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.user_message(),
            "details": self.details,
            "timestamp": self.timestamp,
        }


class NotFoundException(AccessException):
    """Resource not found exception"""

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = str(resource_type)
        self.resource_id = resource_id
        super().__init__(
            message=f"{self.resource_type} {resource_id} not found",
            code="not_found",
            status_code=404,
            details={"resource_type": self.resource_type, "resource_id": resource_id},
        )

    def user_message(self) -> str:
        return f"{self.resource_type} with ID {self.resource_id} not found"


class ForbiddenException(AccessException):
    """Access denied by a layer"""

    def __init__(self, reason: str, layer: Optional[str] = None):
        self.reason = reason
        self.layer = layer
        details = {"layer": layer} if layer else {}
        super().__init__(
            message=f"Access denied at layer {layer}: {reason}",
            code="forbidden",
            status_code=403,
            details=details,
        )

    def user_message(self) -> str:
        return f"Access denied: {self.reason}"

    def is_security_event(self) -> bool:
        return True


class UnauthorizedException(AccessException):
    """No credentials that could grant access were supplied"""

    def __init__(self, reason: str = "Authentication required"):
        self.reason = reason
        super().__init__(
            message=f"Unauthorized: {reason}",
            code="unauthorized",
            status_code=401,
        )

    def user_message(self) -> str:
        return f"Authentication required: {self.reason}"


class InvalidAccessKeyException(AccessException):
    """Access key does not exist"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            message=f"Invalid access key: {key}",
            code="invalid_access_key",
            status_code=401,
        )

    def user_message(self) -> str:
        return "Invalid access key"

    def is_security_event(self) -> bool:
        return True


class ExpiredAccessKeyException(AccessException):
    """Access key is past its expiration time"""

    def __init__(self, key: str, expired_at: datetime):
        self.key = key
        self.expired_at = expired_at
        super().__init__(
            message=f"Access key {key} expired at {expired_at.isoformat()}",
            code="expired_access_key",
            status_code=401,
            details={"expired_at": expired_at.isoformat()},
        )

    def user_message(self) -> str:
        return f"Access key expired on {self.expired_at.isoformat()}"

    def is_security_event(self) -> bool:
        return True


class DownloadLimitExceededException(AccessException):
    """Access key has used up its download allowance"""

    def __init__(self, key: str, limit: int, current: int):
        self.key = key
        self.limit = limit
        self.current = current
        super().__init__(
            message=f"Download limit exceeded for key {key}: {current}/{limit} used",
            code="download_limit_exceeded",
            status_code=403,
            details={"limit": limit, "current": current},
        )

    def user_message(self) -> str:
        return f"Download limit of {self.limit} reached"


class InactiveAccessKeyException(AccessException):
    """Access key was deactivated"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            message=f"Access key {key} is inactive",
            code="inactive_access_key",
            status_code=401,
        )

    def user_message(self) -> str:
        return "Access key is no longer active"


class RateLimitExceededException(AccessException):
    """Too many failed attempts from one IP address"""

    def __init__(self, ip_address: str, retry_after_seconds: int):
        self.ip_address = ip_address
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=(
                f"Rate limit exceeded for IP {ip_address}: "
                f"retry after {retry_after_seconds} seconds"
            ),
            code="rate_limit_exceeded",
            status_code=429,
            details={"retry_after": retry_after_seconds},
        )

    def user_message(self) -> str:
        return (
            "Too many failed attempts. "
            f"Please try again in {self.retry_after_seconds} seconds"
        )

    def is_security_event(self) -> bool:
        return True


class DatabaseException(AccessException):
    """Storage failure; details stay server side"""

    def __init__(self, message: str):
        super().__init__(
            message=f"Database error: {message}",
            code="database_error",
            status_code=500,
        )

    def user_message(self) -> str:
        return "A database error occurred"


class InvalidPermissionException(AccessException):
    """Unrecognized permission token"""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            message=f"Invalid permission: {value}",
            code="invalid_permission",
            status_code=400,
        )


class InvalidResourceTypeException(AccessException):
    """Unrecognized resource type token"""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            message=f"Invalid resource type: {value}",
            code="invalid_resource_type",
            status_code=400,
        )


class InternalException(AccessException):
    """Unexpected internal failure"""

    def __init__(self, message: str):
        super().__init__(
            message=f"Internal error: {message}",
            code="internal_error",
            status_code=500,
        )

    def user_message(self) -> str:
        return "An internal error occurred"
