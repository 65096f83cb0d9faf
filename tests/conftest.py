"""
Pytest Configuration and Fixtures
Shared fixtures for all tests
"""

from datetime import timedelta
from typing import Optional

import pytest

from access_control.core.permissions import GroupRole, Permission, ResourceType
from access_control.models.access import AccessContext, AccessKeyData, utc_now
from access_control.services.access_control import AccessControlService
from access_control.services.rate_limit import InMemoryAttemptStore, RateLimiter

from tests.fakes import InMemoryAccessRepository, RecordingAuditLogger


# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on test file path"""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================
# FIXTURES
# ============================================

@pytest.fixture
def repository() -> InMemoryAccessRepository:
    """
    Repository seeded with the standard scenarios

    - video 1: public, owned by owner1
    - video 2: private, owned by user123
    - video 3: private, in group 10 (u1 contributor, v1 viewer, e1 editor)
    - video 4: private, in group 20, shared by the group key
    - video 5: private, explicitly granted to key "granted-key"
    """
    repo = InMemoryAccessRepository()
    repo.add_resource(ResourceType.VIDEO, 1, owner_id="owner1", is_public=True)
    repo.add_resource(ResourceType.VIDEO, 2, owner_id="user123")
    repo.add_resource(ResourceType.VIDEO, 3, owner_id="owner3", group_id=10)
    repo.add_resource(ResourceType.VIDEO, 4, owner_id="owner4", group_id=20)
    repo.add_resource(ResourceType.VIDEO, 5, owner_id="owner5")

    repo.add_member(10, "u1", GroupRole.CONTRIBUTOR)
    repo.add_member(10, "v1", GroupRole.VIEWER)
    repo.add_member(10, "e1", GroupRole.EDITOR)

    now = utc_now()
    repo.add_key(
        AccessKeyData(id=1, key="granted-key", permission_level=Permission.DOWNLOAD),
        grants=((ResourceType.VIDEO, 5),),
    )
    repo.add_key(
        AccessKeyData(
            id=2,
            key="group-key",
            group_id=20,
            share_all_group_resources=True,
        )
    )
    repo.add_key(AccessKeyData(id=3, key="abc", expires_at=now - timedelta(days=1)))
    repo.add_key(
        AccessKeyData(
            id=4,
            key="exhausted-key",
            max_downloads=5,
            current_downloads=5,
        ),
        grants=((ResourceType.VIDEO, 5),),
    )
    repo.add_key(AccessKeyData(id=5, key="inactive-key", is_active=False))
    repo.add_key(
        AccessKeyData(
            id=6,
            key="limited-key",
            max_downloads=2,
            current_downloads=1,
        ),
        grants=((ResourceType.VIDEO, 5),),
    )
    return repo


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryAttemptStore(), max_attempts=3, window_seconds=60)


@pytest.fixture
def service(repository, audit_logger) -> AccessControlService:
    return AccessControlService(
        repository=repository,
        audit_logger=audit_logger,
        audit_grants=False,
        timeout=5.0,
    )


@pytest.fixture
def make_context():
    """Factory for AccessContext with video defaults"""

    def _make(
        resource_id: int,
        user_id: Optional[str] = None,
        access_key: Optional[str] = None,
        resource_type: ResourceType = ResourceType.VIDEO,
        ip_address: Optional[str] = None,
    ) -> AccessContext:
        return AccessContext(
            user_id=user_id,
            access_key=access_key,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=ip_address,
        )

    return _make
