#!/usr/bin/env python3
"""
Integration Tests for the Access API
HTTP error mapping, request context and route guards over ASGI transport
"""

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from access_control.api.dependencies import get_access_service, require_access
from access_control.core.exceptions import DatabaseException
from access_control.core.permissions import Permission, ResourceType
from access_control.core.security import create_access_token
from access_control.main import app, register_exception_handlers
from access_control.models.access import AccessDecision
from access_control.services.access_control import AccessControlService
from access_control.services.rate_limit import InMemoryAttemptStore, RateLimiter

from tests.fakes import InMemoryAccessRepository


class BrokenRepository(InMemoryAccessRepository):
    async def get_owner(self, resource_type, resource_id):
        raise DatabaseException("relation videos does not exist")


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def access_service(repository, audit_logger):
    return AccessControlService(
        repository,
        audit_logger=audit_logger,
        rate_limiter=RateLimiter(InMemoryAttemptStore(), max_attempts=2, window_seconds=60),
    )


@pytest_asyncio.fixture
async def client(access_service):
    app.dependency_overrides[get_access_service] = lambda: access_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestAccessCheckEndpoint:
    """Test GET /api/v1/access/{type}/{id}"""

    @pytest.mark.asyncio
    async def test_public_read(self, client):
        response = await client.get("/api/v1/access/video/1")

        assert response.status_code == 200
        data = response.json()
        assert data["granted"] is True
        assert data["layer"] == "public"
        assert data["permission_granted"] == "read"

    @pytest.mark.asyncio
    async def test_public_download_denied(self, client):
        response = await client.get("/api/v1/access/video/1", params={"permission": "download"})

        assert response.status_code == 200
        data = response.json()
        assert data["granted"] is False
        assert "only grant read access" in data["reason"]

    @pytest.mark.asyncio
    async def test_owner_via_bearer_token(self, client):
        response = await client.get(
            "/api/v1/access/video/2",
            params={"permission": "admin"},
            headers=bearer("user123"),
        )

        assert response.status_code == 200
        assert response.json()["layer"] == "owner"

    @pytest.mark.asyncio
    async def test_anonymous_private_is_401(self, client):
        response = await client.get("/api/v1/access/video/2")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "unauthorized"
        assert error["message"].startswith("Authentication required")
        assert error["timestamp"]

    @pytest.mark.asyncio
    async def test_invalid_bearer_token_is_401(self, client):
        response = await client.get(
            "/api/v1/access/video/1", headers={"Authorization": "Bearer garbage"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_key_from_query_param(self, client):
        response = await client.get("/api/v1/access/video/5", params={"access_code": "abc"})

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "expired_access_key"
        assert error["message"].startswith("Access key expired on")

    @pytest.mark.asyncio
    async def test_exhausted_key_from_header(self, client):
        response = await client.get(
            "/api/v1/access/video/5", headers={"X-Access-Key": "exhausted-key"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Download limit of 5 reached"

    @pytest.mark.asyncio
    async def test_missing_resource_is_404(self, client):
        response = await client.get("/api/v1/access/video/404")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "video with ID 404 not found"

    @pytest.mark.asyncio
    async def test_invalid_resource_type_is_400(self, client):
        response = await client.get("/api/v1/access/document/1")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_resource_type"

    @pytest.mark.asyncio
    async def test_invalid_permission_is_400(self, client):
        response = await client.get("/api/v1/access/video/1", params={"permission": "root"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_permission"

    @pytest.mark.asyncio
    async def test_non_integer_id_is_validation_error(self, client):
        response = await client.get("/api/v1/access/video/abc")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_rate_limit_is_429_with_retry_after(self, client, audit_logger):
        headers = {"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}
        for _ in range(2):
            await client.get("/api/v1/access/video/1", params={"permission": "edit"}, headers=headers)

        response = await client.get("/api/v1/access/video/1", headers=headers)

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["error"]["code"] == "rate_limit_exceeded"
        assert audit_logger.entries[-1].ip_address == "203.0.113.5"

    @pytest.mark.asyncio
    async def test_database_error_is_500_without_details(self):
        service = AccessControlService(BrokenRepository())
        app.dependency_overrides[get_access_service] = lambda: service
        try:
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                response = await ac.get("/api/v1/access/video/1", headers=bearer("user123"))
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["error"]["message"] == "A database error occurred"
        assert "relation" not in response.text


class TestOtherEndpoints:
    @pytest.mark.asyncio
    async def test_effective_permission(self, client):
        response = await client.get("/api/v1/access/video/3/effective", headers=bearer("u1"))

        assert response.status_code == 200
        assert response.json() == {
            "resource_type": "video",
            "resource_id": 3,
            "permission": "download",
        }

    @pytest.mark.asyncio
    async def test_effective_permission_none_for_anonymous(self, client):
        response = await client.get("/api/v1/access/video/2/effective")

        assert response.status_code == 200
        assert response.json()["permission"] is None

    @pytest.mark.asyncio
    async def test_record_download_until_limit(self, client):
        first = await client.post("/api/v1/access/video/5/downloads", params={"access_code": "limited-key"})
        second = await client.post("/api/v1/access/video/5/downloads", params={"access_code": "limited-key"})

        assert first.status_code == 200
        assert first.json() == {"current_downloads": 2}
        assert second.status_code == 403
        assert second.json()["error"]["code"] == "download_limit_exceeded"

    @pytest.mark.asyncio
    async def test_record_download_on_uncovered_resource_forbidden(self, client, repository):
        response = await client.post(
            "/api/v1/access/video/2/downloads", params={"access_code": "limited-key"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"
        assert repository.keys["limited-key"].current_downloads == 1

    @pytest.mark.asyncio
    async def test_download_key_guessing_audited_and_blocked(self, client, audit_logger):
        headers = {"X-Forwarded-For": "203.0.113.9"}
        for code in ("guess-1", "guess-2"):
            response = await client.post(
                "/api/v1/access/video/5/downloads", params={"access_code": code}, headers=headers
            )
            assert response.status_code == 401

        blocked = await client.post(
            "/api/v1/access/video/5/downloads",
            params={"access_code": "granted-key"},
            headers=headers,
        )

        assert blocked.status_code == 429
        assert "Retry-After" in blocked.headers
        assert [entry.error_code for entry in audit_logger.entries] == [
            "invalid_access_key",
            "invalid_access_key",
            "rate_limit_exceeded",
        ]
        assert all(entry.ip_address == "203.0.113.9" for entry in audit_logger.entries)

    @pytest.mark.asyncio
    async def test_effective_permission_key_guessing_blocked(self, client):
        headers = {"X-Access-Key": "guess", "X-Forwarded-For": "203.0.113.10"}
        for _ in range(2):
            response = await client.get("/api/v1/access/video/5/effective", headers=headers)
            assert response.status_code == 401

        blocked = await client.get("/api/v1/access/video/5/effective", headers=headers)

        assert blocked.status_code == 429

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRequireAccessDependency:
    """Test the route guard on a standalone application"""

    @pytest_asyncio.fixture
    async def guarded_client(self, access_service):
        guarded = FastAPI()
        register_exception_handlers(guarded)

        @guarded.get("/videos/{video_id}/download")
        async def download_video(
            video_id: int,
            decision: AccessDecision = Depends(
                require_access(ResourceType.VIDEO, Permission.DOWNLOAD, id_param="video_id")
            ),
        ):
            return {"video_id": video_id, "layer": decision.layer.value}

        guarded.dependency_overrides[get_access_service] = lambda: access_service
        async with AsyncClient(transport=ASGITransport(app=guarded), base_url="http://test") as ac:
            yield ac

    @pytest.mark.asyncio
    async def test_group_member_passes(self, guarded_client):
        response = await guarded_client.get("/videos/3/download", headers=bearer("u1"))

        assert response.status_code == 200
        assert response.json() == {"video_id": 3, "layer": "group"}

    @pytest.mark.asyncio
    async def test_key_holder_passes(self, guarded_client):
        response = await guarded_client.get(
            "/videos/5/download", params={"access_code": "granted-key"}
        )

        assert response.status_code == 200
        assert response.json()["layer"] == "access_key"

    @pytest.mark.asyncio
    async def test_denial_is_403(self, guarded_client, audit_logger):
        response = await guarded_client.get("/videos/1/download")

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "forbidden"
        assert error["details"]["layer"] == "Public Access"
        assert audit_logger.entries[-1].error_code == "forbidden"
