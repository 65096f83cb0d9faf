#!/usr/bin/env python3
"""
Unit Tests for SQL Access Repository
Tests for access_control/db/repository.py
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from access_control.core.exceptions import (
    DatabaseException,
    InternalException,
    NotFoundException,
)
from access_control.core.permissions import GroupRole, Permission, ResourceType
from access_control.db.models import AccessKey, Folder, Video
from access_control.db.repository import RESOURCE_MODELS, SQLAccessRepository


def scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def make_repository(*results) -> SQLAccessRepository:
    db = AsyncMock()
    db.execute.side_effect = list(results)
    return SQLAccessRepository(db)


class TestResourceLookups:
    """Test per-type resource queries"""

    def test_every_resource_type_has_a_model(self):
        assert set(RESOURCE_MODELS) == set(ResourceType)
        assert RESOURCE_MODELS[ResourceType.VIDEO] is Video
        assert RESOURCE_MODELS[ResourceType.FOLDER] is Folder

    def test_tables_match_resource_types(self):
        for resource_type, model in RESOURCE_MODELS.items():
            assert model.__tablename__ == resource_type.table_name

    @pytest.mark.asyncio
    async def test_is_resource_public(self):
        repo = make_repository(scalar_result(True))
        assert await repo.is_resource_public(ResourceType.VIDEO, 1) is True

    @pytest.mark.asyncio
    async def test_private_resource(self):
        repo = make_repository(scalar_result(False))
        assert await repo.is_resource_public(ResourceType.IMAGE, 1) is False

    @pytest.mark.asyncio
    async def test_missing_resource_raises_not_found(self):
        repo = make_repository(scalar_result(None))

        with pytest.raises(NotFoundException) as exc_info:
            await repo.is_resource_public(ResourceType.FILE, 42)

        assert str(exc_info.value) == "file 42 not found"

    @pytest.mark.asyncio
    async def test_queries_target_the_right_table(self):
        db = AsyncMock()
        db.execute.return_value = scalar_result("user123")
        repo = SQLAccessRepository(db)

        await repo.get_owner(ResourceType.FOLDER, 3)

        statement = db.execute.call_args[0][0]
        assert "folders" in str(statement)

    @pytest.mark.asyncio
    async def test_get_owner_and_group(self):
        repo = make_repository(scalar_result("user123"), scalar_result(10))

        assert await repo.get_owner(ResourceType.VIDEO, 2) == "user123"
        assert await repo.get_group_id(ResourceType.VIDEO, 2) == 10

    @pytest.mark.asyncio
    async def test_resource_belongs_to_group(self):
        repo = make_repository(scalar_result(3), scalar_result(None))

        assert await repo.resource_belongs_to_group(ResourceType.VIDEO, 3, 10)
        assert not await repo.resource_belongs_to_group(ResourceType.VIDEO, 3, 99)


class TestGroupLookups:
    @pytest.mark.asyncio
    async def test_user_role_parsed(self):
        repo = make_repository(scalar_result("contributor"))
        assert await repo.get_user_role(10, "u1") == GroupRole.CONTRIBUTOR

    @pytest.mark.asyncio
    async def test_non_member_role_is_none(self):
        repo = make_repository(scalar_result(None))
        assert await repo.get_user_role(10, "u1") is None

    @pytest.mark.asyncio
    async def test_corrupt_role_is_internal_error(self):
        repo = make_repository(scalar_result("superuser"))

        with pytest.raises(InternalException):
            await repo.get_user_role(10, "u1")

    @pytest.mark.asyncio
    async def test_is_group_member(self):
        repo = make_repository(scalar_result(1), scalar_result(None))

        assert await repo.is_group_member(10, "u1")
        assert not await repo.is_group_member(10, "u2")


class TestAccessKeys:
    """Test access key loading and usage accounting"""

    @pytest.mark.asyncio
    async def test_get_access_key_maps_row(self):
        row = AccessKey(
            id=7,
            code="share-123",
            description="Client preview",
            permission_level="read",
            access_group_id=20,
            share_all_group_resources=True,
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
            max_downloads=10,
            current_downloads=3,
            is_active=True,
        )
        repo = make_repository(scalar_result(row))

        key = await repo.get_access_key("share-123")

        assert key.id == 7
        assert key.permission_level == Permission.READ
        assert key.group_id == 20
        assert key.is_group_key
        assert key.remaining_downloads() == 7

    @pytest.mark.asyncio
    async def test_inactive_key_still_returned(self):
        row = AccessKey(
            id=8,
            code="old",
            permission_level=None,
            share_all_group_resources=False,
            current_downloads=0,
            is_active=False,
        )
        repo = make_repository(scalar_result(row))

        key = await repo.get_access_key("old")

        assert key is not None
        assert key.is_active is False
        assert key.permission_level is None

    @pytest.mark.asyncio
    async def test_unknown_key(self):
        repo = make_repository(scalar_result(None))
        assert await repo.get_access_key("nope") is None

    @pytest.mark.asyncio
    async def test_explicit_grant_lookup(self):
        repo = make_repository(scalar_result(1))
        assert await repo.access_key_grants_resource(7, ResourceType.VIDEO, 5)

    @pytest.mark.asyncio
    async def test_increment_is_guarded_update(self):
        db = AsyncMock()
        db.execute.return_value = scalar_result(4)
        repo = SQLAccessRepository(db)

        assert await repo.increment_access_key_usage(7) == 4

        statement = db.execute.call_args[0][0]
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert sql.startswith("UPDATE access_codes SET")
        assert "current_downloads=(access_codes.current_downloads +" in sql
        assert "access_codes.max_downloads IS NULL OR access_codes.current_downloads < access_codes.max_downloads" in sql
        assert "RETURNING access_codes.current_downloads" in sql
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_increment_rejected_by_guard(self):
        repo = make_repository(scalar_result(None))
        assert await repo.increment_access_key_usage(7) is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_sqlalchemy_error_wrapped(self):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        repo = SQLAccessRepository(db)

        with pytest.raises(DatabaseException) as exc_info:
            await repo.get_owner(ResourceType.VIDEO, 1)

        assert exc_info.value.user_message() == "A database error occurred"
