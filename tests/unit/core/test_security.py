#!/usr/bin/env python3
"""
Unit Tests for Security Utilities
Tests for access_control/core/security.py
"""

from datetime import timedelta

import pytest
from jose import jwt

from access_control.core.config import settings
from access_control.core.exceptions import UnauthorizedException
from access_control.core.security import (
    create_access_token,
    decode_token,
    get_user_id_from_token,
)


class TestTokens:
    """Test bearer token verification"""

    def test_round_trip_user_id(self):
        token = create_access_token("user123")
        assert get_user_id_from_token(token) == "user123"

    def test_expired_token_rejected(self):
        token = create_access_token("user123", expires_delta=timedelta(seconds=-10))

        with pytest.raises(UnauthorizedException):
            decode_token(token)

    def test_garbage_token_rejected(self):
        with pytest.raises(UnauthorizedException) as exc_info:
            get_user_id_from_token("not-a-token")

        assert exc_info.value.status_code == 401

    def test_wrong_token_type_rejected(self):
        token = jwt.encode(
            {"sub": "user123", "type": "refresh"},
            settings.SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(UnauthorizedException, match="Invalid token type"):
            get_user_id_from_token(token)

    def test_missing_subject_rejected(self):
        token = jwt.encode(
            {"type": "access"},
            settings.SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(UnauthorizedException, match="no subject"):
            get_user_id_from_token(token)
