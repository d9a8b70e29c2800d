"""Unit tests for end-user session tokens"""

from datetime import timedelta

import jwt
import pytest

from developer_gateway.utils.tokens import SessionTokenManager


@pytest.mark.unit
class TestSessionTokens:
    def test_round_trip(self, token_manager):
        token = token_manager.create_token("user-a", email="a@example.com", role="admin")

        user = token_manager.verify_token(token["access_token"])

        assert user.user_id == "user-a"
        assert user.email == "a@example.com"
        assert user.is_admin is True
        assert token["token_type"] == "bearer"

    def test_default_role_is_not_admin(self, token_manager):
        user = token_manager.verify_token(token_manager.create_token("user-a")["access_token"])
        assert user.role == "user"
        assert user.is_admin is False

    def test_expired(self, token_manager):
        token = token_manager.create_token("user-a", expires_in=timedelta(seconds=-1))
        assert token_manager.verify_token(token["access_token"]) is None

    def test_wrong_signing_key(self, token_manager):
        forged = SessionTokenManager(secret_key="another-key").create_token("user-a", role="admin")
        assert token_manager.verify_token(forged["access_token"]) is None

    def test_missing_subject(self, token_manager):
        token = jwt.encode({"role": "admin"}, token_manager.secret_key, algorithm=token_manager.algorithm)
        assert token_manager.verify_token(token) is None

    def test_garbage(self, token_manager):
        assert token_manager.verify_token("not.a.token") is None
