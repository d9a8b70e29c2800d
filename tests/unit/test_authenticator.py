"""
Unit tests for the Authenticator

Tests:
- Successful authentication returns only the identity projection
- Error taxonomy: malformed, unknown key, inactive, wrong secret
- Unknown keys still run a secret comparison
- Read-through cache and its invalidation
- Store failures become StoreUnavailable
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from developer_gateway.exceptions import (
    AccountInactive,
    InvalidKey,
    InvalidSecret,
    MalformedCredential,
    StoreUnavailable,
)
from developer_gateway.services import authenticator as authenticator_module
from developer_gateway.services.authenticator import Authenticator, cache_key
from developer_gateway.services.developers import DeveloperService
from developer_gateway.utils.credentials import generate_api_key, generate_api_secret


@pytest.mark.unit
class TestAuthenticate:
    """Authenticator.authenticate"""

    def test_valid_credentials(self, db_session, created_developer):
        identity = Authenticator(db_session).authenticate(
            created_developer.api_key, created_developer.api_secret
        )

        assert identity.id == created_developer.developer.id
        assert identity.name == "Test Developer"
        assert identity.email == "dev@example.com"
        assert identity.is_anonymous is False
        assert set(identity.model_dump()) == {"id", "name", "email", "is_anonymous"}

    def test_malformed_key_does_not_touch_store(self, db_session):
        auth = Authenticator(db_session)
        auth.repository = MagicMock()

        with pytest.raises(MalformedCredential):
            auth.authenticate("not-a-key", generate_api_secret())
        with pytest.raises(MalformedCredential):
            auth.authenticate(generate_api_key(), "sk_live_short")

        auth.repository.get_by_api_key.assert_not_called()

    def test_unknown_key(self, db_session, created_developer):
        with pytest.raises(InvalidKey):
            Authenticator(db_session).authenticate(
                generate_api_key(), created_developer.api_secret
            )

    def test_unknown_key_still_compares_secret(self, db_session):
        with patch.object(
            authenticator_module, "verify_secret", wraps=authenticator_module.verify_secret
        ) as verify:
            with pytest.raises(InvalidKey):
                Authenticator(db_session).authenticate(generate_api_key(), generate_api_secret())

        verify.assert_called_once()

    def test_wrong_secret(self, db_session, created_developer):
        with pytest.raises(InvalidSecret):
            Authenticator(db_session).authenticate(
                created_developer.api_key, generate_api_secret()
            )

    def test_inactive_account(self, db_session, developer_service, created_developer):
        developer_service.update_developer(created_developer.developer.id, {"is_active": False})

        with pytest.raises(AccountInactive):
            Authenticator(db_session).authenticate(
                created_developer.api_key, created_developer.api_secret
            )

    def test_authentication_is_read_only(self, db_session, created_developer):
        before = created_developer.developer.limits.current_month_used
        for _ in range(3):
            Authenticator(db_session).authenticate(
                created_developer.api_key, created_developer.api_secret
            )

        db_session.expire_all()
        from developer_gateway.models import DeveloperLimit

        limits = db_session.get(DeveloperLimit, created_developer.developer.id)
        assert limits.current_month_used == before

    def test_store_error_is_fail_safe(self, db_session):
        auth = Authenticator(db_session)
        with patch.object(
            db_session, "scalars", side_effect=OperationalError("SELECT", {}, Exception("timeout"))
        ):
            with pytest.raises(StoreUnavailable):
                auth.authenticate(generate_api_key(), generate_api_secret())


@pytest.mark.unit
class TestAuthCache:
    """Redis read-through cache"""

    def test_successful_lookup_is_cached(self, db_session, created_developer, fake_redis):
        Authenticator(db_session, fake_redis).authenticate(
            created_developer.api_key, created_developer.api_secret
        )

        cached = json.loads(fake_redis.get(cache_key(created_developer.api_key)))
        assert cached["id"] == created_developer.developer.id
        assert cached["is_active"] is True
        assert created_developer.api_secret not in json.dumps(cached)

    def test_cached_record_skips_store(self, db_session, created_developer, fake_redis):
        Authenticator(db_session, fake_redis).authenticate(
            created_developer.api_key, created_developer.api_secret
        )

        auth = Authenticator(db_session, fake_redis)
        auth.repository = MagicMock()
        identity = auth.authenticate(created_developer.api_key, created_developer.api_secret)

        assert identity.id == created_developer.developer.id
        auth.repository.get_by_api_key.assert_not_called()

    def test_deactivation_invalidates_cache(self, db_session, rate_window, fake_redis):
        service = DeveloperService(db_session, redis_client=fake_redis, rate_window=rate_window)
        created = service.create_developer(name="Cached")
        Authenticator(db_session, fake_redis).authenticate(created.api_key, created.api_secret)

        service.update_developer(created.developer.id, {"is_active": False})

        assert fake_redis.get(cache_key(created.api_key)) is None
        with pytest.raises(AccountInactive):
            Authenticator(db_session, fake_redis).authenticate(created.api_key, created.api_secret)

    def test_redis_errors_fall_back_to_store(self, db_session, created_developer):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError("redis down")
        broken.setex.side_effect = ConnectionError("redis down")

        identity = Authenticator(db_session, broken).authenticate(
            created_developer.api_key, created_developer.api_secret
        )
        assert identity.id == created_developer.developer.id

    def test_zero_ttl_disables_cache(self, db_session, created_developer, fake_redis):
        Authenticator(db_session, fake_redis, cache_ttl=0).authenticate(
            created_developer.api_key, created_developer.api_secret
        )
        assert fake_redis.store == {}
