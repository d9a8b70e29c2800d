"""
Authenticator

Validates an API key + secret pair against the credential store and returns
the minimal identity of the developer. Authentication is a pure read: usage
accounting happens afterwards in the UsageLimiter.
"""

import json
from typing import Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import (
    AccountInactive,
    InvalidKey,
    InvalidSecret,
    MalformedCredential,
)
from ..schemas import DeveloperIdentity
from ..utils.credentials import (
    hash_secret,
    is_valid_key_format,
    is_valid_secret_format,
    mask_credential,
    verify_secret,
)
from ..utils.logging import get_logger
from .store import DeveloperRepository

logger = get_logger(__name__)

# Unknown keys are verified against this so they cost the same as a wrong secret
_DUMMY_SECRET_HASH = hash_secret("sk_live_" + "0" * 48)

CACHE_PREFIX = "developer_auth:"


def cache_key(api_key: str) -> str:
    return f"{CACHE_PREFIX}{api_key}"


def invalidate_cached_credentials(redis_client, api_key: str) -> None:
    """Drop the cached auth projection of ``api_key`` (Redis is optional)."""
    if not redis_client:
        return
    try:
        redis_client.delete(cache_key(api_key))
    except Exception as e:
        logger.warning(
            "auth_cache_invalidate_failed", api_key=mask_credential(api_key), error=str(e)
        )


class Authenticator:
    """Checks credentials; optionally reads through a short-TTL Redis cache."""

    def __init__(self, db: Session, redis_client=None, cache_ttl: Optional[int] = None):
        self.repository = DeveloperRepository(db)
        self.redis = redis_client
        self.cache_ttl = settings.auth_cache_ttl_seconds if cache_ttl is None else cache_ttl

    def authenticate(self, api_key: str, api_secret: str) -> DeveloperIdentity:
        """Return the developer identity or raise an authentication error."""
        if not is_valid_key_format(api_key):
            raise MalformedCredential("API key must match pk_live_ or pk_test_ followed by 32 alphanumerics")
        if not is_valid_secret_format(api_secret):
            raise MalformedCredential("API secret must match sk_live_ or sk_test_ followed by 48 alphanumerics")

        record = self._load(api_key)

        if record is None:
            verify_secret(api_secret, _DUMMY_SECRET_HASH)
            logger.info("auth_failed", reason="invalid_key", api_key=mask_credential(api_key))
            raise InvalidKey()

        if not record["is_active"]:
            logger.info(
                "auth_failed",
                reason="account_inactive",
                developer_id=record["id"],
            )
            raise AccountInactive()

        if not verify_secret(api_secret, record["api_secret_hash"]):
            logger.info("auth_failed", reason="invalid_secret", developer_id=record["id"])
            raise InvalidSecret()

        return DeveloperIdentity(id=record["id"], name=record["name"], email=record["email"])

    def _load(self, api_key: str) -> Optional[dict]:
        cached = self._cache_get(api_key)
        if cached is not None:
            return cached

        developer = self.repository.get_by_api_key(api_key)
        if developer is None:
            return None

        record = {
            "id": developer.id,
            "name": developer.name,
            "email": developer.email,
            "api_secret_hash": developer.api_secret_hash,
            "is_active": developer.is_active,
        }
        self._cache_set(api_key, record)
        return record

    def _cache_get(self, api_key: str) -> Optional[dict]:
        if not self.redis or self.cache_ttl <= 0:
            return None
        try:
            cached = self.redis.get(cache_key(api_key))
            return json.loads(cached) if cached else None
        except Exception:
            return None  # Redis is optional

    def _cache_set(self, api_key: str, record: dict) -> None:
        if not self.redis or self.cache_ttl <= 0:
            return
        try:
            self.redis.setex(cache_key(api_key), self.cache_ttl, json.dumps(record))
        except Exception:
            pass  # Redis is optional
