"""
Developer lifecycle management

Creation, listing, partial updates, secret rotation, limit changes and
deletion of developer credentials. Administrators call these without an
owner; the self-service portal passes the caller's ``owner_user_id`` and
every operation then re-checks ownership of the target key.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import LimitExceeded, NotFound, ValidationFailed
from ..models import Developer, DeveloperLimit
from ..schemas import (
    DeveloperCreated,
    DeveloperDetail,
    DeveloperInfo,
    LimitsInfo,
    PortalStats,
    SecretRotated,
)
from ..utils.credentials import (
    generate_api_secret,
    generate_key_pair,
    hash_secret,
    mask_credential,
)
from ..utils.logging import get_logger
from .authenticator import invalidate_cached_credentials
from .limiter import UsageLimiter, month_tag
from .rate_window import RateWindow
from .store import DeveloperRepository
from .usage_logger import UsageReporter

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("name", "email", "is_active", "metadata")


def to_info(developer: Developer) -> DeveloperInfo:
    limits = developer.limits
    return DeveloperInfo(
        id=developer.id,
        name=developer.name,
        email=developer.email,
        api_key=developer.api_key,
        is_active=developer.is_active,
        owner_user_id=developer.owner_user_id,
        metadata=dict(developer.extra_metadata or {}),
        limits=LimitsInfo(**limits.to_dict()) if limits is not None else None,
        created_at=developer.created_at,
        updated_at=developer.updated_at,
    )


class DeveloperService:
    """Lifecycle operations on developer credentials."""

    def __init__(
        self,
        db: Session,
        redis_client=None,
        rate_window: Optional[RateWindow] = None,
        limiter: Optional[UsageLimiter] = None,
    ):
        self.db = db
        self.redis = redis_client
        self.repository = DeveloperRepository(db)
        self.limiter = limiter or UsageLimiter(db, rate_window=rate_window)

    def create_developer(
        self,
        name: str,
        email: Optional[str] = None,
        monthly_limit: Optional[int] = None,
        rate_limit_per_minute: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        owner_user_id: Optional[str] = None,
        environment: Optional[str] = None,
        enforce_key_cap: bool = True,
    ) -> DeveloperCreated:
        """Issue a new key pair. The returned object is the only copy of the secret.

        Self-service callers (an ``owner_user_id`` with ``enforce_key_cap``) may
        hold at most ``max_keys_per_user`` active keys.
        """
        if not name or not name.strip():
            raise ValidationFailed("Developer name is required")

        monthly_limit = monthly_limit or settings.default_monthly_limit
        rate_limit_per_minute = rate_limit_per_minute or settings.default_rate_limit_per_minute
        if monthly_limit < 1 or rate_limit_per_minute < 1:
            raise ValidationFailed("Limits must be positive integers")

        api_key, api_secret = generate_key_pair(environment or settings.key_environment)

        developer = Developer(
            id=f"dev_{uuid.uuid4().hex[:16]}",
            name=name.strip(),
            email=email,
            api_key=api_key,
            api_secret_hash=hash_secret(api_secret),
            is_active=True,
            owner_user_id=owner_user_id,
            extra_metadata=dict(metadata or {}),
        )
        developer.limits = DeveloperLimit(
            monthly_limit=monthly_limit,
            current_month_used=0,
            current_month=month_tag(self.limiter.clock()),
            rate_limit_per_minute=rate_limit_per_minute,
        )

        # Developer and limits are committed together or not at all
        self.repository.add(developer)
        if owner_user_id is not None and enforce_key_cap:
            self._enforce_key_cap(owner_user_id)
        self.repository.commit()
        self.db.refresh(developer)

        logger.info(
            "developer_created",
            developer_id=developer.id,
            api_key=mask_credential(api_key),
            owner_user_id=owner_user_id,
            monthly_limit=monthly_limit,
        )

        return DeveloperCreated(
            developer=to_info(developer), api_key=api_key, api_secret=api_secret
        )

    def list_developers(self, owner_user_id: Optional[str] = None) -> List[DeveloperInfo]:
        if owner_user_id is None:
            developers = self.repository.list_all()
        else:
            developers = self.repository.list_for_owner(owner_user_id)
        return [to_info(developer) for developer in developers]

    def get_developer(
        self, developer_id: str, owner_user_id: Optional[str] = None
    ) -> DeveloperDetail:
        developer = self._get_owned(developer_id, owner_user_id)
        self.limiter.get_limits(developer.id)
        self.db.refresh(developer)
        usage = UsageReporter(self.db).get_tool_usage(developer.id)
        return DeveloperDetail(**to_info(developer).model_dump(), usage=usage)

    def update_developer(
        self,
        developer_id: str,
        changes: Dict[str, Any],
        owner_user_id: Optional[str] = None,
    ) -> DeveloperInfo:
        """Partial update of name, email, is_active and metadata."""
        developer = self._get_owned(developer_id, owner_user_id)

        rejected = set(changes) - set(UPDATABLE_FIELDS)
        if rejected:
            raise ValidationFailed(
                f"Fields cannot be updated: {', '.join(sorted(rejected))}"
            )

        for field, value in changes.items():
            if value is None:
                continue
            if field == "metadata":
                developer.extra_metadata = dict(value)
            elif field == "name":
                if not str(value).strip():
                    raise ValidationFailed("Developer name is required")
                developer.name = str(value).strip()
            else:
                setattr(developer, field, value)

        self.repository.commit()
        invalidate_cached_credentials(self.redis, developer.api_key)
        self.db.refresh(developer)

        logger.info(
            "developer_updated",
            developer_id=developer.id,
            fields=sorted(k for k, v in changes.items() if v is not None),
        )
        return to_info(developer)

    def regenerate_secret(
        self, developer_id: str, owner_user_id: Optional[str] = None
    ) -> SecretRotated:
        """Issue a new secret for the same API key; the old one stops working now."""
        developer = self._get_owned(developer_id, owner_user_id)

        api_secret = generate_api_secret(developer.environment)
        developer.api_secret_hash = hash_secret(api_secret)
        self.repository.commit()
        invalidate_cached_credentials(self.redis, developer.api_key)

        logger.info(
            "secret_regenerated",
            developer_id=developer.id,
            api_key=mask_credential(developer.api_key),
        )
        return SecretRotated(
            id=developer.id,
            name=developer.name,
            api_key=developer.api_key,
            api_secret=api_secret,
        )

    def update_limits(
        self,
        developer_id: str,
        monthly_limit: Optional[int] = None,
        rate_limit_per_minute: Optional[int] = None,
    ) -> LimitsInfo:
        self._get_owned(developer_id, None)
        limits = self.limiter.update_limits(
            developer_id,
            monthly_limit=monthly_limit,
            rate_limit_per_minute=rate_limit_per_minute,
        )
        return LimitsInfo(**limits.to_dict())

    def delete_developer(self, developer_id: str, owner_user_id: Optional[str] = None) -> None:
        """Delete the developer with its limits and usage history."""
        developer = self._get_owned(developer_id, owner_user_id)
        api_key = developer.api_key
        rate_limit = developer.limits.rate_limit_per_minute if developer.limits else None

        self.repository.delete(developer)
        self.repository.commit()
        invalidate_cached_credentials(self.redis, api_key)
        if rate_limit is not None:
            self.limiter.rate_window.reset(developer_id, rate_limit)

        logger.info("developer_deleted", developer_id=developer_id)

    def reset_monthly_usage(self, developer_id: str) -> LimitsInfo:
        self._get_owned(developer_id, None)
        limits = self.limiter.reset_monthly_usage(developer_id)
        return LimitsInfo(**limits.to_dict())

    def portal_stats(self, owner_user_id: str) -> PortalStats:
        developers = self.repository.list_for_owner(owner_user_id)
        if not developers:
            return PortalStats(
                total_requests=0,
                monthly_limit=0,
                active_keys=0,
                has_developer_account=False,
            )

        total_requests = 0
        monthly_limit = 0
        for developer in developers:
            limits = self.limiter.get_limits(developer.id)
            total_requests += limits.current_month_used
            monthly_limit += limits.monthly_limit

        return PortalStats(
            total_requests=total_requests,
            monthly_limit=monthly_limit,
            active_keys=sum(1 for developer in developers if developer.is_active),
            has_developer_account=True,
        )

    def _enforce_key_cap(self, owner_user_id: str) -> None:
        """Reject the pending key if it takes the owner past the cap.

        The new row is written first and the owner's rows are locked before
        counting, so two concurrent creations cannot both see room under the cap.
        """
        self.repository.flush()
        self.repository.lock_owner(owner_user_id)
        active_keys = self.repository.count_for_owner(owner_user_id, active_only=True)
        if active_keys > settings.max_keys_per_user:
            self.db.rollback()
            raise LimitExceeded(
                f"Maximum {settings.max_keys_per_user} API keys per user. "
                "Delete unused keys to create new ones.",
                limit=settings.max_keys_per_user,
            )

    def _get_owned(self, developer_id: str, owner_user_id: Optional[str]) -> Developer:
        """Load a developer, hiding keys that belong to someone else."""
        developer = self.repository.get_by_id(developer_id)
        if developer is None:
            raise NotFound(f"Developer {developer_id} not found")
        if owner_user_id is not None and developer.owner_user_id != owner_user_id:
            logger.warning(
                "ownership_mismatch",
                developer_id=developer_id,
                caller_user_id=owner_user_id,
            )
            raise NotFound("API key not found or unauthorized")
        return developer
