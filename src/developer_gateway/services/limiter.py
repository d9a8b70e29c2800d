"""
Usage Limiter

Enforces the monthly quota and the per-minute rate ceiling of a developer.

The monthly counter is only ever changed by single conditional UPDATE
statements, so concurrent requests for one developer are serialized by the
database instead of by application locks:

    UPDATE developer_limits
       SET current_month_used = current_month_used + :cost
     WHERE developer_id = :id
       AND current_month = :month
       AND current_month_used + :cost <= monthly_limit

A request that loses the race sees ``rowcount == 0`` and is denied.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import NotFound, StoreUnavailable, ValidationFailed
from ..models import Developer, DeveloperLimit
from ..schemas import DenyReason, UsageDecision
from ..utils.logging import get_logger
from .rate_window import RateSlot, RateWindow, get_rate_window

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_tag(moment: datetime) -> str:
    """Calendar month of ``moment`` as ``YYYY-MM``."""
    return moment.strftime("%Y-%m")


def needs_rollover(limits: DeveloperLimit, now: datetime) -> bool:
    """True when the counter belongs to an earlier month than ``now``."""
    return limits.current_month != month_tag(now)


class UsageLimiter:
    """Monthly quota and per-minute rate enforcement for one database session."""

    def __init__(
        self,
        db: Session,
        rate_window: Optional[RateWindow] = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.rate_window = rate_window if rate_window is not None else get_rate_window(None)
        self.clock = clock

    def check_and_consume(self, developer_id: str, cost: int = 1) -> UsageDecision:
        """Consume ``cost`` calls from the developer's quota, or explain why not.

        The rate slot is reserved before the quota is touched and given back if
        the quota then refuses the call, so a denied call never holds either.
        """
        if cost < 1:
            raise ValidationFailed("cost must be a positive integer")

        now = self.clock()
        month = month_tag(now)

        limits = self.get_limits(developer_id, now)
        if limits.current_month_used + cost > limits.monthly_limit:
            return self._deny(DenyReason.QUOTA_EXCEEDED, limits)

        rate_limit = limits.rate_limit_per_minute
        slot = self.rate_window.acquire(developer_id, rate_limit)
        if not slot.allowed:
            return self._deny(DenyReason.RATE_LIMITED, limits, slot)

        try:
            result = self.db.execute(
                update(DeveloperLimit)
                .where(
                    DeveloperLimit.developer_id == developer_id,
                    DeveloperLimit.current_month == month,
                    DeveloperLimit.current_month_used + cost <= DeveloperLimit.monthly_limit,
                )
                .values(current_month_used=DeveloperLimit.current_month_used + cost)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            limits = self._reload(developer_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            self.rate_window.release(developer_id, rate_limit)
            logger.error("quota_check_failed", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()

        if result.rowcount == 0:
            # Another request consumed the remaining quota first
            self.rate_window.release(developer_id, rate_limit)
            return self._deny(DenyReason.QUOTA_EXCEEDED, limits)

        return UsageDecision(
            allowed=True,
            monthly_limit=limits.monthly_limit,
            current_month_used=limits.current_month_used,
            remaining=limits.remaining,
            rate_limit_per_minute=limits.rate_limit_per_minute,
            rate_remaining=slot.remaining,
            rate_reset_seconds=slot.reset_in_seconds,
        )

    def get_limits(self, developer_id: str, now: Optional[datetime] = None) -> DeveloperLimit:
        """Current quota state, rolled over to this month if needed."""
        try:
            return self._current_limits(developer_id, now or self.clock())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("limits_read_failed", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()

    def reset_monthly_usage(self, developer_id: str) -> DeveloperLimit:
        """Force the counter to zero for the current month (idempotent)."""
        month = month_tag(self.clock())
        try:
            limits = self._current_limits(developer_id, self.clock())
            self.db.execute(
                update(DeveloperLimit)
                .where(DeveloperLimit.developer_id == developer_id)
                .values(current_month_used=0, current_month=month)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            limits = self._reload(developer_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("usage_reset_failed", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()

        logger.info("monthly_usage_reset", developer_id=developer_id, month=month)
        return limits

    def reset_stale_months(self) -> int:
        """Roll over every counter still tagged with a past month.

        Lazy rollover only happens when a developer makes a request; this
        zeroes idle developers too. Returns the number of rows reset.
        """
        month = month_tag(self.clock())
        try:
            result = self.db.execute(
                update(DeveloperLimit)
                .where(DeveloperLimit.current_month != month)
                .values(current_month_used=0, current_month=month)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("rollover_failed", error=str(e))
            raise StoreUnavailable()

        logger.info("monthly_rollover", month=month, developers=result.rowcount)
        return result.rowcount

    def update_limits(
        self,
        developer_id: str,
        monthly_limit: Optional[int] = None,
        rate_limit_per_minute: Optional[int] = None,
    ) -> DeveloperLimit:
        values = {}
        if monthly_limit is not None:
            if monthly_limit < 1:
                raise ValidationFailed("monthly_limit must be a positive integer")
            values["monthly_limit"] = monthly_limit
        if rate_limit_per_minute is not None:
            if rate_limit_per_minute < 1:
                raise ValidationFailed("rate_limit_per_minute must be a positive integer")
            values["rate_limit_per_minute"] = rate_limit_per_minute

        try:
            limits = self._current_limits(developer_id, self.clock())
            if values:
                self.db.execute(
                    update(DeveloperLimit)
                    .where(DeveloperLimit.developer_id == developer_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                self.db.commit()
                limits = self._reload(developer_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("limits_update_failed", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()

        logger.info("limits_updated", developer_id=developer_id, **values)
        return limits

    def _current_limits(self, developer_id: str, now: datetime) -> DeveloperLimit:
        limits = self._reload(developer_id)

        if limits is None:
            limits = self._create_default(developer_id, month_tag(now))
        elif needs_rollover(limits, now):
            month = month_tag(now)
            # Conditional so two racing requests reset the counter only once
            self.db.execute(
                update(DeveloperLimit)
                .where(
                    DeveloperLimit.developer_id == developer_id,
                    DeveloperLimit.current_month != month,
                )
                .values(current_month_used=0, current_month=month)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            logger.info("lazy_rollover", developer_id=developer_id, month=month)
            limits = self._reload(developer_id)

        return limits

    def _create_default(self, developer_id: str, month: str) -> DeveloperLimit:
        """Limits row missing: create it from the configured defaults."""
        if self.db.get(Developer, developer_id) is None:
            raise NotFound(f"Developer {developer_id} not found")

        limits = DeveloperLimit(
            developer_id=developer_id,
            monthly_limit=settings.default_monthly_limit,
            current_month_used=0,
            current_month=month,
            rate_limit_per_minute=settings.default_rate_limit_per_minute,
        )
        self.db.add(limits)
        try:
            self.db.commit()
        except IntegrityError:
            # Created concurrently by another request
            self.db.rollback()
        logger.warning("limits_created_lazily", developer_id=developer_id)
        return self._reload(developer_id)

    def _reload(self, developer_id: str) -> Optional[DeveloperLimit]:
        return self.db.execute(
            select(DeveloperLimit)
            .where(DeveloperLimit.developer_id == developer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _deny(
        self, reason: DenyReason, limits: DeveloperLimit, slot: Optional[RateSlot] = None
    ) -> UsageDecision:
        logger.info(
            "usage_denied",
            developer_id=limits.developer_id,
            reason=reason.value,
            used=limits.current_month_used,
            limit=limits.monthly_limit,
        )
        return UsageDecision(
            allowed=False,
            reason=reason,
            monthly_limit=limits.monthly_limit,
            current_month_used=limits.current_month_used,
            remaining=limits.remaining,
            rate_limit_per_minute=limits.rate_limit_per_minute,
            rate_remaining=slot.remaining if slot is not None else None,
            rate_reset_seconds=slot.reset_in_seconds if slot is not None else None,
        )
