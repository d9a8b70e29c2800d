"""
Usage Logger

Append-only history of metered calls plus the aggregate views built on it.
Writing a log entry is best-effort: a failure is reported on the operational
log and never reaches the API caller.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import InvalidTimeRange, StoreUnavailable
from ..models import DeveloperLimit, UsageLogEntry
from ..schemas import ToolUsage, UsageSummary
from ..utils.logging import get_logger

logger = get_logger(__name__)

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}

MAX_LOG_PAGE = 500
MAX_ERROR_MESSAGE = 500


def parse_time_range(time_range: str) -> Optional[timedelta]:
    if time_range not in TIME_RANGES:
        raise InvalidTimeRange(
            f"Unsupported time range '{time_range}'",
            allowed=sorted(TIME_RANGES),
        )
    return TIME_RANGES[time_range]


class UsageLogger:
    """Records calls in their own session so the request session is not involved."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(
        self,
        developer_id: str,
        tool_name: str,
        outcome: str = "success",
        *,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        status_code: Optional[int] = None,
        error_message: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        processing_time_ms: Optional[int] = None,
    ) -> bool:
        """Append one entry. Returns False instead of raising when the write fails."""
        now = datetime.now(timezone.utc)
        entry = UsageLogEntry(
            id=f"log_{uuid.uuid4().hex}",
            developer_id=developer_id,
            tool_name=tool_name,
            usage_count=1,
            outcome=outcome,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            error_message=error_message[:MAX_ERROR_MESSAGE] if error_message else None,
            ip_address=ip_address,
            user_agent=user_agent,
            processing_time_ms=processing_time_ms,
            created_at=now,
            last_used_at=now,
        )

        db = self.session_factory()
        try:
            db.add(entry)
            db.commit()
            return True
        except Exception as e:
            db.rollback()
            logger.error(
                "usage_log_failed",
                developer_id=developer_id,
                tool_name=tool_name,
                error=str(e),
            )
            return False
        finally:
            db.close()


class UsageReporter:
    """Read side: summaries and log pages for one or more developers."""

    def __init__(self, db: Session):
        self.db = db

    def get_usage_summary(
        self,
        developer_ids: Sequence[str],
        time_range: str = "30d",
        now: Optional[datetime] = None,
    ) -> UsageSummary:
        window = parse_time_range(time_range)
        if not developer_ids:
            return UsageSummary(
                monthly_limit=0,
                current_month_used=0,
                remaining=0,
                rate_limit_per_minute=0,
                time_range=time_range,
                tools=[],
            )

        try:
            limits = list(
                self.db.scalars(
                    select(DeveloperLimit)
                    .where(DeveloperLimit.developer_id.in_(developer_ids))
                    .execution_options(populate_existing=True)
                )
            )
            tools = self._per_tool(developer_ids, window, now)
        except SQLAlchemyError as e:
            logger.error("usage_summary_failed", error=str(e))
            raise StoreUnavailable()

        total_limit = sum(limit.monthly_limit for limit in limits)
        total_used = sum(limit.current_month_used for limit in limits)

        return UsageSummary(
            monthly_limit=total_limit,
            current_month_used=total_used,
            remaining=max(total_limit - total_used, 0),
            rate_limit_per_minute=max((l.rate_limit_per_minute for l in limits), default=0),
            current_month=max((l.current_month for l in limits), default=None),
            time_range=time_range,
            tools=tools,
        )

    def get_tool_usage(self, developer_id: str) -> List[ToolUsage]:
        try:
            return self._per_tool([developer_id], None, None)
        except SQLAlchemyError as e:
            logger.error("tool_usage_failed", developer_id=developer_id, error=str(e))
            raise StoreUnavailable()

    def get_logs(
        self, developer_ids: Sequence[str], limit: int = 50, offset: int = 0
    ) -> List[UsageLogEntry]:
        if not developer_ids:
            return []
        limit = max(1, min(limit, MAX_LOG_PAGE))
        offset = max(offset, 0)
        try:
            return list(
                self.db.scalars(
                    select(UsageLogEntry)
                    .where(UsageLogEntry.developer_id.in_(developer_ids))
                    .order_by(UsageLogEntry.created_at.desc(), UsageLogEntry.id)
                    .offset(offset)
                    .limit(limit)
                )
            )
        except SQLAlchemyError as e:
            logger.error("usage_logs_failed", error=str(e))
            raise StoreUnavailable()

    def _per_tool(
        self,
        developer_ids: Sequence[str],
        window: Optional[timedelta],
        now: Optional[datetime],
    ) -> List[ToolUsage]:
        query = (
            select(
                UsageLogEntry.tool_name,
                func.sum(UsageLogEntry.usage_count).label("usage_count"),
                func.max(UsageLogEntry.last_used_at).label("last_used_at"),
            )
            .where(UsageLogEntry.developer_id.in_(developer_ids))
            .group_by(UsageLogEntry.tool_name)
            .order_by(func.sum(UsageLogEntry.usage_count).desc(), UsageLogEntry.tool_name)
        )
        if window is not None:
            cutoff = (now or datetime.now(timezone.utc)) - window
            query = query.where(UsageLogEntry.created_at >= cutoff)

        return [
            ToolUsage(
                tool_name=row.tool_name,
                usage_count=int(row.usage_count or 0),
                last_used_at=row.last_used_at,
            )
            for row in self.db.execute(query)
        ]
