"""
Unit tests for usage logging and reporting

Tests:
- Entries are written in their own session
- Write failures return False instead of raising
- Per-tool aggregation and time range filtering
- Log pagination
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from developer_gateway.exceptions import ValidationFailed
from developer_gateway.models import UsageLogEntry
from developer_gateway.services.usage_logger import (
    MAX_LOG_PAGE,
    UsageLogger,
    UsageReporter,
    parse_time_range,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _add_entry(db_session, developer_id, tool_name, created_at, entry_id):
    db_session.add(
        UsageLogEntry(
            id=entry_id,
            developer_id=developer_id,
            tool_name=tool_name,
            usage_count=1,
            outcome="success",
            created_at=created_at,
            last_used_at=created_at,
        )
    )
    db_session.commit()


@pytest.mark.unit
class TestUsageLogger:
    """UsageLogger.record"""

    def test_record_writes_entry(self, db_session, session_factory, created_developer):
        developer_id = created_developer.developer.id

        written = UsageLogger(session_factory).record(
            developer_id,
            "health",
            endpoint="/v1/health",
            method="GET",
            status_code=200,
            ip_address="10.0.0.1",
            user_agent="pytest",
            processing_time_ms=3,
        )

        assert written is True
        entries = db_session.query(UsageLogEntry).all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.developer_id == developer_id
        assert entry.tool_name == "health"
        assert entry.outcome == "success"
        assert entry.usage_count == 1
        assert entry.status_code == 200
        assert entry.created_at is not None

    def test_error_message_is_truncated(self, db_session, session_factory, created_developer):
        UsageLogger(session_factory).record(
            created_developer.developer.id, "health", "error", error_message="x" * 2000
        )
        entry = db_session.query(UsageLogEntry).one()
        assert entry.outcome == "error"
        assert len(entry.error_message) == 500

    def test_unknown_developer_is_swallowed(self, db_session, session_factory):
        # Foreign key violation on the log table
        assert UsageLogger(session_factory).record("dev_missing", "health") is False
        assert db_session.query(UsageLogEntry).count() == 0

    def test_store_failure_returns_false(self):
        session = MagicMock()
        session.commit.side_effect = RuntimeError("disk full")

        assert UsageLogger(lambda: session).record("dev_1", "health") is False
        session.rollback.assert_called_once()
        session.close.assert_called_once()


@pytest.mark.unit
class TestTimeRanges:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("24h", timedelta(hours=24)),
            ("7d", timedelta(days=7)),
            ("30d", timedelta(days=30)),
            ("90d", timedelta(days=90)),
            ("all", None),
        ],
    )
    def test_supported(self, value, expected):
        assert parse_time_range(value) == expected

    def test_unsupported(self):
        with pytest.raises(ValidationFailed) as exc_info:
            parse_time_range("1y")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "invalid_time_range"


@pytest.mark.unit
class TestUsageReporter:
    """UsageReporter summaries and logs"""

    def test_summary_groups_by_tool(self, db_session, created_developer):
        developer_id = created_developer.developer.id
        for i in range(3):
            _add_entry(db_session, developer_id, "search", NOW - timedelta(hours=i + 1), f"log_s{i}")
        _add_entry(db_session, developer_id, "health", NOW - timedelta(hours=2), "log_h0")

        summary = UsageReporter(db_session).get_usage_summary([developer_id], "24h", now=NOW)

        assert summary.time_range == "24h"
        assert [(t.tool_name, t.usage_count) for t in summary.tools] == [
            ("search", 3),
            ("health", 1),
        ]
        assert summary.monthly_limit == 1000
        assert summary.remaining == 1000

    def test_time_range_filters_old_entries(self, db_session, created_developer):
        developer_id = created_developer.developer.id
        _add_entry(db_session, developer_id, "search", NOW - timedelta(hours=1), "log_recent")
        _add_entry(db_session, developer_id, "search", NOW - timedelta(days=10), "log_old")
        _add_entry(db_session, developer_id, "export", NOW - timedelta(days=60), "log_older")

        reporter = UsageReporter(db_session)

        def counts(time_range):
            summary = reporter.get_usage_summary([developer_id], time_range, now=NOW)
            return {t.tool_name: t.usage_count for t in summary.tools}

        assert counts("24h") == {"search": 1}
        assert counts("30d") == {"search": 2}
        assert counts("90d") == {"search": 2, "export": 1}
        assert counts("all") == {"search": 2, "export": 1}

    def test_summary_aggregates_several_developers(self, db_session, developer_service):
        first = developer_service.create_developer(name="A", monthly_limit=100, owner_user_id="u1")
        second = developer_service.create_developer(
            name="B", monthly_limit=50, rate_limit_per_minute=20, owner_user_id="u1"
        )

        summary = UsageReporter(db_session).get_usage_summary(
            [first.developer.id, second.developer.id]
        )

        assert summary.monthly_limit == 150
        assert summary.rate_limit_per_minute == 100
        assert summary.tools == []

    def test_summary_for_no_developers(self, db_session):
        summary = UsageReporter(db_session).get_usage_summary([])
        assert summary.monthly_limit == 0
        assert summary.tools == []

    def test_invalid_time_range(self, db_session, created_developer):
        with pytest.raises(ValidationFailed):
            UsageReporter(db_session).get_usage_summary([created_developer.developer.id], "1y")

    def test_logs_newest_first_with_pagination(self, db_session, created_developer):
        developer_id = created_developer.developer.id
        for i in range(5):
            _add_entry(db_session, developer_id, "search", NOW - timedelta(minutes=i), f"log_{i}")

        reporter = UsageReporter(db_session)
        first_page = reporter.get_logs([developer_id], limit=2)
        second_page = reporter.get_logs([developer_id], limit=2, offset=2)

        assert [e.id for e in first_page] == ["log_0", "log_1"]
        assert [e.id for e in second_page] == ["log_2", "log_3"]

    def test_logs_are_scoped_to_developers(self, db_session, developer_service):
        mine = developer_service.create_developer(name="Mine")
        theirs = developer_service.create_developer(name="Theirs")
        _add_entry(db_session, mine.developer.id, "search", NOW, "log_mine")
        _add_entry(db_session, theirs.developer.id, "search", NOW, "log_theirs")

        logs = UsageReporter(db_session).get_logs([mine.developer.id])

        assert [e.id for e in logs] == ["log_mine"]
        assert UsageReporter(db_session).get_logs([]) == []

    def test_page_size_is_capped(self, db_session, created_developer):
        developer_id = created_developer.developer.id
        db_session.add_all(
            UsageLogEntry(
                id=f"log_{i:04d}",
                developer_id=developer_id,
                tool_name="search",
                usage_count=1,
                outcome="success",
                created_at=NOW,
                last_used_at=NOW,
            )
            for i in range(MAX_LOG_PAGE + 5)
        )
        db_session.commit()

        logs = UsageReporter(db_session).get_logs([developer_id], limit=10_000)

        assert len(logs) == MAX_LOG_PAGE

    def test_tool_usage(self, db_session, created_developer):
        developer_id = created_developer.developer.id
        _add_entry(db_session, developer_id, "search", NOW - timedelta(days=400), "log_ancient")

        usage = UsageReporter(db_session).get_tool_usage(developer_id)

        assert len(usage) == 1
        assert usage[0].tool_name == "search"
        assert usage[0].usage_count == 1
