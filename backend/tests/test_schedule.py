"""Tests for schedule trigger matching."""

from datetime import datetime, timedelta, timezone

import pytest

from triggers.handlers.schedule import ScheduleTriggerResolver
from workflow.store import WorkflowDefinition


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def resolver():
    return ScheduleTriggerResolver(window_minutes=5)


@pytest.mark.unit
class TestDailySchedules:
    """Time-of-day window."""

    CONFIG = {"schedule_type": "daily", "time": "09:00"}

    def test_inside_window(self, resolver):
        assert resolver.should_run(self.CONFIG, utc(2024, 1, 10, 9, 0))
        assert resolver.should_run(self.CONFIG, utc(2024, 1, 10, 9, 4))

    def test_outside_window(self, resolver):
        assert not resolver.should_run(self.CONFIG, utc(2024, 1, 10, 8, 59))
        assert not resolver.should_run(self.CONFIG, utc(2024, 1, 10, 9, 5))

    def test_timezone(self, resolver):
        config = {**self.CONFIG, "timezone": "Europe/Sofia"}  # UTC+2 in winter
        assert resolver.should_run(config, utc(2024, 1, 10, 7, 1))
        assert not resolver.should_run(config, utc(2024, 1, 10, 9, 1))

    def test_window_wraps_midnight(self, resolver):
        config = {"schedule_type": "daily", "time": "23:58"}
        assert resolver.should_run(config, utc(2024, 1, 11, 0, 1))
        assert not resolver.should_run(config, utc(2024, 1, 11, 0, 3))

    def test_default_time_is_nine(self, resolver):
        assert resolver.should_run({"schedule_type": "daily"}, utc(2024, 1, 10, 9, 2))

    def test_recent_run_in_window_is_not_repeated(self, resolver):
        now = utc(2024, 1, 10, 9, 3)
        assert not resolver.should_run(self.CONFIG, now, last_run_at=now - timedelta(minutes=2))
        assert resolver.should_run(self.CONFIG, now, last_run_at=now - timedelta(days=1))

    def test_naive_last_run_is_utc(self, resolver):
        now = utc(2024, 1, 10, 9, 3)
        assert not resolver.should_run(self.CONFIG, now, last_run_at=datetime(2024, 1, 10, 9, 1))


@pytest.mark.unit
class TestWeeklyAndMonthly:
    """Day filters. 2024-01-01 is a Monday."""

    def test_weekly_matching_day(self, resolver):
        config = {"schedule_type": "weekly", "time": "09:00", "day_of_week": 1}
        assert resolver.should_run(config, utc(2024, 1, 1, 9, 1))
        assert not resolver.should_run(config, utc(2024, 1, 3, 9, 1))

    def test_weekly_sunday_is_zero(self, resolver):
        config = {"schedule_type": "weekly", "time": "09:00", "day_of_week": 0}
        assert resolver.should_run(config, utc(2024, 1, 7, 9, 0))

    def test_weekly_window_opened_yesterday(self, resolver):
        config = {"schedule_type": "weekly", "time": "23:58", "day_of_week": 1}
        assert resolver.should_run(config, utc(2024, 1, 2, 0, 1))

    def test_monthly(self, resolver):
        config = {"schedule_type": "monthly", "time": "09:00", "day_of_month": 15}
        assert resolver.should_run(config, utc(2024, 3, 15, 9, 0))
        assert not resolver.should_run(config, utc(2024, 3, 16, 9, 0))


@pytest.mark.unit
class TestCronSchedules:
    """Cron expressions via croniter."""

    def test_matching_minute(self, resolver):
        config = {"schedule_type": "cron", "cron": "*/15 * * * *"}
        assert resolver.should_run(config, utc(2024, 1, 10, 10, 30))
        assert not resolver.should_run(config, utc(2024, 1, 10, 10, 31))

    def test_cron_in_timezone(self, resolver):
        config = {"schedule_type": "cron", "cron": "0 9 * * *", "timezone": "America/New_York"}
        assert resolver.should_run(config, utc(2024, 1, 10, 14, 0))
        assert not resolver.should_run(config, utc(2024, 1, 10, 9, 0))

    def test_same_minute_not_repeated(self, resolver):
        config = {"schedule_type": "cron", "cron": "30 10 * * *"}
        now = utc(2024, 1, 10, 10, 30, 40)
        assert not resolver.should_run(config, now, last_run_at=utc(2024, 1, 10, 10, 30, 5))
        assert resolver.should_run(config, now, last_run_at=utc(2024, 1, 9, 10, 30, 5))


@pytest.mark.unit
class TestScheduleValidation:
    """Config validation; invalid configs never fire."""

    @pytest.mark.parametrize(
        "config, message",
        [
            ({"schedule_type": "hourly"}, "Unknown schedule_type"),
            ({"schedule_type": "daily", "timezone": "Mars/Olympus"}, "Unknown timezone"),
            ({"schedule_type": "cron"}, "Missing required field: cron"),
            ({"schedule_type": "cron", "cron": "every day"}, "Invalid cron expression"),
            ({"schedule_type": "daily", "time": "25:00"}, "Invalid time"),
            ({"schedule_type": "weekly", "day_of_week": 7}, "day_of_week"),
            ({"schedule_type": "monthly", "day_of_month": 0}, "day_of_month"),
        ],
    )
    def test_rejected(self, resolver, config, message):
        is_valid, error = resolver.validate_config(config)
        assert not is_valid
        assert message in error

    def test_invalid_config_never_runs(self, resolver):
        assert not resolver.should_run({"schedule_type": "daily", "time": "9am"}, utc(2024, 1, 10, 9, 0))

    def test_valid(self, resolver):
        assert resolver.validate_config(
            {"schedule_type": "weekly", "time": "07:30", "day_of_week": 5, "timezone": "UTC"}
        ) == (True, None)


@pytest.mark.unit
def test_build_event(resolver):
    wf = WorkflowDefinition(
        id="wf-1",
        organization_id="org-1",
        name="Digest",
        trigger_type="schedule",
        trigger_config={"schedule_type": "daily"},
    )
    now = utc(2024, 1, 10, 9, 0)
    event = resolver.build_event(wf, now)
    assert event.trigger_type == "schedule"
    assert event.timestamp == now
    assert event.data == {
        "scheduled": True,
        "run_time": now.isoformat(),
        "schedule_type": "daily",
    }
