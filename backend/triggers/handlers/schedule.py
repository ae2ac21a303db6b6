"""Schedule trigger resolver.

Celery beat ticks once a minute; on each tick every active schedule
workflow is checked with ``should_run``. Cron expressions are matched
with croniter, the simple schedules against a time-of-day window.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from croniter import croniter

from core.constants import ScheduleType, TriggerType
from triggers.base import BaseTriggerResolver, TriggerEvent
from workflow.store import WorkflowDefinition

logger = structlog.get_logger(__name__)

DEFAULT_TIME = "09:00"
DEFAULT_DAY_OF_WEEK = 1  # Monday (0 = Sunday)
DEFAULT_DAY_OF_MONTH = 1
DEFAULT_WINDOW_MINUTES = 5
MINUTES_PER_DAY = 24 * 60


def _parse_time(value: str) -> tuple[int, int]:
    """Parse "HH:MM"; raises ValueError when malformed."""
    hour_text, minute_text = value.split(":")
    hour, minute = int(hour_text), int(minute_text)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"time out of range: {value}")
    return hour, minute


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ScheduleTriggerResolver(BaseTriggerResolver):
    """Resolver for time-based workflows.

    Config schema:
        {
            "schedule_type": "daily" | "weekly" | "monthly" | "cron",
            "time": "09:00",              # daily/weekly/monthly
            "day_of_week": 1,             # weekly, 0 = Sunday
            "day_of_month": 1,            # monthly
            "cron": "0 9 * * 1",          # cron
            "timezone": "Europe/Sofia"    # IANA timezone, default UTC
        }
    """

    trigger_type = TriggerType.SCHEDULE

    def __init__(self, window_minutes: int = DEFAULT_WINDOW_MINUTES):
        self.window_minutes = window_minutes

    def should_run(
        self,
        config: dict,
        now: datetime,
        last_run_at: Optional[datetime] = None,
    ) -> bool:
        """Whether a schedule is due at ``now``.

        Simple schedules are due from their time of day until the window
        closes; a run already started inside the current window makes the
        schedule not due, so minute-by-minute ticks fire it once.
        Invalid configuration never fires.
        """
        is_valid, error = self.validate_config(config)
        if not is_valid:
            logger.warning("Invalid schedule config", error=error)
            return False

        now = _as_utc(now)
        local_now = now.astimezone(ZoneInfo(config.get("timezone") or "UTC"))
        schedule_type = config["schedule_type"]

        if schedule_type == ScheduleType.CRON.value:
            if not croniter.match(config["cron"], local_now.replace(tzinfo=None)):
                return False
            if last_run_at is not None:
                last = _as_utc(last_run_at)
                if last.replace(second=0, microsecond=0) == now.replace(second=0, microsecond=0):
                    return False
            return True

        hour, minute = _parse_time(config.get("time") or DEFAULT_TIME)
        current = local_now.hour * 60 + local_now.minute
        elapsed = (current - (hour * 60 + minute)) % MINUTES_PER_DAY
        if elapsed >= self.window_minutes:
            return False

        # The window may have opened yesterday (e.g. 23:58 + 5 minutes)
        window_day = local_now - timedelta(minutes=elapsed)
        if schedule_type == ScheduleType.WEEKLY.value:
            day_of_week = (window_day.weekday() + 1) % 7
            if day_of_week != config.get("day_of_week", DEFAULT_DAY_OF_WEEK):
                return False
        elif schedule_type == ScheduleType.MONTHLY.value:
            if window_day.day != config.get("day_of_month", DEFAULT_DAY_OF_MONTH):
                return False

        if last_run_at is not None and now - _as_utc(last_run_at) < timedelta(
            minutes=self.window_minutes
        ):
            return False
        return True

    def build_event(self, workflow: WorkflowDefinition, now: datetime) -> TriggerEvent:
        config = workflow.trigger_config or {}
        return TriggerEvent(
            trigger_type=TriggerType.SCHEDULE.value,
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            data={
                "scheduled": True,
                "run_time": now.isoformat(),
                "schedule_type": config.get("schedule_type"),
            },
            timestamp=now,
        )

    def validate_config(self, config: dict) -> tuple[bool, Optional[str]]:
        """Validate schedule config."""
        is_valid, error = super().validate_config(config)
        if not is_valid:
            return is_valid, error

        schedule_type = config.get("schedule_type")
        if schedule_type not in {t.value for t in ScheduleType}:
            return False, f"Unknown schedule_type: {schedule_type}"

        tz_name = config.get("timezone")
        if tz_name:
            try:
                ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                return False, f"Unknown timezone: {tz_name}"

        if schedule_type == ScheduleType.CRON.value:
            cron = config.get("cron")
            if not cron or not isinstance(cron, str):
                return False, "Missing required field: cron"
            if not croniter.is_valid(cron):
                return False, f"Invalid cron expression: {cron}"
            return True, None

        try:
            _parse_time(str(config.get("time") or DEFAULT_TIME))
        except ValueError:
            return False, f"Invalid time: {config.get('time')} (expected HH:MM)"

        if schedule_type == ScheduleType.WEEKLY.value:
            day = config.get("day_of_week", DEFAULT_DAY_OF_WEEK)
            if not isinstance(day, int) or not 0 <= day <= 6:
                return False, "day_of_week must be an integer 0-6 (0 = Sunday)"
        if schedule_type == ScheduleType.MONTHLY.value:
            day = config.get("day_of_month", DEFAULT_DAY_OF_MONTH)
            if not isinstance(day, int) or not 1 <= day <= 31:
                return False, "day_of_month must be an integer 1-31"
        return True, None
