"""Cron schedules evaluated in an IANA timezone."""

import zoneinfo
from datetime import datetime

from croniter import croniter

ALIASES = {
    '@hourly': '0 * * * *',
    '@daily': '0 0 * * *',
    '@midnight': '0 0 * * *',
    '@weekly': '0 0 * * 0',
    '@monthly': '0 0 1 * *',
    '@yearly': '0 0 1 1 *',
    '@annually': '0 0 1 1 *',
}


class CronValidationError(ValueError):
    """A cron expression or timezone that cannot be scheduled."""


def _parse_fields(expression: str) -> str:
    fields = ALIASES.get(expression.strip(), expression.strip())
    if len(fields.split()) != 5:
        raise CronValidationError(f"Invalid cron expression '{expression}': expected 5 fields")
    if not croniter.is_valid(fields):
        raise CronValidationError(f"Invalid cron expression '{expression}'")
    return fields


def _parse_zone(name: str) -> zoneinfo.ZoneInfo:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        raise CronValidationError(f"Unknown timezone: {name}") from None


class CronSchedule:
    """A five-field cron expression bound to a timezone.

    Both parts are checked on construction, so a schedule that exists can
    always be evaluated.
    """

    def __init__(self, expression: str = "0 * * * *", timezone: str = "UTC"):
        self.expression = expression
        self.timezone = timezone
        self._fields = _parse_fields(expression)
        self._zone = _parse_zone(timezone)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r}, {self.timezone!r})"

    def localize(self, moment: datetime) -> datetime:
        # naive datetimes are read as wall-clock time in the schedule's zone
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self._zone)
        return moment.astimezone(self._zone)

    def next_after(self, moment: datetime) -> datetime:
        """First fire time strictly after ``moment``, in the schedule's zone."""
        tick = croniter(self._fields, self.localize(moment)).get_next(datetime)
        return self.localize(tick)

    def ticks_between(self, start: datetime, end: datetime, limit: int = 1000) -> int:
        """Count fire times in ``(start, end]``, stopping at ``limit``."""
        count = 0
        tick = self.next_after(start)
        while tick <= end and count < limit:
            count += 1
            tick = self.next_after(tick)
        return count
