"""
Weekly schedule entries and clock-time normalization.

Canonical internal time form is zero-padded 24-hour "HH:MM".
Persisted / display form is 12-hour "H:MM AM".

    to_24_hour("12:15 AM") -> "00:15"
    to_24_hour("12:15 PM") -> "12:15"
    to_24_hour("3:05 PM")  -> "15:05"
    to_12_hour("00:15")    -> "12:15 AM"
"""
import re
from dataclasses import dataclass
from datetime import date, time, timedelta

from tutordesk.domain.errors import SubscriptionValidationError

DAYS_OF_WEEK = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
]

_TIME_12H = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TIME_24H = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")
_CANONICAL_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def to_24_hour(value: str) -> str:
    """Normalize a 12-hour or 24-hour clock string to "HH:MM". Empty stays empty."""
    if not value or not value.strip():
        return ""

    m = _TIME_12H.match(value)
    if m:
        hours, minutes, modifier = int(m.group(1)), int(m.group(2)), m.group(3).upper()
        if hours < 1 or hours > 12 or minutes > 59:
            raise SubscriptionValidationError(f"Invalid time: {value}")
        if hours == 12:
            hours = 0
        if modifier == "PM":
            hours += 12
        return f"{hours:02d}:{minutes:02d}"

    m = _TIME_24H.match(value)
    if m:
        hours, minutes = int(m.group(1)), int(m.group(2))
        if hours > 23 or minutes > 59:
            raise SubscriptionValidationError(f"Invalid time: {value}")
        return f"{hours:02d}:{minutes:02d}"

    raise SubscriptionValidationError(f"Invalid time: {value}")


def to_12_hour(value: str) -> str:
    """Format a clock string as "H:MM AM/PM". Empty stays empty."""
    if not value or not value.strip():
        return ""
    hours, minutes = (int(p) for p in to_24_hour(value).split(":"))
    period = "PM" if hours >= 12 else "AM"
    display = 12 if hours == 0 else hours - 12 if hours > 12 else hours
    return f"{display}:{minutes:02d} {period}"


def parse_time(value: str) -> time:
    hours, minutes = (int(p) for p in to_24_hour(value).split(":"))
    return time(hours, minutes)


def minutes_since_midnight(t: time) -> int:
    return t.hour * 60 + t.minute


def normalize_day(value: str) -> str:
    """Canonical weekday name ("monday" -> "Monday"). Empty stays empty."""
    if not value or not value.strip():
        return ""
    name = value.strip().capitalize()
    if name not in DAYS_OF_WEEK:
        raise SubscriptionValidationError(f"Invalid day of week: {value}")
    return name


def weekday_index(day: str) -> int:
    """Monday=0 .. Sunday=6, same as date.weekday()."""
    return DAYS_OF_WEEK.index(normalize_day(day))


def first_occurrence_on_or_after(start: date, day: str) -> date:
    """First date >= start that falls on the given weekday."""
    delta = (weekday_index(day) - start.weekday()) % 7
    return start + timedelta(days=delta)


@dataclass
class ScheduleEntry:
    day: str = ""
    time: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.day) and bool(self.time)

    @property
    def is_valid(self) -> bool:
        """Complete and in canonical form (weekday name, "HH:MM")."""
        return self.day in DAYS_OF_WEEK and _CANONICAL_TIME.match(self.time) is not None

    def to_record(self) -> dict:
        """Persisted form: 12-hour time, as stored in subscriptions.schedule."""
        return {"day": self.day, "time": to_12_hour(self.time)}

    @classmethod
    def from_record(cls, raw: dict) -> "ScheduleEntry":
        return cls(
            day=normalize_day(raw.get("day") or ""),
            time=to_24_hour(raw.get("time") or ""),
        )


def schedule_days(schedule: list[ScheduleEntry]) -> list[str]:
    return sorted(e.day for e in schedule)


def schedule_slots(schedule: list[ScheduleEntry]) -> list[str]:
    return sorted(f"{e.day}:{e.time}" for e in schedule)
