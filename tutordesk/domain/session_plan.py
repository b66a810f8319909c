"""
Session plan: concrete lesson dates generated from a weekly schedule.

Walks weeks starting from the Monday of the week containing start_date,
emits every schedule entry's weekday/time on or after start_date, in
chronological order, until `count` sessions are produced.
"""
from dataclasses import dataclass
from datetime import date, time, timedelta

from tutordesk.domain.schedule import ScheduleEntry, parse_time, weekday_index, to_12_hour


@dataclass(frozen=True)
class PlannedSession:
    scheduled_date: date
    start_time: time
    day: str

    def to_dict(self) -> dict:
        return {
            "date": self.scheduled_date.isoformat(),
            "day": self.day,
            "time": to_12_hour(self.start_time.strftime("%H:%M")),
        }


def generate_session_plan(
    schedule: list[ScheduleEntry],
    start_date: date,
    count: int,
    max_weeks: int = 104,
) -> list[PlannedSession]:
    complete = [e for e in schedule if e.is_valid]
    if count <= 0 or not complete:
        return []

    monday0 = start_date - timedelta(days=start_date.weekday())
    out: list[PlannedSession] = []
    for k in range(max_weeks + 1):
        week_monday = monday0 + timedelta(days=k * 7)
        week: list[PlannedSession] = []
        for entry in complete:
            d = week_monday + timedelta(days=weekday_index(entry.day))
            if d < start_date:
                continue
            week.append(PlannedSession(d, parse_time(entry.time), entry.day))
        week.sort(key=lambda s: (s.scheduled_date, s.start_time))
        out.extend(week)
        if len(out) >= count:
            break
    return out[:count]


def preview_sessions(schedule: list[ScheduleEntry], start_date: date | None, session_count: int,
                     limit: int = 4) -> list[PlannedSession]:
    """First few upcoming sessions, shown next to the form."""
    if start_date is None:
        return []
    return generate_session_plan(schedule, start_date, min(session_count, limit))
