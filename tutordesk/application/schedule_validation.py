"""
Teacher schedule overlap validation.

A proposed lesson [start, start + duration) conflicts with any *scheduled*
lesson of the same teacher on the same date whose interval intersects it.
Lessons of the subscription being edited (or a single lesson being moved)
are excluded so an edit never conflicts with itself.
"""
import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from tutordesk.domain.schedule import (
    ScheduleEntry, parse_time, minutes_since_midnight, to_12_hour,
    first_occurrence_on_or_after, DAYS_OF_WEEK,
)
from tutordesk.infrastructure.db.models import LessonSessionModel, StudentModel, TeacherModel

logger = logging.getLogger(__name__)


@dataclass
class OverlapResult:
    has_conflict: bool
    conflict_message: str | None = None
    conflicting_sessions: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        out = {"hasConflict": self.has_conflict}
        if self.conflict_message:
            out["conflictMessage"] = self.conflict_message
        if self.conflicting_sessions:
            out["conflictingSessions"] = self.conflicting_sessions
        return out


def _fmt_minutes(total: int) -> str:
    return to_12_hour(f"{total // 60:02d}:{total % 60:02d}")


def validate_teacher_schedule_overlap(
    db: Session,
    school_id: int,
    teacher_id: int,
    on_date: date,
    start_time: str,
    duration_minutes: int,
    exclude_session_id: int | None = None,
    exclude_subscription_id: int | None = None,
    is_admin: bool = False,
) -> OverlapResult:
    new_start = minutes_since_midnight(parse_time(start_time))
    new_end = new_start + duration_minutes

    q = db.query(LessonSessionModel, StudentModel.name).outerjoin(
        StudentModel, StudentModel.id == LessonSessionModel.student_id,
    ).filter(
        LessonSessionModel.school_id == school_id,
        LessonSessionModel.teacher_id == teacher_id,
        LessonSessionModel.scheduled_date == on_date,
        LessonSessionModel.status == "scheduled",
    )
    if exclude_session_id:
        q = q.filter(LessonSessionModel.id != exclude_session_id)
    if exclude_subscription_id:
        q = q.filter(LessonSessionModel.subscription_id != exclude_subscription_id)

    conflicts = []
    for lesson, student_name in q.order_by(LessonSessionModel.start_time).all():
        start = minutes_since_midnight(lesson.start_time)
        end = start + lesson.duration_minutes
        # Overlap: NOT (existing.end <= new.start OR new.end <= existing.start)
        if start < new_end and new_start < end:
            conflicts.append({
                "id": lesson.id,
                "startTime": _fmt_minutes(start),
                "endTime": _fmt_minutes(end),
                "studentName": student_name or f"#{lesson.student_id}",
            })

    if not conflicts:
        return OverlapResult(has_conflict=False)

    first = conflicts[0]
    who = "The teacher"
    if is_admin:
        teacher = db.query(TeacherModel).filter(TeacherModel.id == teacher_id).first()
        if teacher:
            who = teacher.name
    message = (
        f"{who} already has a lesson with {first['studentName']} on "
        f"{DAYS_OF_WEEK[on_date.weekday()]} {on_date.isoformat()} "
        f"from {first['startTime']} to {first['endTime']}"
    )
    if len(conflicts) > 1:
        message += f" (and {len(conflicts) - 1} more)"

    logger.info("Schedule conflict for teacher_id=%s on %s at %s", teacher_id, on_date, start_time)
    return OverlapResult(has_conflict=True, conflict_message=message, conflicting_sessions=conflicts)


def validate_schedule_entries(
    db: Session,
    school_id: int,
    teacher_id: int,
    start_date: date,
    schedule: list[ScheduleEntry],
    duration_minutes: int,
    exclude_subscription_id: int | None = None,
    is_admin: bool = False,
) -> OverlapResult:
    """Check each entry at its first occurrence on/after start_date; stop at the first conflict."""
    for entry in schedule:
        on_date = first_occurrence_on_or_after(start_date, entry.day)
        result = validate_teacher_schedule_overlap(
            db, school_id, teacher_id, on_date, entry.time, duration_minutes,
            exclude_subscription_id=exclude_subscription_id, is_admin=is_admin,
        )
        if result.has_conflict:
            return result
    return OverlapResult(has_conflict=False)
