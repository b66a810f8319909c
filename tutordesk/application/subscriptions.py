"""
Subscription use cases - create, update with related data (sessions), delete, queries.

Works directly with the ORM. Every mutation is a single transaction:
either the subscription, its sessions and the initial payment are all
written, or nothing is.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutordesk.config import get_settings
from tutordesk.application.schedule_validation import validate_schedule_entries
from tutordesk.domain.context import SchoolContext
from tutordesk.domain.errors import (
    SubscriptionValidationError, ScheduleConflictError, StaleSubscriptionError,
)
from tutordesk.domain.schedule import ScheduleEntry
from tutordesk.domain.session_plan import generate_session_plan
from tutordesk.domain.subscription_draft import SubscriptionDraft, draft_from_record
from tutordesk.infrastructure.db.models import (
    SubscriptionModel, LessonSessionModel, StudentModel, AccountModel,
    CurrencyModel, TransactionModel,
)

logger = logging.getLogger(__name__)

# Sessions in these states carry history and survive a "preserve" rebuild
OUTCOME_STATUSES = ("completed", "cancelled", "absent")


def school_today(ctx: SchoolContext) -> date:
    return datetime.now(ZoneInfo(ctx.timezone)).date()


def _get_student(db: Session, ctx: SchoolContext, student_id: int) -> StudentModel:
    student = db.query(StudentModel).filter(
        StudentModel.id == student_id,
        StudentModel.school_id == ctx.school_id,
    ).first()
    if not student:
        raise SubscriptionValidationError("Student not found")
    return student


def _get_subscription(db: Session, ctx: SchoolContext, sub_id: int) -> SubscriptionModel:
    sub = db.query(SubscriptionModel).filter(
        SubscriptionModel.id == sub_id,
        SubscriptionModel.school_id == ctx.school_id,
    ).first()
    if not sub:
        raise StaleSubscriptionError("Subscription not found. It may have been deleted.")
    return sub


def _check_conflicts(
    db: Session,
    ctx: SchoolContext,
    teacher_id: int | None,
    draft: SubscriptionDraft,
    exclude_subscription_id: int | None = None,
) -> None:
    if not teacher_id:
        return
    result = validate_schedule_entries(
        db, ctx.school_id, teacher_id, draft.start_date, draft.schedule,
        draft.session_duration_minutes,
        exclude_subscription_id=exclude_subscription_id,
        is_admin=ctx.is_admin,
    )
    if result.has_conflict:
        raise ScheduleConflictError(result.conflict_message, result.conflicting_sessions)


def _apply_draft(sub: SubscriptionModel, draft: SubscriptionDraft) -> None:
    sub.session_count = draft.session_count
    sub.duration_months = draft.duration_months
    sub.session_duration_minutes = draft.session_duration_minutes
    sub.start_date = draft.start_date
    sub.schedule = [e.to_record() for e in draft.schedule]
    sub.price_mode = draft.price_mode
    sub.price_per_session = draft.price_per_session if draft.price_mode == "perSession" else None
    sub.fixed_price = draft.fixed_price if draft.price_mode == "fixedPrice" else None
    sub.total_price = draft.compute_total_price()
    sub.currency = draft.currency
    sub.status = draft.status
    sub.notes = draft.notes or None


def _add_sessions(
    db: Session,
    sub: SubscriptionModel,
    teacher_id: int | None,
    start: date,
    count: int,
    taken: set[tuple] | None = None,
) -> int:
    """Insert `count` scheduled sessions from `start`, skipping (date, time) slots in `taken`."""
    if count <= 0:
        return 0
    taken = taken or set()
    schedule = [ScheduleEntry.from_record(item) for item in sub.schedule]
    horizon = get_settings().SESSION_GENERATION_HORIZON_WEEKS
    plan = generate_session_plan(schedule, start, count + len(taken), max_weeks=horizon)

    created = 0
    for planned in plan:
        if created >= count:
            break
        if (planned.scheduled_date, planned.start_time) in taken:
            continue
        db.add(LessonSessionModel(
            subscription_id=sub.id,
            school_id=sub.school_id,
            student_id=sub.student_id,
            teacher_id=teacher_id,
            scheduled_date=planned.scheduled_date,
            start_time=planned.start_time,
            duration_minutes=sub.session_duration_minutes,
            status="scheduled",
        ))
        created += 1
    return created


def rebuild_subscription_sessions(
    db: Session,
    sub: SubscriptionModel,
    teacher_id: int | None,
    preserve_sessions: bool,
    today: date,
) -> dict:
    """Bring session rows in line with the subscription's current schedule.

    Past sessions are never deleted. Preserve also keeps future sessions with
    a recorded outcome; reset drops every session from today on.
    Returns counts: kept / deleted / created.
    """
    sessions = db.query(LessonSessionModel).filter(
        LessonSessionModel.subscription_id == sub.id,
    ).all()

    to_delete = []
    kept = []
    for s in sessions:
        if s.scheduled_date < today:
            kept.append(s)
        elif preserve_sessions and s.status in OUTCOME_STATUSES:
            kept.append(s)
        else:
            to_delete.append(s)

    for s in to_delete:
        db.delete(s)
    db.flush()

    if preserve_sessions:
        for s in kept:
            s.duration_minutes = sub.session_duration_minutes

    remaining = max(sub.session_count - len(kept), 0)
    taken = {(s.scheduled_date, s.start_time) for s in kept}
    created = _add_sessions(db, sub, teacher_id, max(sub.start_date, today), remaining, taken)

    return {"kept": len(kept), "deleted": len(to_delete), "created": created}


# ============================================================================
# Mutations
# ============================================================================


class CreateSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: SchoolContext, student_id: int, draft: SubscriptionDraft) -> int:
        student = _get_student(self.db, ctx, student_id)
        draft.validate_for_submit(is_create=True)

        payment = draft.initial_payment
        account = None
        if payment.amount > 0:
            account = self.db.query(AccountModel).filter(
                AccountModel.id == payment.account_id,
                AccountModel.school_id == ctx.school_id,
            ).first()
            if not account or account.is_archived:
                raise SubscriptionValidationError("Selected account not found")
            if account.currency_code != draft.currency:
                raise SubscriptionValidationError(
                    f"Account currency ({account.currency_code}) must match "
                    f"subscription currency ({draft.currency})"
                )

        _check_conflicts(self.db, ctx, student.teacher_id, draft)

        sub = SubscriptionModel(
            school_id=ctx.school_id,
            student_id=student.id,
            created_by=ctx.user_id,
        )
        _apply_draft(sub, draft)
        self.db.add(sub)
        self.db.flush()

        created = _add_sessions(self.db, sub, student.teacher_id, sub.start_date, sub.session_count)

        if account is not None:
            self.db.add(TransactionModel(
                school_id=ctx.school_id,
                type="income",
                amount=payment.amount,
                currency=draft.currency,
                transaction_date=draft.start_date,
                description="Initial payment for subscription",
                notes=payment.notes or "Initial subscription payment",
                to_account_id=account.id,
                payment_method=payment.method,
                category_id=student.income_category_id,
                subscription_id=sub.id,
                student_id=student.id,
                created_by=ctx.user_id,
            ))

        self.db.commit()
        logger.info(
            "Subscription %d created for student_id=%d (%d sessions, initial payment %s)",
            sub.id, student.id, created, payment.amount if account is not None else 0,
        )
        return sub.id


class UpdateSubscriptionWithRelatedDataUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        ctx: SchoolContext,
        sub_id: int,
        draft: SubscriptionDraft,
        preserve_sessions: bool = True,
        today: date | None = None,
    ) -> dict:
        sub = _get_subscription(self.db, ctx, sub_id)
        draft.validate_for_submit(is_create=False)

        student = self.db.query(StudentModel).filter(StudentModel.id == sub.student_id).first()
        teacher_id = student.teacher_id if student else None
        _check_conflicts(self.db, ctx, teacher_id, draft, exclude_subscription_id=sub.id)

        _apply_draft(sub, draft)
        self.db.flush()
        stats = rebuild_subscription_sessions(
            self.db, sub, teacher_id, preserve_sessions, today or school_today(ctx),
        )
        self.db.commit()
        logger.info(
            "Subscription %d updated (%s): kept=%d deleted=%d created=%d",
            sub.id, "preserve" if preserve_sessions else "reset",
            stats["kept"], stats["deleted"], stats["created"],
        )
        return stats


class DeleteSubscriptionUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: SchoolContext, sub_id: int) -> None:
        sub = _get_subscription(self.db, ctx, sub_id)

        self.db.query(LessonSessionModel).filter(
            LessonSessionModel.subscription_id == sub.id,
        ).delete(synchronize_session=False)
        # Payments stay in the books, only the link goes
        self.db.query(TransactionModel).filter(
            TransactionModel.subscription_id == sub.id,
        ).update({TransactionModel.subscription_id: None}, synchronize_session=False)

        self.db.delete(sub)
        self.db.commit()
        logger.info("Subscription %d deleted", sub_id)


# ============================================================================
# Queries
# ============================================================================


def subscription_to_record(sub: SubscriptionModel) -> dict:
    return {
        "id": sub.id,
        "student_id": sub.student_id,
        "session_count": sub.session_count,
        "duration_months": sub.duration_months,
        "session_duration_minutes": sub.session_duration_minutes,
        "start_date": sub.start_date.isoformat(),
        "schedule": list(sub.schedule or []),
        "price_mode": sub.price_mode,
        "price_per_session": str(sub.price_per_session) if sub.price_per_session is not None else None,
        "fixed_price": str(sub.fixed_price) if sub.fixed_price is not None else None,
        "total_price": str(sub.total_price),
        "currency": sub.currency,
        "status": sub.status,
        "notes": sub.notes or "",
    }


def get_subscription_record(db: Session, ctx: SchoolContext, sub_id: int) -> dict:
    return subscription_to_record(_get_subscription(db, ctx, sub_id))


def get_initial_payment(db: Session, ctx: SchoolContext, sub_id: int) -> dict | None:
    """Earliest income transaction linked to the subscription."""
    tx = db.query(TransactionModel).filter(
        TransactionModel.school_id == ctx.school_id,
        TransactionModel.subscription_id == sub_id,
        TransactionModel.type == "income",
    ).order_by(TransactionModel.created_at, TransactionModel.id).first()
    if not tx:
        return None
    return {
        "amount": str(tx.amount),
        "payment_method": tx.payment_method,
        "notes": tx.notes or "",
        "to_account_id": tx.to_account_id,
    }


def load_subscription_draft(db: Session, ctx: SchoolContext, sub_id: int) -> SubscriptionDraft:
    return draft_from_record(
        get_subscription_record(db, ctx, sub_id),
        get_initial_payment(db, ctx, sub_id),
    )


def list_student_subscriptions(db: Session, ctx: SchoolContext, student_id: int) -> list[dict]:
    _get_student(db, ctx, student_id)
    subs = db.query(SubscriptionModel).filter(
        SubscriptionModel.school_id == ctx.school_id,
        SubscriptionModel.student_id == student_id,
    ).order_by(SubscriptionModel.start_date.desc(), SubscriptionModel.id.desc()).all()
    if not subs:
        return []

    sub_ids = [s.id for s in subs]
    completed = dict(
        db.query(LessonSessionModel.subscription_id, func.count(LessonSessionModel.id))
        .filter(
            LessonSessionModel.subscription_id.in_(sub_ids),
            LessonSessionModel.status == "completed",
        )
        .group_by(LessonSessionModel.subscription_id)
        .all()
    )
    paid = dict(
        db.query(TransactionModel.subscription_id, func.sum(TransactionModel.amount))
        .filter(
            TransactionModel.subscription_id.in_(sub_ids),
            TransactionModel.type == "income",
        )
        .group_by(TransactionModel.subscription_id)
        .all()
    )

    out = []
    for sub in subs:
        record = subscription_to_record(sub)
        record["sessions_completed"] = completed.get(sub.id, 0)
        record["total_paid"] = str(Decimal(paid.get(sub.id) or 0))
        out.append(record)
    return out


def get_student_dialog_context(db: Session, ctx: SchoolContext, student_id: int) -> dict:
    """Teacher of the student and the school's default currency."""
    student = _get_student(db, ctx, student_id)
    currencies = db.query(CurrencyModel).filter(
        CurrencyModel.school_id == ctx.school_id,
    ).order_by(CurrencyModel.id).all()
    default = next((c for c in currencies if c.is_default), currencies[0] if currencies else None)
    return {
        "student_id": student.id,
        "teacher_id": student.teacher_id,
        "default_currency": default.code if default else "",
    }
