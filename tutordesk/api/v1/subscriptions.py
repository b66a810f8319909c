"""
Subscription API endpoints (RPC-style responses: {success, message, ...})
"""
from datetime import date as date_type
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from tutordesk.api.deps import get_db, get_school_context
from tutordesk.application.schedule_validation import validate_teacher_schedule_overlap
from tutordesk.application.subscriptions import (
    CreateSubscriptionUseCase, UpdateSubscriptionWithRelatedDataUseCase, DeleteSubscriptionUseCase,
    list_student_subscriptions, get_subscription_record, get_initial_payment,
    get_student_dialog_context, load_subscription_draft,
)
from tutordesk.domain.context import SchoolContext
from tutordesk.domain.session_plan import preview_sessions
from tutordesk.domain.subscription_draft import SubscriptionDraft, draft_from_record


router = APIRouter(prefix="/api/v1", tags=["subscriptions"])


# === Request models (camelCase or snake_case keys) ===

class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleItemRequest(_Request):
    day: str = ""
    time: str = ""


class InitialPaymentRequest(_Request):
    amount: Decimal = Decimal("0")
    method: str = "Cash"
    notes: str = ""
    account_id: int | None = None


class SubscriptionRequest(_Request):
    session_count: int = 0
    duration_months: int = 1
    session_duration_minutes: int = 60
    start_date: date_type | None = None
    schedule: list[ScheduleItemRequest] = []
    price_mode: str = "perSession"
    price_per_session: Decimal | None = None
    fixed_price: Decimal | None = None
    currency: str = ""
    status: str = "active"
    notes: str | None = ""
    initial_payment: InitialPaymentRequest | None = None

    def to_draft(self) -> SubscriptionDraft:
        data = self.model_dump(exclude={"initial_payment"})
        payment = self.initial_payment.model_dump() if self.initial_payment else None
        return draft_from_record(data, payment)


class SubscriptionUpdateRequest(SubscriptionRequest):
    preserve_sessions: bool = True


class ValidateOverlapRequest(_Request):
    teacher_id: int
    on_date: date_type = Field(alias="date")
    start_time: str
    duration_minutes: int = 60
    exclude_session_id: int | None = None
    exclude_subscription_id: int | None = None


# === Endpoints ===

@router.post("/schedule/validate")
def validate_schedule(
    req: ValidateOverlapRequest,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    """Does the proposed slot overlap the teacher's existing lessons?"""
    result = validate_teacher_schedule_overlap(
        db, ctx.school_id, req.teacher_id, req.on_date, req.start_time, req.duration_minutes,
        exclude_session_id=req.exclude_session_id,
        exclude_subscription_id=req.exclude_subscription_id,
        is_admin=ctx.is_admin,
    )
    return result.to_dict()


@router.get("/students/{student_id}/dialog-context")
def student_dialog_context(
    student_id: int,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    return get_student_dialog_context(db, ctx, student_id)


@router.get("/students/{student_id}/subscriptions")
def list_subscriptions(
    student_id: int,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    return list_student_subscriptions(db, ctx, student_id)


@router.post("/students/{student_id}/subscriptions")
def create_subscription(
    student_id: int,
    req: SubscriptionRequest,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    sub_id = CreateSubscriptionUseCase(db).execute(ctx, student_id, req.to_draft())
    return {"success": True, "message": "Subscription created successfully!", "subscriptionId": sub_id}


@router.get("/subscriptions/{sub_id}")
def get_subscription(
    sub_id: int,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    return {
        "subscription": get_subscription_record(db, ctx, sub_id),
        "initialPayment": get_initial_payment(db, ctx, sub_id),
    }


@router.put("/subscriptions/{sub_id}")
def update_subscription(
    sub_id: int,
    req: SubscriptionUpdateRequest,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    stats = UpdateSubscriptionWithRelatedDataUseCase(db).execute(
        ctx, sub_id, req.to_draft(), preserve_sessions=req.preserve_sessions,
    )
    return {"success": True, "message": "Subscription updated successfully!", "sessions": stats}


@router.delete("/subscriptions/{sub_id}")
def delete_subscription(
    sub_id: int,
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    DeleteSubscriptionUseCase(db).execute(ctx, sub_id)
    return {"success": True, "message": "Subscription deleted"}


@router.get("/subscriptions/{sub_id}/preview")
def preview_subscription(
    sub_id: int,
    limit: int = Query(4, ge=1, le=52),
    ctx: SchoolContext = Depends(get_school_context),
    db: Session = Depends(get_db),
):
    """Next few lessons according to the saved schedule"""
    draft = load_subscription_draft(db, ctx, sub_id)
    sessions = preview_sessions(draft.schedule, draft.start_date, draft.session_count, limit)
    return [s.to_dict() for s in sessions]
