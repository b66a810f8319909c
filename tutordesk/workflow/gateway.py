"""
Gateways between the subscription dialog and the backend.

LocalSubscriptionGateway runs use cases in-process (worker thread per call,
fresh DB session per call). HttpSubscriptionGateway talks to a running API
with `requests`. Both raise the same errors:

  SubscriptionValidationError - 422
  ScheduleConflictError       - 409
  StaleSubscriptionError      - 404
  BackendError                - anything else (network, 5xx, DB failure)
"""
import asyncio
import logging
from datetime import date
from typing import Protocol

import requests
from sqlalchemy.exc import SQLAlchemyError

from tutordesk.application.schedule_validation import OverlapResult, validate_teacher_schedule_overlap
from tutordesk.application.subscriptions import (
    CreateSubscriptionUseCase, UpdateSubscriptionWithRelatedDataUseCase, DeleteSubscriptionUseCase,
    get_subscription_record, get_initial_payment, get_student_dialog_context,
)
from tutordesk.config import get_settings
from tutordesk.domain.context import SchoolContext
from tutordesk.domain.errors import (
    SubscriptionValidationError, ScheduleConflictError, StaleSubscriptionError, BackendError,
)
from tutordesk.domain.subscription_draft import SubscriptionDraft

logger = logging.getLogger(__name__)


class SubscriptionGateway(Protocol):
    async def get_student_context(self, student_id: int) -> dict: ...

    async def load_subscription(self, sub_id: int) -> tuple[dict, dict | None]: ...

    async def validate_overlap(
        self,
        teacher_id: int,
        on_date: date,
        start_time: str,
        duration_minutes: int,
        exclude_subscription_id: int | None = None,
    ) -> OverlapResult: ...

    async def create_subscription(self, student_id: int, draft: SubscriptionDraft) -> dict: ...

    async def update_subscription(
        self, sub_id: int, draft: SubscriptionDraft, preserve_sessions: bool,
    ) -> dict: ...

    async def delete_subscription(self, sub_id: int) -> dict: ...


# ============================================================================
# In-process
# ============================================================================


class LocalSubscriptionGateway:
    def __init__(self, session_factory, ctx: SchoolContext):
        self.session_factory = session_factory
        self.ctx = ctx

    def _call(self, fn, *args, **kwargs):
        db = self.session_factory()
        try:
            return fn(db, *args, **kwargs)
        except (SubscriptionValidationError, ScheduleConflictError, BackendError):
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise BackendError(f"Database error: {e}") from e
        except Exception as e:
            db.rollback()
            logger.exception("Subscription call %s failed", getattr(fn, "__name__", fn))
            raise BackendError(f"Unexpected error: {e}") from e
        finally:
            db.close()

    async def _run(self, fn, *args, **kwargs):
        return await asyncio.to_thread(self._call, fn, *args, **kwargs)

    async def get_student_context(self, student_id: int) -> dict:
        return await self._run(get_student_dialog_context, self.ctx, student_id)

    async def load_subscription(self, sub_id: int) -> tuple[dict, dict | None]:
        def _load(db):
            return get_subscription_record(db, self.ctx, sub_id), get_initial_payment(db, self.ctx, sub_id)
        return await self._run(_load)

    async def validate_overlap(self, teacher_id, on_date, start_time, duration_minutes,
                               exclude_subscription_id=None) -> OverlapResult:
        return await self._run(
            validate_teacher_schedule_overlap,
            self.ctx.school_id, teacher_id, on_date, start_time, duration_minutes,
            exclude_subscription_id=exclude_subscription_id,
            is_admin=self.ctx.is_admin,
        )

    async def create_subscription(self, student_id: int, draft: SubscriptionDraft) -> dict:
        sub_id = await self._run(lambda db: CreateSubscriptionUseCase(db).execute(self.ctx, student_id, draft))
        return {"success": True, "message": "Subscription created successfully!", "subscriptionId": sub_id}

    async def update_subscription(self, sub_id: int, draft: SubscriptionDraft, preserve_sessions: bool) -> dict:
        await self._run(
            lambda db: UpdateSubscriptionWithRelatedDataUseCase(db).execute(
                self.ctx, sub_id, draft, preserve_sessions=preserve_sessions,
            )
        )
        return {"success": True, "message": "Subscription updated successfully!"}

    async def delete_subscription(self, sub_id: int) -> dict:
        await self._run(lambda db: DeleteSubscriptionUseCase(db).execute(self.ctx, sub_id))
        return {"success": True, "message": "Subscription deleted"}


# ============================================================================
# HTTP
# ============================================================================


class HttpSubscriptionGateway:
    def __init__(self, base_url: str | None = None, session: requests.Session | None = None,
                 timeout: float | None = None):
        settings = get_settings()
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout or settings.API_TIMEOUT_SECONDS

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BackendError(f"Request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        message = data.get("message") or str(data.get("detail") or "") or resp.reason or "Request failed"

        if resp.status_code == 422:
            raise SubscriptionValidationError(message)
        if resp.status_code == 409:
            raise ScheduleConflictError(message, data.get("conflictingSessions"))
        if resp.status_code == 404:
            raise StaleSubscriptionError(message)
        if resp.status_code >= 400:
            raise BackendError(f"HTTP {resp.status_code}: {message}")
        return data

    async def _run(self, method: str, path: str, **kwargs) -> dict:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def login(self, email: str, password: str) -> dict:
        """Sign in; the session cookie is kept on self.session for later calls."""
        return await self._run("POST", "/api/v1/auth/login", json={"email": email, "password": password})

    async def logout(self) -> dict:
        return await self._run("POST", "/api/v1/auth/logout")

    async def get_student_context(self, student_id: int) -> dict:
        return await self._run("GET", f"/api/v1/students/{student_id}/dialog-context")

    async def load_subscription(self, sub_id: int) -> tuple[dict, dict | None]:
        data = await self._run("GET", f"/api/v1/subscriptions/{sub_id}")
        return data["subscription"], data.get("initialPayment")

    async def validate_overlap(self, teacher_id, on_date, start_time, duration_minutes,
                               exclude_subscription_id=None) -> OverlapResult:
        data = await self._run("POST", "/api/v1/schedule/validate", json={
            "teacherId": teacher_id,
            "date": on_date.isoformat(),
            "startTime": start_time,
            "durationMinutes": duration_minutes,
            "excludeSubscriptionId": exclude_subscription_id,
        })
        return OverlapResult(
            has_conflict=bool(data.get("hasConflict")),
            conflict_message=data.get("conflictMessage"),
            conflicting_sessions=data.get("conflictingSessions") or [],
        )

    def _draft_body(self, draft: SubscriptionDraft) -> dict:
        body = draft.to_payload()
        payment = draft.initial_payment
        body["initial_payment"] = {
            "amount": str(payment.amount),
            "method": payment.method,
            "notes": payment.notes,
            "account_id": payment.account_id,
        }
        return body

    async def create_subscription(self, student_id: int, draft: SubscriptionDraft) -> dict:
        return await self._run("POST", f"/api/v1/students/{student_id}/subscriptions",
                               json=self._draft_body(draft))

    async def update_subscription(self, sub_id: int, draft: SubscriptionDraft, preserve_sessions: bool) -> dict:
        body = self._draft_body(draft)
        body["preserve_sessions"] = preserve_sessions
        return await self._run("PUT", f"/api/v1/subscriptions/{sub_id}", json=body)

    async def delete_subscription(self, sub_id: int) -> dict:
        return await self._run("DELETE", f"/api/v1/subscriptions/{sub_id}")
