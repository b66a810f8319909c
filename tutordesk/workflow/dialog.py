"""
Add / edit subscription dialog as an explicit state machine.

    EDITING ──submit──▶ VALIDATING ──▶ CONFIRMING_CHANGES ──keep/reset──▶ SUBMITTING ──▶ DONE
       ▲                    │                 │ cancel                        │
       │                    ▼                 ▼                               ▼
       └──── edit ────── ERROR ◀──────────────┴─────────── EDITING         ERROR

Create mode and edits without changes skip CONFIRMING_CHANGES (an unchanged
edit is sent with preserve_sessions=True). Conflict checks run debounced in
the background while editing, and once more, mandatorily, on submit.
After close() nothing coming back from the gateway touches the dialog.
"""
import logging
from datetime import date
from typing import Any, Callable

from tutordesk.config import get_settings
from tutordesk.domain.change_detector import ChangeRecord, detect_changes
from tutordesk.domain.errors import (
    SubscriptionValidationError, ScheduleConflictError, StaleSubscriptionError, BackendError,
)
from tutordesk.domain.schedule import first_occurrence_on_or_after
from tutordesk.domain.session_plan import PlannedSession, preview_sessions
from tutordesk.domain.subscription_draft import (
    FORM_FIELDS, PAYMENT_FIELDS, SubscriptionDraft, draft_from_record,
)
from tutordesk.workflow.debounce import RestartableTimer
from tutordesk.workflow.gateway import SubscriptionGateway

logger = logging.getLogger(__name__)

EDITING = "EDITING"
VALIDATING = "VALIDATING"
CONFIRMING_CHANGES = "CONFIRMING_CHANGES"
SUBMITTING = "SUBMITTING"
DONE = "DONE"
ERROR = "ERROR"

TRANSITIONS = {
    EDITING: {VALIDATING},
    VALIDATING: {CONFIRMING_CHANGES, SUBMITTING, ERROR},
    CONFIRMING_CHANGES: {SUBMITTING, EDITING},
    SUBMITTING: {DONE, ERROR},
    ERROR: {EDITING, VALIDATING},
    DONE: set(),
}

VALIDATION_FAILED_MESSAGE = "Failed to validate schedule. Please try again."
SAVE_FAILED_MESSAGE = "Failed to save subscription. Please try again."


class DialogStateError(RuntimeError):
    pass


class SubscriptionDialog:
    def __init__(
        self,
        gateway: SubscriptionGateway,
        student_id: int,
        draft: SubscriptionDraft,
        teacher_id: int | None = None,
        subscription_id: int | None = None,
        original: SubscriptionDraft | None = None,
        on_success: Callable[[], Any] | None = None,
        debounce_seconds: float | None = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = get_settings().SCHEDULE_VALIDATION_DEBOUNCE_MS / 1000
        self.gateway = gateway
        self.student_id = student_id
        self.teacher_id = teacher_id
        self.subscription_id = subscription_id
        self.draft = draft
        self.original = original
        self.on_success = on_success

        self.state = EDITING
        self.closed = False
        self.inline_error: str | None = None
        self.conflict_message: str | None = None
        self.toast: tuple[str, str] | None = None  # (variant, message)
        self.change_record: ChangeRecord | None = None
        self.is_validating = False
        self.result: dict | None = None

        self._timer = RestartableTimer(debounce_seconds)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @classmethod
    async def open_create(cls, gateway: SubscriptionGateway, student_id: int, **kwargs) -> "SubscriptionDialog":
        context = await gateway.get_student_context(student_id)
        draft = SubscriptionDraft(
            currency=context.get("default_currency") or "",
            session_duration_minutes=get_settings().DEFAULT_SESSION_DURATION_MINUTES,
        )
        return cls(gateway, student_id, draft, teacher_id=context.get("teacher_id"), **kwargs)

    @classmethod
    async def open_edit(cls, gateway: SubscriptionGateway, subscription_id: int, **kwargs) -> "SubscriptionDialog":
        record, initial_payment = await gateway.load_subscription(subscription_id)
        student_id = record.get("student_id") or record.get("studentId")
        context = await gateway.get_student_context(student_id)
        return cls(
            gateway, student_id,
            draft=draft_from_record(record, initial_payment),
            teacher_id=context.get("teacher_id"),
            subscription_id=subscription_id,
            original=draft_from_record(record, initial_payment),
            **kwargs,
        )

    @property
    def is_edit(self) -> bool:
        return self.subscription_id is not None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: str) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise DialogStateError(f"Invalid transition {self.state} -> {new_state}")
        logger.debug("Subscription dialog: %s -> %s", self.state, new_state)
        self.state = new_state

    def _fail(self, message: str, kind: str) -> None:
        if kind == "validation":
            self.inline_error = message
        elif kind == "conflict":
            self.conflict_message = message
        else:
            self.toast = ("error", message)
        self._transition(ERROR)

    def _ensure_editable(self) -> None:
        if self.closed:
            raise DialogStateError("Dialog is closed")
        if self.state == ERROR:
            self._transition(EDITING)
        elif self.state != EDITING:
            raise DialogStateError(f"Cannot edit while {self.state}")

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def add_schedule_entry(self) -> None:
        self._ensure_editable()
        self.draft.add_schedule_entry()
        self._dependencies_changed()

    def update_schedule_entry(self, index: int, field_name: str, value: str) -> None:
        self._ensure_editable()
        self.draft.update_schedule_entry(index, field_name, value)
        self._dependencies_changed()

    def remove_schedule_entry(self, index: int) -> None:
        self._ensure_editable()
        self.draft.remove_schedule_entry(index)
        self._dependencies_changed()

    def set_start_date(self, value: date | None) -> None:
        self._ensure_editable()
        self.draft.start_date = value
        self._dependencies_changed()

    def set_field(self, name: str, value) -> None:
        self._ensure_editable()
        if name not in FORM_FIELDS:
            raise DialogStateError(f"Unknown field: {name}")
        self.draft.set_field(name, value)

    def set_initial_payment(self, **changes) -> None:
        self._ensure_editable()
        unknown = set(changes) - set(PAYMENT_FIELDS)
        if unknown:
            raise DialogStateError(f"Unknown payment field: {', '.join(sorted(unknown))}")
        self.draft.set_initial_payment(**changes)

    def preview(self, limit: int = 4) -> list[PlannedSession]:
        return preview_sessions(self.draft.schedule, self.draft.start_date, self.draft.session_count, limit)

    # ------------------------------------------------------------------
    # Conflict checks
    # ------------------------------------------------------------------

    def _dependency_key(self) -> tuple:
        return (self.draft.start_date, tuple((e.day, e.time) for e in self.draft.schedule))

    def _dependencies_changed(self) -> None:
        self.inline_error = None
        if not self.teacher_id or self.draft.start_date is None or not self.draft.schedule_complete:
            self._timer.cancel()
            return
        self._timer.schedule(self._dependency_key(), self._background_validate)

    async def _check_conflicts(self) -> str | None:
        """Ask the backend about every schedule entry; first conflict message or None."""
        for entry in list(self.draft.schedule):
            result = await self.gateway.validate_overlap(
                self.teacher_id,
                first_occurrence_on_or_after(self.draft.start_date, entry.day),
                entry.time,
                self.draft.session_duration_minutes,
                exclude_subscription_id=self.subscription_id,
            )
            if result.has_conflict:
                return result.conflict_message or "Schedule conflict"
        return None

    async def _background_validate(self) -> None:
        self.is_validating = True
        try:
            message = await self._check_conflicts()
        except Exception:
            logger.exception("Background schedule validation failed")
            message = VALIDATION_FAILED_MESSAGE
        finally:
            if not self.closed:
                self.is_validating = False
        if self.closed:
            return
        self.inline_error = message

    async def wait_for_validation(self) -> None:
        await self._timer.wait()

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(self) -> str:
        if self.closed or self.state not in (EDITING, ERROR):
            return self.state

        # The pre-submit check below supersedes any pending background check
        self._timer.cancel()
        self.inline_error = None
        self.conflict_message = None
        self.toast = None
        self._transition(VALIDATING)

        try:
            self.draft.validate_for_submit(is_create=not self.is_edit)
        except SubscriptionValidationError as e:
            self._fail(str(e), "validation")
            return self.state
        except Exception:
            logger.exception("Subscription draft check failed")
            self._fail(SAVE_FAILED_MESSAGE, "backend")
            return self.state

        if self.teacher_id:
            self.is_validating = True
            try:
                message = await self._check_conflicts()
            except Exception:
                logger.exception("Pre-submit schedule validation failed")
                if not self.closed:
                    self.is_validating = False
                    self._fail(VALIDATION_FAILED_MESSAGE, "backend")
                return self.state
            if self.closed:
                return self.state
            self.is_validating = False
            if message:
                self._fail(message, "conflict")
                return self.state

        if self.is_edit:
            try:
                self.change_record = detect_changes(self.original, self.draft)
            except Exception:
                logger.exception("Change detection failed")
                self._fail(SAVE_FAILED_MESSAGE, "backend")
                return self.state
            if self.change_record.has_changes:
                self._transition(CONFIRMING_CHANGES)
                return self.state
            return await self._send(preserve_sessions=True)

        return await self._send(preserve_sessions=None)

    @property
    def suggest_preserve(self) -> bool | None:
        if self.change_record is None:
            return None
        return self.change_record.suggest_preserve

    async def keep_sessions(self) -> str:
        return await self._confirm(True)

    async def reset_sessions(self) -> str:
        return await self._confirm(False)

    async def _confirm(self, preserve_sessions: bool) -> str:
        if self.state != CONFIRMING_CHANGES:
            raise DialogStateError(f"Nothing to confirm while {self.state}")
        return await self._send(preserve_sessions)

    def cancel_confirmation(self) -> None:
        if self.state != CONFIRMING_CHANGES:
            raise DialogStateError(f"Nothing to cancel while {self.state}")
        self.change_record = None
        self._transition(EDITING)

    def dismiss_conflict(self) -> None:
        self.conflict_message = None

    async def _send(self, preserve_sessions: bool | None) -> str:
        self._transition(SUBMITTING)
        try:
            if self.is_edit:
                result = await self.gateway.update_subscription(
                    self.subscription_id, self.draft, preserve_sessions,
                )
            else:
                result = await self.gateway.create_subscription(self.student_id, self.draft)
            if not result.get("success", False):
                raise BackendError(result.get("message") or "Failed to save subscription")
        except SubscriptionValidationError as e:
            if not self.closed:
                self._fail(str(e), "validation")
            return self.state
        except ScheduleConflictError as e:
            if not self.closed:
                self._fail(e.message, "conflict")
            return self.state
        except StaleSubscriptionError as e:
            if not self.closed:
                self._fail(str(e), "backend")
            return self.state
        except BackendError as e:
            logger.exception("Saving subscription failed")
            if not self.closed:
                self._fail(str(e) or SAVE_FAILED_MESSAGE, "backend")
            return self.state
        except Exception:
            logger.exception("Saving subscription failed")
            if not self.closed:
                self._fail(SAVE_FAILED_MESSAGE, "backend")
            return self.state

        if self.closed:
            return self.state
        self.result = result
        self.toast = ("success", result.get("message") or "Saved")
        self._transition(DONE)
        self.close()
        if self.on_success is not None:
            self.on_success()
        return self.state

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._timer.cancel()
        self.closed = True
