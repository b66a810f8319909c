"""Tests for the add/edit subscription dialog state machine (fake gateway)"""
import asyncio
import pytest
from datetime import date
from decimal import Decimal

from tutordesk.application.schedule_validation import OverlapResult
from tutordesk.domain.errors import (
    SubscriptionValidationError, ScheduleConflictError, StaleSubscriptionError, BackendError,
)
from tutordesk.domain.schedule import ScheduleEntry
from tutordesk.domain.subscription_draft import SubscriptionDraft
from tutordesk.workflow.dialog import (
    SubscriptionDialog, DialogStateError, VALIDATION_FAILED_MESSAGE, SAVE_FAILED_MESSAGE,
    EDITING, CONFIRMING_CHANGES, DONE, ERROR,
)

DEBOUNCE = 0.01
START = date(2030, 1, 7)  # Monday

RECORD = {
    "id": 42,
    "student_id": 7,
    "session_count": 8,
    "duration_months": 2,
    "session_duration_minutes": 60,
    "start_date": "2030-01-07",
    "schedule": [{"day": "Monday", "time": "2:00 PM"}],
    "price_mode": "perSession",
    "price_per_session": "150.00",
    "fixed_price": None,
    "currency": "EGP",
    "status": "active",
    "notes": "",
}


class FakeGateway:
    def __init__(self):
        self.validate_calls = []
        self.created = []
        self.updated = []
        self.conflict_message = None
        self.validate_error = None
        self.save_error = None
        self.validate_gate = None

    async def get_student_context(self, student_id):
        return {"student_id": student_id, "teacher_id": 3, "default_currency": "EGP"}

    async def load_subscription(self, sub_id):
        return dict(RECORD, id=sub_id), None

    async def validate_overlap(self, teacher_id, on_date, start_time, duration_minutes,
                               exclude_subscription_id=None):
        self.validate_calls.append((teacher_id, on_date, start_time, duration_minutes, exclude_subscription_id))
        if self.validate_gate is not None:
            await self.validate_gate.wait()
        if self.validate_error is not None:
            raise self.validate_error
        if self.conflict_message:
            return OverlapResult(has_conflict=True, conflict_message=self.conflict_message)
        return OverlapResult(has_conflict=False)

    async def create_subscription(self, student_id, draft):
        if self.save_error is not None:
            raise self.save_error
        self.created.append((student_id, draft.to_payload()))
        return {"success": True, "message": "Subscription created successfully!", "subscriptionId": 1}

    async def update_subscription(self, sub_id, draft, preserve_sessions):
        if self.save_error is not None:
            raise self.save_error
        self.updated.append((sub_id, preserve_sessions))
        return {"success": True, "message": "Subscription updated successfully!"}

    async def delete_subscription(self, sub_id):
        return {"success": True, "message": "Subscription deleted"}


def _ready_draft(**overrides) -> SubscriptionDraft:
    fields = dict(
        session_count=4,
        start_date=START,
        schedule=[ScheduleEntry("Monday", "14:00")],
        price_per_session=Decimal("100"),
        currency="EGP",
    )
    fields.update(overrides)
    return SubscriptionDraft(**fields)


def _create_dialog(gateway, draft=None, **kwargs):
    return SubscriptionDialog(
        gateway, 7, draft if draft is not None else _ready_draft(),
        teacher_id=3, debounce_seconds=DEBOUNCE, **kwargs,
    )


@pytest.fixture
def gateway():
    return FakeGateway()


# ======================================================================
# Opening
# ======================================================================

class TestOpening:
    def test_open_create_uses_default_currency(self, gateway):
        dialog = asyncio.run(SubscriptionDialog.open_create(gateway, 7, debounce_seconds=DEBOUNCE))
        assert dialog.state == EDITING
        assert dialog.teacher_id == 3
        assert dialog.draft.currency == "EGP"
        assert dialog.draft.schedule == []
        assert not dialog.is_edit

    def test_open_edit_hydrates_draft(self, gateway):
        dialog = asyncio.run(SubscriptionDialog.open_edit(gateway, 42, debounce_seconds=DEBOUNCE))
        assert dialog.is_edit
        assert dialog.student_id == 7
        assert dialog.draft.schedule == [ScheduleEntry("Monday", "14:00")]
        assert dialog.draft.price_per_session == Decimal("150.00")
        assert dialog.original is not dialog.draft
        assert dialog.original == dialog.draft


# ======================================================================
# Background validation
# ======================================================================

class TestBackgroundValidation:
    def test_rapid_edits_validate_once_with_final_state(self, gateway):
        async def scenario():
            dialog = _create_dialog(gateway)
            for t in ("9:00 AM", "10:00 AM", "11:00 AM", "1:00 PM", "3:30 PM"):
                dialog.update_schedule_entry(0, "time", t)
            await dialog.wait_for_validation()
            return dialog

        dialog = asyncio.run(scenario())
        assert gateway.validate_calls == [(3, START, "15:30", 60, None)]
        assert dialog.inline_error is None
        assert dialog.is_validating is False

    def test_incomplete_schedule_not_validated(self, gateway):
        async def scenario():
            dialog = _create_dialog(gateway, SubscriptionDraft(start_date=START))
            dialog.add_schedule_entry()
            dialog.update_schedule_entry(0, "day", "Monday")
            await asyncio.sleep(DEBOUNCE * 3)
            await dialog.wait_for_validation()

        asyncio.run(scenario())
        assert gateway.validate_calls == []

    def test_entry_checked_at_first_weekday_occurrence(self, gateway):
        async def scenario():
            dialog = _create_dialog(gateway, SubscriptionDraft(start_date=START))
            dialog.add_schedule_entry()
            dialog.update_schedule_entry(0, "day", "Thursday")
            dialog.update_schedule_entry(0, "time", "5:00 PM")
            await dialog.wait_for_validation()

        asyncio.run(scenario())
        assert gateway.validate_calls == [(3, date(2030, 1, 10), "17:00", 60, None)]

    def test_conflict_shown_inline(self, gateway):
        gateway.conflict_message = "The teacher already has a lesson with Ali"

        async def scenario():
            dialog = _create_dialog(gateway)
            dialog.set_start_date(date(2030, 1, 14))
            await dialog.wait_for_validation()
            return dialog

        dialog = asyncio.run(scenario())
        assert dialog.inline_error == "The teacher already has a lesson with Ali"
        assert dialog.state == EDITING

    def test_backend_failure_is_not_treated_as_no_conflict(self, gateway):
        gateway.validate_error = BackendError("connection refused")

        async def scenario():
            dialog = _create_dialog(gateway)
            dialog.update_schedule_entry(0, "time", "4:00 PM")
            await dialog.wait_for_validation()
            return dialog

        dialog = asyncio.run(scenario())
        assert dialog.inline_error == VALIDATION_FAILED_MESSAGE

    def test_unexpected_validator_error_shown_inline(self, gateway):
        gateway.validate_error = RuntimeError("event loop closed")

        async def scenario():
            dialog = _create_dialog(gateway)
            dialog.update_schedule_entry(0, "time", "4:00 PM")
            await dialog.wait_for_validation()
            return dialog

        dialog = asyncio.run(scenario())
        assert dialog.inline_error == VALIDATION_FAILED_MESSAGE
        assert dialog.is_validating is False

    def test_unparseable_time_not_validated(self, gateway):
        async def scenario():
            dialog = _create_dialog(gateway)
            dialog.update_schedule_entry(0, "time", "99:99")
            await asyncio.sleep(DEBOUNCE * 3)
            await dialog.wait_for_validation()
            return dialog

        dialog = asyncio.run(scenario())
        assert gateway.validate_calls == []
        assert dialog.inline_error is None
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.inline_error == "Invalid time: 99:99"

    def test_close_cancels_pending_validation(self, gateway):
        async def scenario():
            dialog = _create_dialog(gateway)
            dialog.update_schedule_entry(0, "time", "4:00 PM")
            dialog.close()
            await asyncio.sleep(DEBOUNCE * 3)
            return dialog

        dialog = asyncio.run(scenario())
        assert gateway.validate_calls == []
        assert dialog.closed


# ======================================================================
# Submit: create
# ======================================================================

class TestSubmitCreate:
    def test_success(self, gateway):
        refreshed = []

        async def scenario():
            dialog = _create_dialog(gateway, on_success=lambda: refreshed.append(True))
            return dialog, await dialog.submit()

        dialog, state = asyncio.run(scenario())
        assert state == DONE
        assert dialog.toast == ("success", "Subscription created successfully!")
        assert dialog.closed
        assert refreshed == [True]
        assert len(gateway.validate_calls) == 1
        student_id, payload = gateway.created[0]
        assert student_id == 7
        assert payload["schedule"] == [{"day": "Monday", "time": "2:00 PM"}]

    def test_empty_schedule_never_reaches_gateway(self, gateway):
        dialog = _create_dialog(gateway, _ready_draft(schedule=[]))
        state = asyncio.run(dialog.submit())
        assert state == ERROR
        assert dialog.inline_error == "Please fill in start date and at least one schedule"
        assert gateway.validate_calls == []
        assert gateway.created == []
        assert not dialog.closed

    def test_zero_price_blocked_locally(self, gateway):
        dialog = _create_dialog(gateway, _ready_draft(price_per_session=Decimal("0")))
        assert asyncio.run(dialog.submit()) == ERROR
        assert "greater than zero" in dialog.inline_error
        assert gateway.created == []

    def test_conflict_opens_modal_and_blocks(self, gateway):
        gateway.conflict_message = "The teacher already has a lesson with Ali on Monday"
        dialog = _create_dialog(gateway)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.conflict_message == "The teacher already has a lesson with Ali on Monday"
        assert dialog.inline_error is None
        assert gateway.created == []

    def test_fix_after_conflict_and_resubmit(self, gateway):
        gateway.conflict_message = "busy"

        async def scenario():
            dialog = _create_dialog(gateway)
            await dialog.submit()
            dialog.dismiss_conflict()
            gateway.conflict_message = None
            dialog.update_schedule_entry(0, "time", "6:00 PM")
            assert dialog.state == EDITING
            return dialog, await dialog.submit()

        dialog, state = asyncio.run(scenario())
        assert state == DONE
        assert dialog.conflict_message is None
        assert gateway.created[0][1]["schedule"] == [{"day": "Monday", "time": "6:00 PM"}]

    def test_validator_failure_blocks_submit(self, gateway):
        gateway.validate_error = BackendError("timeout")
        dialog = _create_dialog(gateway)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.toast == ("error", VALIDATION_FAILED_MESSAGE)
        assert gateway.created == []

    def test_save_failure_keeps_draft(self, gateway):
        gateway.save_error = BackendError("HTTP 500: boom")
        draft = _ready_draft()
        dialog = _create_dialog(gateway, draft)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.toast == ("error", "HTTP 500: boom")
        assert dialog.draft is draft
        assert not dialog.closed

    def test_unexpected_save_error_keeps_dialog_usable(self, gateway):
        gateway.save_error = RuntimeError("gateway exploded")
        draft = _ready_draft()

        async def scenario():
            dialog = _create_dialog(gateway, draft)
            first = await dialog.submit()
            assert dialog.toast == ("error", SAVE_FAILED_MESSAGE)
            assert dialog.draft is draft
            assert not dialog.closed
            dialog.set_field("notes", "retry")
            assert dialog.state == EDITING
            gateway.save_error = None
            return first, await dialog.submit()

        first, second = asyncio.run(scenario())
        assert first == ERROR
        assert second == DONE
        assert gateway.created[0][1]["notes"] == "retry"

    def test_unexpected_validator_error_blocks_submit(self, gateway):
        gateway.validate_error = RuntimeError("boom")
        dialog = _create_dialog(gateway)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.toast == ("error", VALIDATION_FAILED_MESSAGE)
        assert dialog.is_validating is False
        assert gateway.created == []

    def test_broken_draft_value_reaches_error_state(self, gateway):
        dialog = _create_dialog(gateway)
        dialog.draft.session_count = None

        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.toast == ("error", SAVE_FAILED_MESSAGE)
        dialog.set_field("session_count", "4")
        assert asyncio.run(dialog.submit()) == DONE

    def test_server_side_validation_error_inline(self, gateway):
        gateway.save_error = SubscriptionValidationError("Account currency (USD) must match subscription currency (EGP)")
        dialog = _create_dialog(gateway)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.inline_error.startswith("Account currency (USD)")

    def test_server_side_conflict(self, gateway):
        gateway.save_error = ScheduleConflictError("taken meanwhile")
        dialog = _create_dialog(gateway)
        assert asyncio.run(dialog.submit()) == ERROR
        assert dialog.conflict_message == "taken meanwhile"

    def test_no_teacher_skips_conflict_check(self, gateway):
        dialog = SubscriptionDialog(gateway, 7, _ready_draft(), teacher_id=None, debounce_seconds=DEBOUNCE)
        assert asyncio.run(dialog.submit()) == DONE
        assert gateway.validate_calls == []

    def test_close_during_submit_discards_result(self, gateway):
        refreshed = []

        async def scenario():
            gateway.validate_gate = asyncio.Event()
            dialog = _create_dialog(gateway, on_success=lambda: refreshed.append(True))
            task = asyncio.create_task(dialog.submit())
            await asyncio.sleep(0)
            dialog.close()
            gateway.validate_gate.set()
            await task
            return dialog

        dialog = asyncio.run(scenario())
        assert dialog.state != DONE
        assert gateway.created == []
        assert refreshed == []

    def test_edit_after_close_rejected(self, gateway):
        dialog = _create_dialog(gateway)
        dialog.close()
        with pytest.raises(DialogStateError):
            dialog.set_field("notes", "late")


# ======================================================================
# Form input
# ======================================================================

class TestFormInput:
    def test_text_price_is_converted_before_submit(self, gateway):
        dialog = _create_dialog(gateway)
        dialog.set_field("price_per_session", "150")
        assert asyncio.run(dialog.submit()) == DONE
        assert gateway.created[0][1]["total_price"] == "600"

    def test_unknown_field_rejected(self, gateway):
        dialog = _create_dialog(gateway)
        with pytest.raises(DialogStateError):
            dialog.set_field("teacher_id", 9)

    def test_unknown_payment_field_rejected(self, gateway):
        dialog = _create_dialog(gateway)
        with pytest.raises(DialogStateError, match="foo"):
            dialog.set_initial_payment(amount="100", foo=1)
        assert dialog.draft.initial_payment.amount == Decimal("0")

    def test_payment_values_converted(self, gateway):
        dialog = _create_dialog(gateway)
        dialog.set_initial_payment(amount="250.50", account_id="5")
        assert dialog.draft.initial_payment.amount == Decimal("250.50")
        assert dialog.draft.initial_payment.account_id == 5

    def test_unparseable_number_raises(self, gateway):
        dialog = _create_dialog(gateway)
        with pytest.raises(SubscriptionValidationError):
            dialog.set_field("price_per_session", "twelve")
        assert dialog.draft.price_per_session == Decimal("100")


# ======================================================================
# Submit: edit with change confirmation
# ======================================================================

class TestSubmitEdit:
    def _open(self, gateway):
        return SubscriptionDialog.open_edit(gateway, 42, debounce_seconds=DEBOUNCE)

    def test_unchanged_edit_submits_with_preserve(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            return await dialog.submit()

        assert asyncio.run(scenario()) == DONE
        assert gateway.updated == [(42, True)]

    def test_conflict_check_excludes_own_subscription(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            await dialog.submit()

        asyncio.run(scenario())
        assert gateway.validate_calls[0][4] == 42

    def test_day_change_recommends_reset_but_keep_allowed(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            dialog.update_schedule_entry(0, "day", "Tuesday")
            state = await dialog.submit()
            assert state == CONFIRMING_CHANGES
            assert dialog.change_record.changes == ["Schedule days changed from [Monday] to [Tuesday]"]
            assert dialog.suggest_preserve is False
            assert gateway.updated == []
            return await dialog.keep_sessions()

        assert asyncio.run(scenario()) == DONE
        assert gateway.updated == [(42, True)]

    def test_same_value_typed_as_text_is_not_a_change(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            dialog.set_field("session_count", "8")
            dialog.set_field("price_per_session", "150.00")
            return await dialog.submit()

        assert asyncio.run(scenario()) == DONE
        assert gateway.updated == [(42, True)]

    def test_minor_change_then_reset(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            dialog.set_field("price_per_session", Decimal("175"))
            await dialog.submit()
            assert dialog.suggest_preserve is True
            return await dialog.reset_sessions()

        assert asyncio.run(scenario()) == DONE
        assert gateway.updated == [(42, False)]

    def test_cancel_confirmation_returns_to_editing(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            dialog.set_field("session_count", 12)
            await dialog.submit()
            dialog.cancel_confirmation()
            return dialog

        dialog = asyncio.run(scenario())
        assert dialog.state == EDITING
        assert dialog.draft.session_count == 12
        assert dialog.change_record is None
        assert gateway.updated == []

    def test_cannot_edit_while_confirming(self, gateway):
        async def scenario():
            dialog = await self._open(gateway)
            dialog.set_field("session_count", 12)
            await dialog.submit()
            with pytest.raises(DialogStateError):
                dialog.set_field("notes", "x")

        asyncio.run(scenario())

    def test_confirm_outside_confirmation(self, gateway):
        dialog = _create_dialog(gateway)
        with pytest.raises(DialogStateError):
            asyncio.run(dialog.keep_sessions())

    def test_stale_subscription_toast(self, gateway):
        gateway.save_error = StaleSubscriptionError("Subscription not found. It may have been deleted.")

        async def scenario():
            dialog = await self._open(gateway)
            return dialog, await dialog.submit()

        dialog, state = asyncio.run(scenario())
        assert state == ERROR
        assert dialog.toast == ("error", "Subscription not found. It may have been deleted.")
