"""
Change detection for the edit-subscription dialog.

Major changes (schedule days, session count) suggest resetting sessions,
minor ones (times, price, duration) suggest preserving them. A change in
the day set suppresses the "times updated" message.
"""
from dataclasses import dataclass, field
from decimal import Decimal

from tutordesk.domain.schedule import schedule_days, schedule_slots
from tutordesk.domain.subscription_draft import SubscriptionDraft


@dataclass
class ChangeRecord:
    changes: list[str] = field(default_factory=list)
    major_change: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    @property
    def suggest_preserve(self) -> bool:
        return not self.major_change


def _fmt_amount(value: Decimal) -> str:
    return f"{value.normalize():f}"


def detect_changes(original: SubscriptionDraft, draft: SubscriptionDraft) -> ChangeRecord:
    record = ChangeRecord()

    old_days = schedule_days(original.schedule)
    new_days = schedule_days(draft.schedule)
    if old_days != new_days:
        record.changes.append(
            f"Schedule days changed from [{', '.join(old_days)}] to [{', '.join(new_days)}]"
        )
        record.major_change = True
    elif schedule_slots(original.schedule) != schedule_slots(draft.schedule):
        record.changes.append("Session times updated")

    if original.session_count != draft.session_count:
        record.changes.append(
            f"Session count changed from {original.session_count} to {draft.session_count}"
        )
        record.major_change = True

    if original.price_mode != draft.price_mode:
        record.changes.append(
            f"Price mode changed from {original.price_mode} to {draft.price_mode}"
        )
    if original.price_per_session != draft.price_per_session:
        record.changes.append(
            f"Price per session changed from {_fmt_amount(original.price_per_session)} "
            f"to {_fmt_amount(draft.price_per_session)}"
        )
    if original.fixed_price != draft.fixed_price:
        record.changes.append(
            f"Fixed price changed from {_fmt_amount(original.fixed_price)} "
            f"to {_fmt_amount(draft.fixed_price)}"
        )

    if original.session_duration_minutes != draft.session_duration_minutes:
        record.changes.append(
            f"Session duration changed from {original.session_duration_minutes} "
            f"to {draft.session_duration_minutes} minutes"
        )

    return record
