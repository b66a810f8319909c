"""
SubscriptionDraft - in-memory form state of the add/edit subscription dialog.

The draft is never persisted. It is built empty (new subscription) or
hydrated from a persisted record (edit), mutated by the dialog, validated
once at submit time and turned into a mutation payload.

Invariants:
  - total_price = price_per_session * session_count (perSession) or fixed_price (fixedPrice), >= 0
  - schedule must be non-empty and every entry complete before submit
  - start_date required before submit
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from tutordesk.domain.errors import SubscriptionValidationError
from tutordesk.domain.schedule import ScheduleEntry, normalize_day, to_24_hour

PRICE_MODES = ("perSession", "fixedPrice")
STATUSES = ("active", "paused", "completed", "cancelled")
PAYMENT_METHODS = ("Cash", "Card", "Bank Transfer", "Check", "Online")
DEFAULT_SESSION_DURATION = 60

ZERO = Decimal("0")


@dataclass
class InitialPayment:
    amount: Decimal = ZERO
    method: str = "Cash"
    notes: str = ""
    account_id: int | None = None


@dataclass
class SubscriptionDraft:
    session_count: int = 4
    duration_months: int = 1
    session_duration_minutes: int = DEFAULT_SESSION_DURATION
    start_date: date | None = None
    schedule: list[ScheduleEntry] = field(default_factory=list)
    price_mode: str = "perSession"
    price_per_session: Decimal = ZERO
    fixed_price: Decimal = ZERO
    currency: str = ""
    status: str = "active"
    notes: str = ""
    initial_payment: InitialPayment = field(default_factory=InitialPayment)

    # --- schedule rows ---

    def add_schedule_entry(self) -> None:
        self.schedule.append(ScheduleEntry())

    def update_schedule_entry(self, index: int, field_name: str, value: str) -> None:
        """Set day or time of one row. Times are stored in 24-hour form whatever the picker sent.

        A value that does not parse is kept as typed and reported on submit.
        """
        if field_name not in ("day", "time"):
            raise SubscriptionValidationError(f"Unknown schedule field: {field_name}")
        normalize = to_24_hour if field_name == "time" else normalize_day
        value = value or ""
        try:
            value = normalize(value)
        except SubscriptionValidationError:
            value = value.strip()
        setattr(self.schedule[index], field_name, value)

    def remove_schedule_entry(self, index: int) -> None:
        del self.schedule[index]

    # --- form input ---

    def set_field(self, name: str, value) -> None:
        """Store a form value converted to the field's type (inputs arrive as strings)."""
        setattr(self, name, FORM_FIELDS[name](value))

    def set_initial_payment(self, **changes) -> None:
        converted = {name: PAYMENT_FIELDS[name](value) for name, value in changes.items()}
        for name, value in converted.items():
            setattr(self.initial_payment, name, value)

    # --- pricing ---

    def compute_total_price(self) -> Decimal:
        if self.price_mode == "perSession":
            total = self.price_per_session * self.session_count
        else:
            total = self.fixed_price
        return max(total, ZERO)

    # --- validation ---

    @property
    def schedule_complete(self) -> bool:
        return bool(self.schedule) and all(e.is_valid for e in self.schedule)

    def validate_for_submit(self, is_create: bool) -> None:
        """Single validation pass run when the user clicks submit.

        Raises SubscriptionValidationError with the first problem found.
        """
        if self.start_date is None or not self.schedule:
            raise SubscriptionValidationError(
                "Please fill in start date and at least one schedule"
            )
        if not all(e.is_complete for e in self.schedule):
            raise SubscriptionValidationError(
                "Please complete all schedule entries or remove incomplete ones"
            )
        for entry in self.schedule:
            normalize_day(entry.day)
            to_24_hour(entry.time)
        if self.session_count < 0 or self.duration_months < 0:
            raise SubscriptionValidationError("Session count and duration cannot be negative")
        if self.session_duration_minutes <= 0:
            raise SubscriptionValidationError("Session duration must be greater than zero")
        if self.price_mode not in PRICE_MODES:
            raise SubscriptionValidationError(f"Invalid price mode: {self.price_mode}")
        if self.price_per_session < 0 or self.fixed_price < 0:
            raise SubscriptionValidationError("Prices cannot be negative")
        if self.status not in STATUSES:
            raise SubscriptionValidationError(f"Invalid status: {self.status}")
        if not self.currency:
            raise SubscriptionValidationError("Please select a currency")
        if self.compute_total_price() <= 0:
            raise SubscriptionValidationError(
                "Subscription price must be greater than zero. Please enter a valid price."
            )
        if is_create and self.initial_payment.amount > 0 and not self.initial_payment.account_id:
            raise SubscriptionValidationError("Please select an account for the initial payment")
        if is_create and self.initial_payment.amount > 0 and self.initial_payment.method not in PAYMENT_METHODS:
            raise SubscriptionValidationError(f"Invalid payment method: {self.initial_payment.method}")

    # --- payload ---

    def to_payload(self) -> dict[str, Any]:
        """Mutation payload shared by create and update (snake_case, JSON-safe)."""
        return {
            "session_count": self.session_count,
            "duration_months": self.duration_months,
            "session_duration_minutes": self.session_duration_minutes,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "schedule": [e.to_record() for e in self.schedule],
            "price_mode": self.price_mode,
            "price_per_session": str(self.price_per_session) if self.price_mode == "perSession" else None,
            "fixed_price": str(self.fixed_price) if self.price_mode == "fixedPrice" else None,
            "total_price": str(self.compute_total_price()),
            "currency": self.currency,
            "status": self.status,
            "notes": self.notes,
        }


# ============================================================================
# Normalization boundary: external record -> canonical draft
# ============================================================================


def _pick(raw: dict, *keys: str, default=None):
    """First present, non-None value among alternative spellings of a field."""
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def _to_decimal(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise SubscriptionValidationError(f"Invalid amount: {value}")
    if not amount.is_finite():
        raise SubscriptionValidationError(f"Invalid amount: {value}")
    return amount


def _to_int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SubscriptionValidationError(f"Invalid number: {value}")


def _to_optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    return _to_int(value)


def _to_text(value) -> str:
    return "" if value is None else str(value)


# Form field -> converter applied when the dialog writes a value
FORM_FIELDS = {
    "session_count": _to_int,
    "duration_months": _to_int,
    "session_duration_minutes": _to_int,
    "price_mode": _to_text,
    "price_per_session": _to_decimal,
    "fixed_price": _to_decimal,
    "currency": _to_text,
    "status": _to_text,
    "notes": _to_text,
}

PAYMENT_FIELDS = {
    "amount": _to_decimal,
    "method": _to_text,
    "notes": _to_text,
    "account_id": _to_optional_int,
}


def _to_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_schedule(raw_schedule) -> list[ScheduleEntry]:
    if not raw_schedule:
        return []
    if isinstance(raw_schedule, str):
        raw_schedule = json.loads(raw_schedule)
    return [ScheduleEntry.from_record(item) for item in raw_schedule]


def draft_from_record(record: dict, initial_payment: dict | None = None) -> SubscriptionDraft:
    """Hydrate a draft from a subscription record in either camelCase or snake_case."""
    payment = initial_payment or {}
    account_id = _pick(payment, "to_account_id", "toAccountId", "account_id", "accountId")
    return SubscriptionDraft(
        session_count=_to_int(_pick(record, "session_count", "sessionCount")),
        duration_months=_to_int(_pick(record, "duration_months", "durationMonths")),
        session_duration_minutes=_to_int(
            _pick(record, "session_duration_minutes", "sessionDurationMinutes", "sessionDuration"),
            DEFAULT_SESSION_DURATION,
        ),
        start_date=_to_date(_pick(record, "start_date", "startDate")),
        schedule=_parse_schedule(_pick(record, "schedule")),
        price_mode=_pick(record, "price_mode", "priceMode", default="perSession"),
        price_per_session=_to_decimal(_pick(record, "price_per_session", "pricePerSession")),
        fixed_price=_to_decimal(_pick(record, "fixed_price", "fixedPrice")),
        currency=_pick(record, "currency", default=""),
        status=_pick(record, "status", default="active"),
        notes=_pick(record, "notes", default=""),
        initial_payment=InitialPayment(
            amount=_to_decimal(_pick(payment, "amount")),
            method=_pick(payment, "payment_method", "paymentMethod", "method", default="Cash"),
            notes=_pick(payment, "notes", default=""),
            account_id=_to_optional_int(account_id),
        ),
    )
