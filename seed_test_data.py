"""
Seed a demo school: staff user, teacher, two students, currencies, a cash
account and one subscription with generated lessons.
Run:  python seed_test_data.py
"""
import sys
from datetime import date, timedelta
from decimal import Decimal

# ── bootstrap ────────────────────────────────────────────────────
from tutordesk.auth import hash_password
from tutordesk.infrastructure.db.session import get_session_factory
from tutordesk.infrastructure.db.models import (
    SchoolModel, User, TeacherModel, StudentModel, CurrencyModel, AccountModel,
)
from tutordesk.application.subscriptions import CreateSubscriptionUseCase
from tutordesk.domain.context import SchoolContext
from tutordesk.domain.schedule import ScheduleEntry
from tutordesk.domain.subscription_draft import SubscriptionDraft, InitialPayment

EMAIL = "admin@tutordesk.local"
PASSWORD = "password123"

db = get_session_factory()()

if db.query(User).filter(User.email == EMAIL).first():
    print(f"Demo data already seeded ({EMAIL})")
    sys.exit(0)

# ═══════════════════════════════════════════════════════════════
# Phase 1: school, staff, people
# ═══════════════════════════════════════════════════════════════
school = SchoolModel(name="Demo Language School", timezone="Africa/Cairo")
db.add(school)
db.flush()

user = User(email=EMAIL, password_hash=hash_password(PASSWORD), school_id=school.id, is_admin=True)
teacher = TeacherModel(school_id=school.id, name="Mona Adel")
db.add_all([user, teacher])
db.flush()

omar = StudentModel(school_id=school.id, teacher_id=teacher.id, name="Omar Khaled")
salma = StudentModel(school_id=school.id, teacher_id=teacher.id, name="Salma Nabil")
db.add_all([omar, salma])

db.add_all([
    CurrencyModel(school_id=school.id, code="EGP", symbol="E£", name="Egyptian Pound", is_default=True),
    CurrencyModel(school_id=school.id, code="USD", symbol="$", name="US Dollar"),
])
cash = AccountModel(school_id=school.id, name="Cash box", currency_code="EGP")
db.add(cash)
db.commit()
print(f"School {school.id}: user {EMAIL} / {PASSWORD}")

# ═══════════════════════════════════════════════════════════════
# Phase 2: a subscription starting next Monday
# ═══════════════════════════════════════════════════════════════
ctx = SchoolContext(school_id=school.id, user_id=user.id, is_admin=True, timezone=school.timezone)
today = date.today()
next_monday = today + timedelta(days=(7 - today.weekday()) % 7 or 7)

draft = SubscriptionDraft(
    session_count=8,
    duration_months=1,
    start_date=next_monday,
    schedule=[ScheduleEntry("Monday", "16:00"), ScheduleEntry("Thursday", "17:30")],
    price_per_session=Decimal("250"),
    currency="EGP",
    initial_payment=InitialPayment(amount=Decimal("1000"), method="Cash", account_id=cash.id),
)
sub_id = CreateSubscriptionUseCase(db).execute(ctx, omar.id, draft)
print(f"Subscription {sub_id} for {omar.name}: 8 lessons from {next_monday}")

db.close()
