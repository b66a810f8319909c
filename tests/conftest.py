"""
Pytest fixtures for testing
"""
import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

from tutordesk.domain.context import SchoolContext
from tutordesk.infrastructure.db.session import Base
from tutordesk.infrastructure.db.models import (
    SchoolModel, User, TeacherModel, StudentModel, CurrencyModel, AccountModel,
)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads, with JSONB→JSON mapping."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # SQLite doesn't support JSONB, remap to JSON for tests
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    """Create database session for tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def school(db_session):
    s = SchoolModel(name="Nile Language School", timezone="Africa/Cairo")
    db_session.add(s)
    db_session.flush()
    return s


@pytest.fixture
def user(db_session, school):
    u = User(email="admin@nile.test", password_hash="x", school_id=school.id, is_admin=False)
    db_session.add(u)
    db_session.flush()
    return u


@pytest.fixture
def teacher(db_session, school):
    t = TeacherModel(school_id=school.id, name="Mona")
    db_session.add(t)
    db_session.flush()
    return t


@pytest.fixture
def student(db_session, school, teacher):
    s = StudentModel(school_id=school.id, teacher_id=teacher.id, name="Omar", income_category_id=7)
    db_session.add(s)
    db_session.flush()
    return s


@pytest.fixture
def currency(db_session, school):
    c = CurrencyModel(school_id=school.id, code="EGP", symbol="E£", name="Egyptian Pound", is_default=True)
    db_session.add(c)
    db_session.flush()
    return c


@pytest.fixture
def account(db_session, school):
    a = AccountModel(school_id=school.id, name="Cash box", currency_code="EGP")
    db_session.add(a)
    db_session.commit()
    return a


@pytest.fixture
def ctx(school, user):
    return SchoolContext(school_id=school.id, user_id=user.id, timezone=school.timezone)
