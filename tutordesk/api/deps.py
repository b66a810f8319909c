"""
FastAPI dependencies (DB session, authentication, school context)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from tutordesk.config import get_settings
from tutordesk.domain.context import SchoolContext
from tutordesk.infrastructure.db.session import get_db as _get_db
from tutordesk.infrastructure.db.models import User, SchoolModel


# Re-export get_db for routers
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Current user from the session cookie

    Raises:
        HTTPException(401): not signed in
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def get_school_context(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SchoolContext:
    """
    Built once per request and passed explicitly to use cases

    Usage:
        @router.get("/things")
        def list_things(ctx: SchoolContext = Depends(get_school_context)):
            ...
    """
    school = db.query(SchoolModel).filter(SchoolModel.id == user.school_id).first()
    return SchoolContext(
        school_id=user.school_id,
        user_id=user.id,
        is_admin=user.is_admin,
        timezone=school.timezone if school else get_settings().TIMEZONE,
    )
