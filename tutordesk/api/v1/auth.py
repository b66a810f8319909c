"""
Authentication routes (login, logout)
"""
import logging

from fastapi import APIRouter, Request, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tutordesk.api.deps import get_db
from tutordesk.auth import verify_password, get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login")
def login(request: Request, req: LoginRequest, db: Session = Depends(get_db)):
    """Sign in and store the user in the session cookie"""
    user = get_user_by_email(db, req.email)
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    request.session["user_id"] = user.id
    request.session["is_admin"] = user.is_admin
    logger.info("User %d signed in", user.id)
    return {"success": True, "userId": user.id, "schoolId": user.school_id}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"success": True}
