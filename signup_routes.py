# -*- coding: utf-8 -*-
# signup_routes.py
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import get_db, User
from auth import create_access_token, get_password_hash, is_admin
import subscriptions

log = logging.getLogger("auth")
router = APIRouter(prefix="/api", tags=["auth"])


class SignupIn(BaseModel):
    name: str
    channel_name: str | None = None
    email: EmailStr
    password: str
    phone: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v

    @field_validator("password")
    @classmethod
    def password_min_len(cls, v: str) -> str:
        if v is None or len(v) < 6:
            raise ValueError("password must be at least 6 characters")
        return v


@router.post("/signup", status_code=201)
def signup(payload: SignupIn, db: Session = Depends(get_db)):
    """
    Create a user on the free plan and return a bearer token.
    The free subscription row is written with the user so history starts at signup.
    """
    email = payload.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="User already exists")

    user = User(
        email=email,
        hashed_password=get_password_hash(payload.password),
        name=payload.name,
        channel_name=(payload.channel_name or "").strip() or None,
        phone=(payload.phone or "").strip() or None,
        is_admin=False,
        created_at=datetime.utcnow(),
    )
    db.add(user)
    try:
        db.flush()   # need user.id for the subscription row
        subscriptions.start_free(db, user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="User already exists or invalid data.")
    except Exception:
        db.rollback()
        log.exception("signup failed for %s", email)
        raise HTTPException(status_code=500, detail="Signup failed on the server. Please try again.")
    db.refresh(user)

    token = create_access_token(sub=user.email)
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {"id": user.id, "email": user.email, "name": user.name},
        "currentPlan": user.current_plan.value,
        "is_admin": is_admin(user),
    }
