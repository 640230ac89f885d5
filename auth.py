# auth.py
import os
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from db import get_db, User

# --- Config ---
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-prod")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MIN = int(os.getenv("ACCESS_TOKEN_EXPIRE_MIN", "1440"))  # 24h
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "").strip().lower()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login")
pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


# --- Password helpers ---
def get_password_hash(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_ctx.verify(plain_password, hashed_password)
    except ValueError:
        return False


# --- Auth primitives ---
def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(sub: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MIN) -> str:
    to_encode = {"sub": sub, "exp": datetime.utcnow() + timedelta(minutes=expires_minutes)}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def _decode_token(token: str) -> str:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
        sub: str = payload.get("sub")
        if not sub:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
        return sub
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


# --- Signed download links ---
def create_download_token(download_id: int, user_id: int, expires_at: datetime) -> str:
    """expires_at is naive UTC."""
    claims = {"sub": f"download:{download_id}", "uid": user_id, "exp": expires_at}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALG)


def decode_download_token(token: str, download_id: int) -> int:
    """Returns the user id the link was issued to."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Download link invalid or expired")
    if payload.get("sub") != f"download:{download_id}":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Download link does not match")
    return int(payload.get("uid") or 0)


# --- Request helpers ---
def parse_id(raw: str, what: str = "ID") -> int:
    """Path ids must be positive integers; anything else is a 400, not a 422."""
    value = (raw or "").strip()
    if not (value.isascii() and value.isdigit()) or int(value) <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {what}")
    return int(value)


def is_admin(user: User) -> bool:
    is_admin_email = bool(ADMIN_EMAIL) and (user.email or "").lower() == ADMIN_EMAIL
    return bool(getattr(user, "is_admin", False)) or is_admin_email


def assert_admin(user: User) -> None:
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")


def assert_self_or_admin(user: User, user_id: int) -> None:
    if user.id != user_id and not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for this user")


# --- FastAPI dependency used by the routers ---
def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    email = _decode_token(token)
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user
