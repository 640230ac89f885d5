# -*- coding: utf-8 -*-
# main.py: YourTube backend (startup, routers, login/profile)

import os
import asyncio
import logging
import traceback
from datetime import datetime
from typing import Tuple
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from db import get_db, User, init_db
from auth import create_access_token, authenticate_user, get_current_user, is_admin
from otp import OtpStore
from scheduler import build_scheduler

from signup_routes import router as signup_router
from health_routes import router as health_router
from routes_public_config import router as public_config_router
from download_routes import router as download_router
from subscription_routes import router as subscription_router
from payment_routes import router as payment_router
from otp_routes import router as otp_router
from video_routes import router as video_router
from history_routes import router as history_router
from watchlater_routes import router as watchlater_router
from like_routes import router as like_router
from report_routes import router as report_router
from admin_routes import router as admin_router
from admin_metrics_routes import router as admin_metrics_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("yourtube")

VERSION = "1.0.0"
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "300"))


def _bool_env(name: str, default: bool = False) -> bool:
    v = (os.getenv(name, "").strip().lower())
    if not v:
        return default
    return v in ("1", "true", "yes", "y", "t")


SCHEDULER_ENABLED = _bool_env("SCHEDULER_ENABLED", True)

# --------------------------------------------------------------------------------------
# Lifespan: warm the DB with retries, run housekeeping jobs while the app is up
# --------------------------------------------------------------------------------------
DB_READY = False
STARTUP_ERROR = ""


@asynccontextmanager
async def lifespan(app: FastAPI):
    global DB_READY, STARTUP_ERROR
    tries = int(os.getenv("DB_WARMUP_TRIES", "20"))
    delay = float(os.getenv("DB_WARMUP_DELAY", "1.5"))
    for i in range(tries):
        try:
            init_db()
            DB_READY = True
            break
        except Exception as e:
            logger.warning("init_db attempt %s/%s failed: %s", i + 1, tries, e)
            STARTUP_ERROR = traceback.format_exc()
            await asyncio.sleep(delay)

    scheduler = None
    if SCHEDULER_ENABLED:
        scheduler = build_scheduler(app.state.otp_store)
        scheduler.start()
        logger.info("Scheduler started with jobs: %s", [j.id for j in scheduler.get_jobs()])
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


app = FastAPI(title="YourTube Backend", version=VERSION, lifespan=lifespan)
app.state.otp_store = OtpStore(ttl_seconds=OTP_TTL_SECONDS)

# --------------------------------------------------------------------------------------
# CORS
# --------------------------------------------------------------------------------------
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
extra = (os.getenv("ALLOWED_ORIGINS") or "").strip()
if extra:
    ALLOWED_ORIGINS += [o.strip() for o in extra.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Content-Range", "Accept-Ranges"],
    max_age=86400,
)


@app.get("/")
def root():
    return {"ok": True, "service": "yourtube-backend", "version": VERSION}


@app.get("/api/startup")
def startup_status():
    return {
        "db_ready": DB_READY,
        "startup_error": (STARTUP_ERROR[:4000] if not DB_READY else ""),
        "time": datetime.utcnow().isoformat() + "Z",
    }


# --------------------------------------------------------------------------------------
# Auth: JSON or form body, stable token shape
# --------------------------------------------------------------------------------------
async def _read_credentials(request: Request) -> Tuple[str, str]:
    ctype = (request.headers.get("content-type") or "").lower()
    if ctype.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body")
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Malformed JSON body")
    else:
        data = await request.form()
    email = (data.get("email") or data.get("username") or "").strip().lower()
    password = data.get("password") or ""
    return email, password


@app.post("/api/login")
async def login(request: Request, db: Session = Depends(get_db)):
    """
    Accepts form (OAuth2 password flow) and JSON bodies.
    Always returns {"access_token": "...", "token_type": "bearer"}.
    """
    email, password = await _read_credentials(request)
    if not email or not password:
        raise HTTPException(status_code=400, detail="Email and password required")

    user = authenticate_user(db, email, password)
    if not user:
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    user.last_login_at = datetime.utcnow()
    db.commit()
    return {"access_token": create_access_token(user.email), "token_type": "bearer"}


@app.get("/api/profile")
def profile(current: User = Depends(get_current_user)):
    return {
        "id": current.id,
        "email": current.email,
        "name": current.name,
        "channelName": current.channel_name,
        "currentPlan": current.current_plan.value,
        "subscriptionExpiry": current.subscription_expiry.isoformat() if current.subscription_expiry else None,
        "watchTimeLimit": current.watch_time_limit,
        "is_admin": is_admin(current),
        "created_at": current.created_at.isoformat() if current.created_at else None,
    }


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s:\n%s", request.method, request.url.path, traceback.format_exc())
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


# --------------------------------------------------------------------------------------
# Routers
# --------------------------------------------------------------------------------------
app.include_router(health_router)
app.include_router(public_config_router)
app.include_router(signup_router)
app.include_router(video_router)
app.include_router(history_router)
app.include_router(watchlater_router)
app.include_router(like_router)
app.include_router(report_router)
app.include_router(download_router)
app.include_router(subscription_router)
app.include_router(payment_router)
app.include_router(otp_router)
app.include_router(admin_router)
app.include_router(admin_metrics_router)
