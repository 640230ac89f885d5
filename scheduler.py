# -*- coding: utf-8 -*-
# scheduler.py
"""
Background housekeeping, run in-process by the API's lifespan.

  expire-subscriptions   hourly      lapsed paid plans -> EXPIRED, users to FREE
  reset-watch-time       00:00       daily watch budget restored per plan
  expiry-reminders       09:00       email users whose plan ends within 3 days
  otp-sweep              every 60s   reclaim expired one-time passcodes
"""
import os
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from db import SessionLocal, User
from otp import OtpStore
from notify import send_email, DeliveryError
import subscriptions

log = logging.getLogger("scheduler")

SCHEDULER_TZ = os.getenv("SCHEDULER_TZ") or None     # None = server local time
REMINDER_DAYS = int(os.getenv("EXPIRY_REMINDER_DAYS", "3"))


def expire_subscriptions_job(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        return subscriptions.expire_overdue(db)
    finally:
        db.close()


def reset_watch_time_job(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        touched = subscriptions.reset_watch_time(db)
        log.info("Daily watch time reset for %s user(s)", touched)
        return touched
    finally:
        db.close()


def expiry_reminders_job(session_factory=SessionLocal, days: int = REMINDER_DAYS) -> int:
    db = session_factory()
    sent = 0
    try:
        now = datetime.utcnow()
        for sub in subscriptions.expiring_soon(db, days=days, now=now):
            user = db.get(User, sub.user_id)
            if user is None:
                continue
            left = max(0, (sub.end_date - now).days)
            body = (
                f"Hi {user.name or user.email},\n\n"
                f"Your {sub.plan_name} ends on {sub.end_date:%Y-%m-%d} "
                f"({left} day(s) left). Renew to keep unlimited downloads.\n"
            )
            try:
                if send_email(user.email, "Your YourTube subscription is expiring soon", body):
                    sent += 1
            except DeliveryError as e:
                log.warning("Expiry reminder to %s failed: %s", user.email, e)
        return sent
    finally:
        db.close()


def build_scheduler(otp_store: OtpStore, session_factory=SessionLocal) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=SCHEDULER_TZ) if SCHEDULER_TZ else AsyncIOScheduler()

    scheduler.add_job(
        expire_subscriptions_job,
        trigger=CronTrigger(minute=0),
        args=[session_factory],
        id="expire-subscriptions",
        name="Expire lapsed subscriptions",
        replace_existing=True,
    )
    scheduler.add_job(
        reset_watch_time_job,
        trigger=CronTrigger(hour=0, minute=0),
        args=[session_factory],
        id="reset-watch-time",
        name="Reset daily watch time",
        replace_existing=True,
    )
    scheduler.add_job(
        expiry_reminders_job,
        trigger=CronTrigger(hour=9, minute=0),
        args=[session_factory],
        id="expiry-reminders",
        name="Email expiry reminders",
        replace_existing=True,
    )
    scheduler.add_job(
        otp_store.sweep,
        trigger=IntervalTrigger(seconds=60),
        id="otp-sweep",
        name="Sweep expired OTPs",
        replace_existing=True,
    )
    return scheduler
