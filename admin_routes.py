# -*- coding: utf-8 -*-
"""
Created on Sat Mar  7 16:12:40 2026

@author: Vineet
"""

# admin_routes.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from db import get_db, User
from auth import get_current_user, assert_admin
from tiers import Tier, UnknownPlanError
import subscriptions

log = logging.getLogger("admin")
router = APIRouter(prefix="/api/admin", tags=["admin"])


class SetPlanRequest(BaseModel):
    email: EmailStr
    plan: str


@router.post("/set-plan")
def admin_set_plan(
    payload: SetPlanRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Admin-only: move a user onto a plan without a payment.
    Body: { "email": "...", "plan": "gold" }   ("free" cancels)
    """
    assert_admin(current_user)
    try:
        tier = Tier.parse(payload.plan)
    except UnknownPlanError as e:
        raise HTTPException(status_code=400, detail=str(e))

    target = db.query(User).filter(User.email == str(payload.email).lower()).first()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    if tier is Tier.FREE:
        subscriptions.cancel(db, target)
    else:
        subscriptions.activate(db, target, tier, order_id=f"admin:{current_user.id}")
    db.commit()
    db.refresh(target)
    log.info("Admin %s set %s to %s", current_user.email, target.email, tier.value)
    return {
        "email": target.email,
        "plan": target.current_plan.value,
        "subscriptionExpiry": target.subscription_expiry.isoformat() if target.subscription_expiry else None,
    }


@router.post("/cron/expire-subscriptions")
def run_expire_subscriptions(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    assert_admin(current_user)
    return {"expired": subscriptions.expire_overdue(db)}


@router.post("/cron/reset-watch-time")
def run_reset_watch_time(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    assert_admin(current_user)
    return {"reset": subscriptions.reset_watch_time(db)}


@router.get("/expiring-soon")
def expiring_soon(
    days: int = Query(3, ge=1, le=60),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    assert_admin(current_user)
    rows = subscriptions.expiring_soon(db, days=days)
    return {"subscriptions": [dict(subscriptions.serialize(s), userId=s.user_id) for s in rows]}
