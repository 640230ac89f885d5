# -*- coding: utf-8 -*-
"""
Created on Mon Mar  9 15:21:47 2026

@author: Vineet
"""

# subscription_routes.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from db import get_db, User, Subscription, Transaction
from auth import get_current_user, parse_id, assert_admin, assert_self_or_admin
from tiers import Tier, UNLIMITED_WATCH
import subscriptions

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


def _watch_payload(user: User) -> dict:
    unlimited = user.watch_time_limit == UNLIMITED_WATCH
    return {
        "canWatch": subscriptions.can_watch(user),
        "watchTimeLimit": user.watch_time_limit,
        "isUnlimited": unlimited,
        "currentPlan": (user.current_plan or Tier.FREE).value,
    }


@router.get("/plans")
def get_plans():
    return {"plans": subscriptions.plan_catalog()}


@router.get("/current")
def current_subscription(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    sub = subscriptions.latest(db, current.id)
    return {
        "subscription": subscriptions.serialize(sub) if sub else None,
        "currentPlan": (current.current_plan or Tier.FREE).value,
        "watchTimeLimit": current.watch_time_limit,
        "subscriptionExpiry": current.subscription_expiry.isoformat() if current.subscription_expiry else None,
    }


@router.get("/check-watch-limit")
def check_watch_limit(current: User = Depends(get_current_user)):
    return _watch_payload(current)


class WatchTimeIn(BaseModel):
    minutes: int = Field(ge=0)


@router.post("/watch-time")
def update_watch_time(
    body: WatchTimeIn,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    can_continue, remaining = subscriptions.consume_watch_time(db, current, body.minutes)
    return {
        "canContinue": can_continue,
        "remainingTime": "unlimited" if remaining == UNLIMITED_WATCH else remaining,
    }


@router.get("/transactions")
def transaction_history(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Transaction)
        .filter(Transaction.user_id == current.id)
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .all()
    )
    return {
        "transactions": [
            {
                "orderId": t.order_id,
                "paymentId": t.payment_id,
                "amount": t.amount,
                "currency": t.currency,
                "plan": t.plan.value,
                "status": t.status,
                "invoiceNumber": t.invoice_number,
                "createdAt": t.created_at.isoformat() if t.created_at else None,
            }
            for t in rows
        ]
    }


@router.get("/user/{user_id}")
def user_subscriptions(
    user_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)
    if db.get(User, uid) is None:
        raise HTTPException(status_code=404, detail="User not found")
    rows = (
        db.query(Subscription)
        .filter(Subscription.user_id == uid)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )
    return {"subscriptions": [subscriptions.serialize(s) for s in rows]}


@router.post("/cancel")
def cancel_subscription(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if (current.current_plan or Tier.FREE) is Tier.FREE:
        raise HTTPException(status_code=400, detail="No paid subscription to cancel")
    subscriptions.cancel(db, current)
    db.commit()
    return {"message": "Subscription cancelled successfully", "currentPlan": Tier.FREE.value}


@router.get("/analytics")
def subscription_analytics(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    assert_admin(current)
    return {"analytics": subscriptions.analytics(db)}
