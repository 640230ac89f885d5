# subscriptions.py
"""
Subscription lifecycle: signup default, activation after payment, cancel,
expiry and the daily watch-time budget.

At most one ACTIVE subscription per user is kept by cancelling the previous
ACTIVE rows before a new one is inserted. Nothing in the schema enforces it.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from db import User, Subscription
from tiers import Tier, watch_limit_value, UNLIMITED_WATCH, purchasable_plans, plan_payload

log = logging.getLogger("subscriptions")


def plan_catalog() -> List[Dict[str, Any]]:
    return [plan_payload(Tier.FREE)] + [plan_payload(t) for t in purchasable_plans()]


def start_free(db: Session, user: User) -> Subscription:
    sub = Subscription(
        user_id=user.id,
        plan_type=Tier.FREE,
        plan_name="Free Plan",
        price=0,
        status="ACTIVE",
        payment_status="completed",
    )
    user.current_plan = Tier.FREE
    user.watch_time_limit = watch_limit_value(Tier.FREE)
    db.add(sub)
    return sub


def _cancel_active(db: Session, user_id: int, now: datetime, **extra) -> int:
    values = {"status": "CANCELLED", "updated_at": now}
    values.update(extra)
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.status == "ACTIVE")
        .update(values, synchronize_session=False)
    )


def activate(
    db: Session,
    user: User,
    tier: Tier,
    order_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """Supersede whatever the user had with a paid plan. Caller commits."""
    now = now or datetime.utcnow()
    caps = tier.caps
    end = now + timedelta(days=caps.duration_days)

    replaced = _cancel_active(db, user.id, now)
    sub = Subscription(
        user_id=user.id,
        plan_type=tier,
        plan_name=f"{tier.label} Plan",
        price=caps.price,
        status="ACTIVE",
        start_date=now,
        end_date=end,
        payment_status="completed",
        order_id=order_id,
        payment_id=payment_id,
        created_at=now,
        updated_at=now,
    )
    db.add(sub)

    user.current_plan = tier
    user.subscription_expiry = end
    user.watch_time_limit = watch_limit_value(tier)
    log.info("User %s -> %s until %s (replaced %s active rows)", user.id, tier.value, end, replaced)
    return sub


def cancel(db: Session, user: User, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    n = _cancel_active(db, user.id, now, plan_type=Tier.FREE, plan_name="Free Plan", end_date=now)
    user.current_plan = Tier.FREE
    user.subscription_expiry = None
    user.watch_time_limit = watch_limit_value(Tier.FREE)
    log.info("User %s cancelled %s subscription(s); moved to FREE", user.id, n)
    return n


def latest(db: Session, user_id: int) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )


def expire_overdue(db: Session, now: Optional[datetime] = None) -> int:
    """Mark lapsed paid subscriptions EXPIRED and move their users back to FREE."""
    now = now or datetime.utcnow()
    overdue = (
        db.query(Subscription)
        .filter(
            Subscription.status == "ACTIVE",
            Subscription.plan_type != Tier.FREE,
            Subscription.end_date.isnot(None),
            Subscription.end_date < now,
        )
        .all()
    )
    expired = 0
    for sub in overdue:
        sub.status = "EXPIRED"
        sub.updated_at = now
        user = db.get(User, sub.user_id)
        if user is not None and user.current_plan == sub.plan_type:
            user.current_plan = Tier.FREE
            user.subscription_expiry = None
            user.watch_time_limit = watch_limit_value(Tier.FREE)
        expired += 1
    db.commit()
    if expired:
        log.info("Expired %s subscription(s)", expired)
    return expired


def reset_watch_time(db: Session) -> int:
    """Restore every limited user's daily watch budget. Returns users touched."""
    touched = 0
    for user in db.query(User).all():
        limit = watch_limit_value(user.current_plan or Tier.FREE)
        if user.watch_time_limit != limit:
            user.watch_time_limit = limit
            touched += 1
    db.commit()
    return touched


def expiring_soon(db: Session, days: int = 3, now: Optional[datetime] = None) -> List[Subscription]:
    now = now or datetime.utcnow()
    return (
        db.query(Subscription)
        .filter(
            Subscription.status == "ACTIVE",
            Subscription.plan_type != Tier.FREE,
            Subscription.end_date >= now,
            Subscription.end_date <= now + timedelta(days=days),
        )
        .order_by(Subscription.end_date)
        .all()
    )


def can_watch(user: User) -> bool:
    return user.watch_time_limit == UNLIMITED_WATCH or (user.watch_time_limit or 0) > 0


def consume_watch_time(db: Session, user: User, minutes: int) -> Tuple[bool, int]:
    if user.watch_time_limit == UNLIMITED_WATCH:
        return True, UNLIMITED_WATCH
    user.watch_time_limit = max(0, (user.watch_time_limit or 0) - max(0, minutes))
    db.commit()
    return user.watch_time_limit > 0, user.watch_time_limit


def analytics(db: Session) -> List[Dict[str, Any]]:
    rows = (
        db.query(Subscription.plan_type, func.count(Subscription.id), func.coalesce(func.sum(Subscription.price), 0))
        .group_by(Subscription.plan_type)
        .all()
    )
    return [
        {"plan": getattr(plan, "value", plan), "userCount": int(count), "revenue": int(revenue or 0)}
        for plan, count, revenue in rows
    ]


def serialize(sub: Subscription) -> Dict[str, Any]:
    return {
        "id": sub.id,
        "planType": getattr(sub.plan_type, "value", sub.plan_type),
        "planName": sub.plan_name,
        "price": sub.price,
        "status": sub.status,
        "paymentStatus": sub.payment_status,
        "startDate": sub.start_date.isoformat() if sub.start_date else None,
        "endDate": sub.end_date.isoformat() if sub.end_date else None,
        "createdAt": sub.created_at.isoformat() if sub.created_at else None,
    }
