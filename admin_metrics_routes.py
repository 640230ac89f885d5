# -*- coding: utf-8 -*-
"""
Admin metrics (download timeseries + subscription totals), SQLite/Postgres safe.
"""
from datetime import datetime, timedelta
from typing import Dict, Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func

from db import get_db, User, Subscription, DownloadRecord, Transaction
from auth import get_current_user, assert_admin
from tiers import Tier

router = APIRouter(prefix="/api/admin", tags=["admin-metrics"])


@router.get("/metrics")
def metrics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    assert_admin(current_user)

    now = datetime.now()
    cutoff = datetime(now.year, now.month, now.day) - timedelta(days=days - 1)

    # --- Timeseries from DownloadRecord, grouped by local day and current plan ----
    day = func.date(DownloadRecord.created_at)
    series_rows = (
        db.query(
            day.label("date"),
            User.current_plan.label("tier"),
            func.count(DownloadRecord.id).label("count"),
        )
        .join(User, User.id == DownloadRecord.user_id)
        .filter(DownloadRecord.created_at >= cutoff)
        .group_by("date", "tier")
        .order_by("date")
        .all()
    )
    series = [
        {
            "date": str(r.date),
            "tier": getattr(r.tier, "value", r.tier),
            "count": int(r.count or 0),
        }
        for r in series_rows
    ]

    today_str = str(now.date())
    active_paid = (
        db.query(func.count(Subscription.id))
        .filter(Subscription.status == "ACTIVE", Subscription.plan_type != Tier.FREE)
        .scalar()
    ) or 0
    revenue = (
        db.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.status == "SUCCESS")
        .scalar()
    ) or 0

    return {
        "totals": {
            "downloads_today": sum(x["count"] for x in series if x["date"] == today_str),
            "downloads_all_time": int(db.query(func.count(DownloadRecord.id)).scalar() or 0),
            "users": int(db.query(func.count(User.id)).scalar() or 0),
            "active_paid": int(active_paid),
            "revenue": int(revenue),
        },
        "series": series,  # [{date, tier, count}]
        "notes": "Local-day grouping by plan held now.",
    }
