# -*- coding: utf-8 -*-
"""
Created on Thu Mar 12 09:31:18 2026

@author: Vineet
"""

# report_routes.py
import math
import logging
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from db import get_db, User, Video, Report
from auth import get_current_user, assert_admin, parse_id

log = logging.getLogger("moderation")
router = APIRouter(prefix="/api/reports", tags=["reports"])

Category = Literal[
    "spam", "harassment", "hate_speech", "violence", "sexual_content", "misinformation",
    "copyright", "child_safety", "dangerous_acts", "terrorism", "scam", "other",
]
Status = Literal["pending", "under_review", "action_taken", "dismissed"]
Action = Literal[
    "none", "warning_sent", "content_removed", "content_hidden",
    "user_warned", "user_suspended", "user_banned",
]

CRITICAL_CATEGORIES = {"child_safety", "terrorism", "violence"}
HIGH_CATEGORIES = {"hate_speech", "sexual_content", "dangerous_acts"}
ESCALATE_AT = 10                      # open reports on one target
DUPLICATE_WINDOW = timedelta(hours=24)
OPEN_STATUSES = ("pending", "under_review")
CLOSED_STATUSES = ("action_taken", "dismissed")

_PRIORITY_RANK = case(
    {"critical": 3, "high": 2, "medium": 1, "low": 0},
    value=Report.priority,
    else_=0,
)


def initial_priority(category: str) -> str:
    if category in CRITICAL_CATEGORIES:
        return "critical"
    if category in HIGH_CATEGORIES:
        return "high"
    return "medium"


def _target_exists(db: Session, target_type: str, target_id: int) -> bool:
    model = Video if target_type == "video" else User
    return db.get(model, target_id) is not None


def _serialize(r: Report, reporter: Optional[User] = None) -> dict:
    out = {
        "id": r.id,
        "targetType": r.target_type,
        "targetId": r.target_id,
        "category": r.category,
        "reason": r.reason,
        "description": r.description or "",
        "status": r.status,
        "priority": r.priority,
        "actionTaken": r.action_taken,
        "moderatorId": r.moderator_id,
        "moderatorNotes": r.moderator_notes,
        "reviewedAt": r.reviewed_at.isoformat() if r.reviewed_at else None,
        "resolvedAt": r.resolved_at.isoformat() if r.resolved_at else None,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
    }
    if reporter is not None:
        out["reporter"] = {"id": reporter.id, "name": reporter.name, "email": reporter.email}
    return out


class ReportIn(BaseModel):
    targetType: Literal["video", "user", "channel"]
    targetId: int = Field(..., gt=0)
    category: Category
    reason: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=2000)


@router.post("", status_code=201)
def submit_report(
    body: ReportIn,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not _target_exists(db, body.targetType, body.targetId):
        raise HTTPException(status_code=404, detail="Reported content not found")

    since = datetime.utcnow() - DUPLICATE_WINDOW
    duplicate = (
        db.query(Report.id)
        .filter(
            Report.reporter_id == current.id,
            Report.target_type == body.targetType,
            Report.target_id == body.targetId,
            Report.created_at >= since,
        )
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=400, detail="You have already reported this content recently")

    report = Report(
        target_type=body.targetType,
        target_id=body.targetId,
        reporter_id=current.id,
        category=body.category,
        reason=body.reason.strip(),
        description=body.description.strip(),
        priority=initial_priority(body.category),
    )
    db.add(report)
    db.flush()

    open_count = (
        db.query(func.count(Report.id))
        .filter(
            Report.target_type == body.targetType,
            Report.target_id == body.targetId,
            Report.status.in_(OPEN_STATUSES),
        )
        .scalar()
    ) or 0
    if open_count >= ESCALATE_AT and report.priority not in ("high", "critical"):
        report.priority = "high"
    db.commit()
    db.refresh(report)

    log.info("Report %s on %s %s (%s, %s open)",
             report.id, body.targetType, body.targetId, body.category, open_count)
    return {
        "success": True,
        "message": "Report submitted successfully. Our team will review it.",
        "data": {"reportId": report.id, "status": report.status, "priority": report.priority},
    }


# ---- moderation (admin) -------------------------------------------------------------
@router.get("")
def list_reports(
    status: Optional[Status] = None,
    category: Optional[Category] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    assert_admin(current)
    q = db.query(Report, User).join(User, User.id == Report.reporter_id)
    if status:
        q = q.filter(Report.status == status)
    if category:
        q = q.filter(Report.category == category)
    total = q.count()
    rows = (
        q.order_by(_PRIORITY_RANK.desc(), Report.created_at.desc(), Report.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "success": True,
        "reports": [_serialize(r, u) for r, u in rows],
        "pagination": {"total": total, "page": page, "pages": math.ceil(total / limit) if total else 0},
    }


class ReportUpdate(BaseModel):
    status: Status
    actionTaken: Action = "none"
    moderatorNotes: Optional[str] = Field(None, max_length=2000)


@router.patch("/{report_id}")
def update_report(
    report_id: str,
    body: ReportUpdate,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    assert_admin(current)
    rid = parse_id(report_id, "report ID")
    report = db.get(Report, rid)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")

    now = datetime.utcnow()
    report.status = body.status
    report.action_taken = body.actionTaken
    report.moderator_notes = body.moderatorNotes
    report.moderator_id = current.id
    report.reviewed_at = now
    report.resolved_at = now if body.status in CLOSED_STATUSES else None
    db.commit()
    db.refresh(report)
    log.info("Admin %s moved report %s to %s (%s)", current.email, rid, body.status, body.actionTaken)
    return {"success": True, "message": "Report updated successfully", "data": _serialize(report)}
