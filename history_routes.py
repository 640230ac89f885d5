# -*- coding: utf-8 -*-
"""
Created on Wed Mar 11 10:42:07 2026

@author: Vineet
"""

# history_routes.py
import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import get_db, User, Video, WatchHistory
from auth import get_current_user, parse_id, assert_self_or_admin
from video_routes import serialize_video

log = logging.getLogger("history")
router = APIRouter(prefix="/api/history", tags=["history"])


class WatchIn(BaseModel):
    watchDuration: int = Field(0, ge=0)
    watchPercentage: int = Field(0, ge=0, le=100)
    device: Literal["mobile", "desktop", "tablet", "tv"] = "desktop"


def _count_view(db: Session, video_id: int) -> None:
    db.query(Video).filter(Video.id == video_id).update(
        {Video.views: Video.views + 1}, synchronize_session=False
    )


def _upsert(db: Session, user_id: int, video_id: int, body: WatchIn) -> WatchHistory:
    row = (
        db.query(WatchHistory)
        .filter(WatchHistory.user_id == user_id, WatchHistory.video_id == video_id)
        .first()
    )
    if row is None:
        try:
            with db.begin_nested():
                row = WatchHistory(user_id=user_id, video_id=video_id)
                db.add(row)
        except IntegrityError:
            # a parallel request for the same video created the row
            row = (
                db.query(WatchHistory)
                .filter(WatchHistory.user_id == user_id, WatchHistory.video_id == video_id)
                .one()
            )
    row.watch_duration = body.watchDuration
    row.watch_percentage = body.watchPercentage
    row.device = body.device
    row.viewed_at = datetime.utcnow()
    return row


@router.post("/view/{video_id}")
def record_view(video_id: str, db: Session = Depends(get_db)):
    """Anonymous view: bump the counter, keep no history."""
    vid = parse_id(video_id, "video ID")
    video = db.get(Video, vid)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    _count_view(db, vid)
    db.commit()
    db.refresh(video)
    return {"success": True, "message": "View recorded", "views": video.views}


@router.post("/{video_id}")
def add_to_history(
    video_id: str,
    body: WatchIn = WatchIn(),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    First ping of a playback (no progress yet) counts a view; later progress
    updates only move the entry to the top and store how far the user got.
    """
    vid = parse_id(video_id, "video ID")
    if not db.get(Video, vid):
        raise HTTPException(status_code=404, detail="Video not found")

    row = _upsert(db, current.id, vid, body)
    if body.watchPercentage == 0:
        _count_view(db, vid)
    db.commit()
    return {"success": True, "history": True, "id": row.id}


@router.get("/{user_id}")
def get_history(
    user_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)

    # inner join drops entries whose video was deleted
    rows = (
        db.query(WatchHistory, Video)
        .join(Video, Video.id == WatchHistory.video_id)
        .filter(WatchHistory.user_id == uid)
        .order_by(WatchHistory.viewed_at.desc(), WatchHistory.id.desc())
        .all()
    )
    items = [
        {
            "id": h.id,
            "video": serialize_video(v),
            "watchDuration": h.watch_duration,
            "watchPercentage": h.watch_percentage,
            "device": h.device,
            "viewedAt": h.viewed_at.isoformat(),
        }
        for h, v in rows
    ]
    return {"success": True, "videos": items, "total": len(items)}


@router.delete("/item/{history_id}")
def delete_history_item(
    history_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    hid = parse_id(history_id, "history ID")
    deleted = (
        db.query(WatchHistory)
        .filter(WatchHistory.id == hid, WatchHistory.user_id == current.id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="History item not found")
    db.commit()
    return {"success": True, "message": "Removed from history"}


@router.delete("")
def clear_history(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    deleted = (
        db.query(WatchHistory)
        .filter(WatchHistory.user_id == current.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    log.info("User %s cleared %s history entries", current.id, deleted)
    return {"success": True, "message": "History cleared", "deletedCount": deleted}
