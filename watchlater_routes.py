# watchlater_routes.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import get_db, User, Video, WatchLater
from auth import get_current_user, parse_id, assert_self_or_admin
from video_routes import serialize_video

router = APIRouter(prefix="/api/watchlater", tags=["watch-later"])


@router.post("/{video_id}")
def toggle_watch_later(
    video_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Adds the video to the list, or removes it if it is already there."""
    vid = parse_id(video_id, "video ID")
    if not db.get(Video, vid):
        raise HTTPException(status_code=404, detail="Video not found")

    existing = (
        db.query(WatchLater)
        .filter(WatchLater.user_id == current.id, WatchLater.video_id == vid)
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        return {"success": True, "watchlater": False}

    db.add(WatchLater(user_id=current.id, video_id=vid))
    try:
        db.commit()
    except IntegrityError:
        # double click: the other request already saved it
        db.rollback()
    return {"success": True, "watchlater": True}


@router.get("/{user_id}")
def get_watch_later(
    user_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)
    rows = (
        db.query(WatchLater, Video)
        .join(Video, Video.id == WatchLater.video_id)
        .filter(WatchLater.user_id == uid)
        .order_by(WatchLater.created_at.desc(), WatchLater.id.desc())
        .all()
    )
    return {
        "success": True,
        "videos": [
            {"id": w.id, "addedAt": w.created_at.isoformat(), "video": serialize_video(v)}
            for w, v in rows
        ],
        "total": len(rows),
    }
