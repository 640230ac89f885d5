# -*- coding: utf-8 -*-
"""
Created on Wed Mar 11 14:05:51 2026

@author: Vineet
"""

# like_routes.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db import get_db, User, Video, VideoReaction
from auth import get_current_user, parse_id, assert_self_or_admin
from video_routes import serialize_video

router = APIRouter(prefix="/api/like", tags=["likes"])

_COUNTER = {"like": Video.likes, "dislike": Video.dislikes}


class ReactionIn(BaseModel):
    isLike: bool = True


def _bump(db: Session, video_id: int, reaction: str, delta: int) -> None:
    col = _COUNTER[reaction]
    db.query(Video).filter(Video.id == video_id).update({col: col + delta}, synchronize_session=False)


@router.post("/{video_id}")
def react(
    video_id: str,
    body: ReactionIn = ReactionIn(),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    One reaction per user and video.
    Same reaction again  => removed
    Opposite reaction    => switched
    No reaction yet      => added
    """
    vid = parse_id(video_id, "video ID")
    if not db.get(Video, vid):
        raise HTTPException(status_code=404, detail="Video not found")

    wanted = "like" if body.isLike else "dislike"
    existing: Optional[VideoReaction] = (
        db.query(VideoReaction)
        .filter(VideoReaction.user_id == current.id, VideoReaction.video_id == vid)
        .first()
    )

    if existing is not None and existing.reaction == wanted:
        db.delete(existing)
        _bump(db, vid, wanted, -1)
        action, liked, disliked = "removed", False, False
    elif existing is not None:
        _bump(db, vid, existing.reaction, -1)
        _bump(db, vid, wanted, 1)
        existing.reaction = wanted
        action, liked, disliked = "switched", body.isLike, not body.isLike
    else:
        db.add(VideoReaction(user_id=current.id, video_id=vid, reaction=wanted))
        _bump(db, vid, wanted, 1)
        action, liked, disliked = "added", body.isLike, not body.isLike
    db.commit()

    video = db.get(Video, vid)
    db.refresh(video)
    return {
        "success": True,
        "liked": liked,
        "disliked": disliked,
        "action": action,
        "reaction": wanted,
        "likes": video.likes,
        "dislikes": video.dislikes,
    }


@router.get("/status/{video_id}")
def reaction_status(
    video_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vid = parse_id(video_id, "video ID")
    video = db.get(Video, vid)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    mine = (
        db.query(VideoReaction.reaction)
        .filter(VideoReaction.user_id == current.id, VideoReaction.video_id == vid)
        .scalar()
    )
    return {"reaction": mine, "likes": video.likes, "dislikes": video.dislikes}


@router.get("/{user_id}")
def liked_videos(
    user_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)
    rows = (
        db.query(VideoReaction, Video)
        .join(Video, Video.id == VideoReaction.video_id)
        .filter(VideoReaction.user_id == uid)
        .order_by(VideoReaction.created_at.desc(), VideoReaction.id.desc())
        .all()
    )
    likes = [serialize_video(v) for r, v in rows if r.reaction == "like"]
    dislikes = [serialize_video(v) for r, v in rows if r.reaction == "dislike"]
    return {"success": True, "total": len(rows), "likes": likes, "dislikes": dislikes}
