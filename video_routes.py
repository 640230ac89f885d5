# -*- coding: utf-8 -*-
"""
Created on Fri Mar  6 18:33:12 2026

@author: Vineet
"""

# video_routes.py
import os
import uuid
import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Query
from sqlalchemy.orm import Session

from db import get_db, User, Video
from auth import get_current_user, parse_id
import video_files

log = logging.getLogger("videos")
router = APIRouter(prefix="/api/videos", tags=["videos"])

MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "500"))
ALLOWED_TYPES = {"video/mp4", "application/octet-stream"}


def serialize_video(v: Video) -> dict:
    return {
        "id": v.id,
        "title": v.title,
        "description": v.description or "",
        "filename": v.filename,
        "filetype": v.filetype,
        "filesize": v.filesize,
        "uploadedBy": v.uploaded_by,
        "views": v.views,
        "likes": v.likes or 0,
        "dislikes": v.dislikes or 0,
        "createdAt": v.created_at.isoformat() if v.created_at else None,
    }


@router.post("", status_code=201)
def upload_video(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(""),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    title = title.strip()
    if not title:
        raise HTTPException(status_code=422, detail="title is required")
    if file.content_type and file.content_type not in ALLOWED_TYPES:
        raise HTTPException(status_code=415, detail="Only MP4 uploads are supported")

    target_dir = video_files.UPLOAD_ROOT / "videos"
    target_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}.mp4"
    target = target_dir / stored_name

    limit = MAX_UPLOAD_MB * 1024 * 1024
    written = 0
    try:
        head = file.file.read(video_files.CHUNK_SIZE)
        if not any(marker in head[:12] for marker, _ in video_files.MP4_SIGNATURES):
            raise HTTPException(status_code=400, detail="File is not a valid MP4 video")
        with open(target, "wb") as out:
            chunk = head
            while chunk:
                written += len(chunk)
                if written > limit:
                    raise HTTPException(status_code=413, detail=f"File exceeds {MAX_UPLOAD_MB} MB limit")
                out.write(chunk)
                chunk = file.file.read(video_files.CHUNK_SIZE)
    except HTTPException:
        target.unlink(missing_ok=True)
        raise
    except OSError:
        target.unlink(missing_ok=True)
        log.exception("Writing upload %s failed", stored_name)
        raise HTTPException(status_code=500, detail="Upload failed")
    finally:
        file.file.close()

    video = Video(
        title=title,
        description=description.strip(),
        filename=stored_name,
        filepath=str(target),
        filetype="video/mp4",
        filesize=written,
        uploaded_by=current.id,
    )
    db.add(video)
    try:
        db.commit()
    except Exception:
        db.rollback()
        target.unlink(missing_ok=True)
        log.exception("Saving video row for %s failed", stored_name)
        raise HTTPException(status_code=500, detail="Upload failed")
    db.refresh(video)
    log.info("User %s uploaded video %s (%s bytes)", current.id, video.id, written)
    return serialize_video(video)


@router.get("")
def list_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    q = db.query(Video)
    total = q.count()
    rows = q.order_by(Video.created_at.desc(), Video.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"videos": [serialize_video(v) for v in rows], "total": total, "page": page}


@router.get("/{video_id}")
def get_video(video_id: str, db: Session = Depends(get_db)):
    vid = parse_id(video_id, "video ID")
    video = db.get(Video, vid)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return serialize_video(video)
