# download_routes.py
import math
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from db import get_db, User, Video, DownloadRecord, DOWNLOAD_LINK_TTL
from auth import (
    get_current_user, parse_id, assert_self_or_admin,
    create_download_token, decode_download_token,
)
from gate import SubscriptionGate, UserNotFound, QuotaExceeded, QualityNotAllowed, local_day_bounds
import video_files

log = logging.getLogger("downloads")
router = APIRouter(prefix="/api/download", tags=["downloads"])


def get_gate(db: Session = Depends(get_db)) -> SubscriptionGate:
    return SubscriptionGate(db)


def _needs_premium(exc: QuotaExceeded) -> JSONResponse:
    elig = exc.eligibility
    return JSONResponse({
        "success": False,
        "needsPremium": True,
        "message": str(exc),
        "currentPlan": elig.tier.value,
        "downloadsToday": elig.downloads_today,
        "maxDownloads": elig.max_downloads,
    }, status_code=403)


def _stream_path(record: DownloadRecord) -> str:
    # the token expires with the record; expires_at is local time, jose wants UTC
    utc_expiry = datetime.utcnow() + (record.expires_at - datetime.now())
    token = create_download_token(record.id, record.user_id, utc_expiry)
    return f"/api/download/stream/{record.id}?token={token}"


# ---- eligibility -----------------------------------------------------------------
@router.get("/eligibility/{user_id}")
def check_eligibility(
    user_id: str,
    current: User = Depends(get_current_user),
    gate: SubscriptionGate = Depends(get_gate),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)
    try:
        return gate.check_eligibility(uid).to_payload()
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")


# ---- download ----------------------------------------------------------------------
class DownloadIn(BaseModel):
    quality: str = "480p"


@router.post("/video/{video_id}")
def download_video(
    video_id: str,
    body: DownloadIn,
    current: User = Depends(get_current_user),
    gate: SubscriptionGate = Depends(get_gate),
    db: Session = Depends(get_db),
):
    vid = parse_id(video_id, "video ID")
    video = db.get(Video, vid)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")

    try:
        elig, quality = gate.authorize(current.id, body.quality)
    except QuotaExceeded as e:
        log.info("User %s over daily quota (%s today)", current.id, e.eligibility.downloads_today)
        return _needs_premium(e)
    except QualityNotAllowed as e:
        return JSONResponse({
            "success": False,
            "message": str(e),
            "availableQualities": [q.value for q in e.eligibility.qualities],
        }, status_code=400)

    filename = video_files.extract_filename(video)
    if not filename:
        raise HTTPException(status_code=500, detail="Video filename not found. Please re-upload this video.")
    path = video_files.find_video_file(filename)
    if not path:
        raise HTTPException(status_code=404, detail="Video file not found on server. File may have been moved or deleted.")
    if not video_files.is_valid_mp4(path):
        raise HTTPException(status_code=500, detail="Video file is corrupted or invalid. Please re-upload this video.")

    now = gate.clock()
    try:
        gate.claim_download(elig)
    except QuotaExceeded as e:
        db.rollback()
        return _needs_premium(e)

    record = DownloadRecord(
        user_id=current.id,
        video_id=video.id,
        video_title=video.title or "Untitled Video",
        quality=quality.value,
        file_size=path.stat().st_size,
        status="completed",
        created_at=now,
        expires_at=now + DOWNLOAD_LINK_TTL,
    )
    db.add(record)
    try:
        db.commit()
    except Exception:
        db.rollback()
        log.exception("Saving download record failed for user %s video %s", current.id, vid)
        raise HTTPException(status_code=500, detail="Download failed")
    db.refresh(record)

    log.info("Download %s: user=%s video=%s quality=%s premium=%s",
             record.id, current.id, vid, record.quality, elig.is_premium)
    return {
        "success": True,
        "message": "Download initiated successfully",
        "download": {
            "id": record.id,
            "videoTitle": record.video_title,
            "quality": record.quality,
            "fileSize": record.file_size,
            "streamUrl": _stream_path(record),
            "downloadFilename": video_files.download_filename(video.title, record.quality),
            "expiresAt": record.expires_at.isoformat(),
            "isPremium": elig.is_premium,
        },
    }


# ---- streaming ---------------------------------------------------------------------
NO_CACHE = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.get("/stream/{download_id}")
def stream_download(
    download_id: str,
    request: Request,
    token: str = Query(...),
    db: Session = Depends(get_db),
):
    did = parse_id(download_id, "download ID")
    uid = decode_download_token(token, did)

    record = db.get(DownloadRecord, did)
    if not record or record.user_id != uid:
        raise HTTPException(status_code=404, detail="Download not found")
    if record.expires_at < datetime.now():
        raise HTTPException(status_code=410, detail="Download link expired")

    video = db.get(Video, record.video_id)
    filename = video_files.extract_filename(video) if video else None
    path = video_files.find_video_file(filename) if filename else None
    if not path:
        raise HTTPException(status_code=404, detail="Video file not found on server")
    if not video_files.is_valid_mp4(path):
        raise HTTPException(status_code=500, detail="Video file is corrupted")

    size = path.stat().st_size
    headers = {
        "Content-Disposition": video_files.content_disposition(
            video_files.download_filename(video.title, record.quality)
        ),
        "Accept-Ranges": "bytes",
        **NO_CACHE,
    }
    try:
        span = video_files.parse_range(request.headers.get("range"), size)
    except video_files.RangeNotSatisfiable:
        raise HTTPException(status_code=416, detail="Requested range not satisfiable",
                            headers={"Content-Range": f"bytes */{size}"})

    if span is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(video_files.iter_file(path), media_type="video/mp4", headers=headers)

    start, end = span
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(
        video_files.iter_file(path, start, end), status_code=206, media_type="video/mp4", headers=headers,
    )


# ---- history / stats -----------------------------------------------------------------
@router.get("/history/{user_id}")
def download_history(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)

    q = db.query(DownloadRecord).filter(DownloadRecord.user_id == uid)
    total = q.count()
    rows = (
        q.order_by(DownloadRecord.created_at.desc(), DownloadRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    now = datetime.now()
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "downloads": [
            {
                "id": r.id,
                "videoId": r.video_id,
                "videoTitle": r.video_title,
                "quality": r.quality,
                "fileSize": r.file_size,
                "status": r.status,
                "downloadedAt": r.created_at.isoformat() if r.created_at else None,
                "expiresAt": r.expires_at.isoformat(),
                "isExpired": now > r.expires_at,
                "streamUrl": None if now > r.expires_at else _stream_path(r),
            }
            for r in rows
        ],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalDownloads": total,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }


@router.get("/stats/{user_id}")
def download_stats(
    user_id: str,
    current: User = Depends(get_current_user),
    gate: SubscriptionGate = Depends(get_gate),
    db: Session = Depends(get_db),
):
    uid = parse_id(user_id, "user ID")
    assert_self_or_admin(current, uid)
    try:
        elig = gate.check_eligibility(uid)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    now = gate.clock()
    month_start = datetime(now.year, now.month, 1)
    base = db.query(func.count(DownloadRecord.id)).filter(DownloadRecord.user_id == uid)
    total = base.scalar() or 0
    this_month = base.filter(DownloadRecord.created_at >= month_start).scalar() or 0
    day_start, day_end = local_day_bounds(now)
    today = base.filter(DownloadRecord.created_at >= day_start, DownloadRecord.created_at < day_end).scalar() or 0

    return {
        "totalDownloads": total,
        "todayDownloads": max(today, elig.downloads_today),
        "thisMonthDownloads": this_month,
        "subscription": {
            "planType": elig.tier.value,
            "isPremium": elig.is_premium,
            "canDownloadToday": elig.can_download,
            "remainingDownloads": "unlimited" if elig.is_premium else elig.remaining,
        },
    }


@router.delete("/{download_id}")
def delete_download(
    download_id: str,
    current: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    did = parse_id(download_id, "download ID")
    record = (
        db.query(DownloadRecord)
        .filter(DownloadRecord.id == did, DownloadRecord.user_id == current.id)
        .first()
    )
    if not record:
        raise HTTPException(status_code=404, detail="Download not found")
    db.delete(record)
    db.commit()
    return {"success": True, "message": "Download record deleted successfully"}
