# -*- coding: utf-8 -*-
"""
Created on Fri Mar  6 12:08:26 2026

@author: Vineet
"""

# health_routes.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from db import get_db

log = logging.getLogger("health")
router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
    # proves the app is mounted; touches nothing
    return {"ok": True}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "db": "up"}
    except SQLAlchemyError as e:
        # don't expose internal traces
        log.warning("Readiness DB ping failed: %s", e)
        return {"ok": False, "db": "down"}
