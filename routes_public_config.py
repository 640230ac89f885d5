# routes_public_config.py
# -*- coding: utf-8 -*-
import os

from fastapi import APIRouter

from tiers import Tier, FREE_DAILY_DOWNLOADS, purchasable_plans, plan_payload
from payment_routes import CURRENCY

router = APIRouter(prefix="/api", tags=["public"])

# ---- Env-configurable knobs ---------------------------------------------------
NOTICE = os.getenv("PUBLIC_NOTICE", "")
POSITIONING_COPY = os.getenv(
    "POSITIONING_COPY",
    "Watch free, or go premium for unlimited downloads in every quality.",
)


@router.get("/public-config")
def public_config():
    free = Tier.FREE.caps
    return {
        "currency": CURRENCY,
        "plans": {t.value: plan_payload(t) for t in (Tier.FREE, *purchasable_plans())},
        "free_limits": {
            "downloads_per_day": FREE_DAILY_DOWNLOADS,
            "qualities": [q.value for q in free.qualities],
            "watch_minutes": free.watch_minutes,
        },
        "flags": {
            "promo": False,
            "notice": NOTICE,
        },
        "copy": {
            "positioning": POSITIONING_COPY,
        },
    }
