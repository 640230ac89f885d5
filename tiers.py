# tiers.py
"""
Subscription tiers and what each one is allowed to do.

Every plan the app knows about lives in TIER_TABLE. Plan names coming from the
database, the payment processor or a request body go through Tier.parse, which
raises on anything it does not recognise instead of quietly treating it as free.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class UnknownPlanError(ValueError):
    pass


class Quality(str, Enum):
    P360 = "360p"
    P480 = "480p"
    P720 = "720p"

    @classmethod
    def parse(cls, label: Optional[str]) -> "Quality":
        try:
            return cls((label or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown quality: {label!r}") from None


class Tier(str, Enum):
    FREE = "free"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PREMIUM = "premium"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Tier":
        raw = (name or "").strip().lower()
        if not raw:
            return cls.FREE
        try:
            return cls(raw)
        except ValueError:
            raise UnknownPlanError(f"Unknown plan: {name!r}") from None

    @property
    def caps(self) -> "Capabilities":
        return TIER_TABLE[self]

    @property
    def is_premium(self) -> bool:
        return self.caps.daily_downloads is None

    @property
    def label(self) -> str:
        return self.value.upper()

    def allows(self, quality: Quality) -> bool:
        return quality in self.caps.qualities


@dataclass(frozen=True)
class Capabilities:
    level: int
    price: int                       # INR, major units
    duration_days: int
    watch_minutes: Optional[int]     # None = unlimited
    daily_downloads: Optional[int]   # None = unlimited
    qualities: Tuple[Quality, ...]   # best first
    purchasable: bool = True
    features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def max_quality(self) -> Quality:
        return self.qualities[0]


FREE_QUALITIES = (Quality.P480, Quality.P360)
ALL_QUALITIES = (Quality.P720, Quality.P480, Quality.P360)

FREE_DAILY_DOWNLOADS = 1
UNLIMITED_WATCH = -1

TIER_TABLE: Dict[Tier, Capabilities] = {
    Tier.FREE: Capabilities(
        level=0, price=0, duration_days=0, watch_minutes=5,
        daily_downloads=FREE_DAILY_DOWNLOADS, qualities=FREE_QUALITIES,
        purchasable=False,
        features=("5 minutes watch time", "1 download per day", "Ad-supported"),
    ),
    Tier.BRONZE: Capabilities(
        level=1, price=10, duration_days=30, watch_minutes=7,
        daily_downloads=None, qualities=ALL_QUALITIES,
        features=("7 minutes watch time", "Unlimited downloads", "Reduced ads", "30 days validity"),
    ),
    Tier.SILVER: Capabilities(
        level=2, price=50, duration_days=30, watch_minutes=10,
        daily_downloads=None, qualities=ALL_QUALITIES,
        features=("10 minutes watch time", "Unlimited downloads", "No ads", "30 days validity"),
    ),
    Tier.GOLD: Capabilities(
        level=3, price=100, duration_days=30, watch_minutes=None,
        daily_downloads=None, qualities=ALL_QUALITIES,
        features=("Unlimited watch time", "Unlimited downloads", "No ads", "30 days validity", "Priority support"),
    ),
    # legacy plan name still found on old accounts; not sold anymore
    Tier.PREMIUM: Capabilities(
        level=3, price=0, duration_days=30, watch_minutes=None,
        daily_downloads=None, qualities=ALL_QUALITIES,
        purchasable=False,
        features=("Unlimited watch time", "Unlimited downloads"),
    ),
    Tier.MONTHLY: Capabilities(
        level=4, price=199, duration_days=30, watch_minutes=None,
        daily_downloads=None, qualities=ALL_QUALITIES,
        features=("Unlimited watch time", "Unlimited downloads", "HD quality", "30 days validity"),
    ),
    Tier.YEARLY: Capabilities(
        level=5, price=1999, duration_days=365, watch_minutes=None,
        daily_downloads=None, qualities=ALL_QUALITIES,
        features=("Unlimited watch time", "Unlimited downloads", "HD quality", "365 days validity"),
    ),
}


def capabilities(tier: Tier) -> Capabilities:
    return TIER_TABLE[tier]


def watch_limit_value(tier: Tier) -> int:
    """Minutes as stored on the user row; -1 means unlimited."""
    minutes = TIER_TABLE[tier].watch_minutes
    return UNLIMITED_WATCH if minutes is None else minutes


def purchasable_plans() -> List[Tier]:
    return [t for t in Tier if TIER_TABLE[t].purchasable]


def plan_payload(tier: Tier) -> Dict[str, object]:
    caps = TIER_TABLE[tier]
    return {
        "id": tier.label,
        "name": tier.label,
        "price": caps.price,
        "duration": caps.duration_days,
        "watchTime": watch_limit_value(tier),
        "maxDownloadsPerDay": caps.daily_downloads if caps.daily_downloads is not None else "unlimited",
        "qualities": [q.value for q in caps.qualities],
        "features": list(caps.features),
    }
