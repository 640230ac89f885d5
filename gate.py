# gate.py
"""
Download eligibility.

SubscriptionGate answers "may this user download right now, and at which
qualities?". It reads the user's current subscription, classifies it through
tiers.Tier and, for limited tiers, compares today's download count against the
daily quota. Days are server-local calendar days.

Checking never writes. The only write is claim_download(), which consumes one
unit of quota with a single conditional UPDATE on the user's counter row for
the day, so two concurrent requests cannot both take the last slot.
"""
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from typing import Callable, Optional, Tuple, Dict, Any

from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import User, Subscription, DownloadRecord, DownloadCounter
from tiers import Tier, Quality

Clock = Callable[[], datetime]


class GateError(Exception):
    pass


class UserNotFound(GateError):
    pass


class QuotaExceeded(GateError):
    def __init__(self, eligibility: "Eligibility"):
        super().__init__("Daily download limit reached. Upgrade to premium for unlimited downloads.")
        self.eligibility = eligibility


class QualityNotAllowed(GateError):
    def __init__(self, eligibility: "Eligibility", quality: str):
        suffix = "" if eligibility.is_premium else " for free users"
        super().__init__(f"Quality {quality} not available{suffix}")
        self.eligibility = eligibility
        self.quality = quality


@dataclass
class Eligibility:
    tier: Tier
    subscription: Subscription
    can_download: bool
    downloads_today: int
    max_downloads: Optional[int]          # None = unlimited
    qualities: Tuple[Quality, ...]

    @property
    def is_premium(self) -> bool:
        return self.max_downloads is None

    @property
    def remaining(self) -> Optional[int]:
        if self.max_downloads is None:
            return None
        return max(0, self.max_downloads - self.downloads_today)

    def to_payload(self) -> Dict[str, Any]:
        unlimited = self.max_downloads is None
        return {
            "canDownload": self.can_download,
            "isPremium": self.is_premium,
            "downloadsToday": self.downloads_today,
            "maxDownloads": "unlimited" if unlimited else self.max_downloads,
            "remainingDownloads": "unlimited" if unlimited else self.remaining,
            "availableQualities": [q.value for q in self.qualities],
            "subscription": {
                "planType": self.tier.value,
                "planName": self.subscription.plan_name or f"{self.tier.label} Plan",
                "status": self.subscription.status,
                "endDate": self.subscription.end_date.isoformat() if self.subscription.end_date else None,
            },
        }


def local_day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = datetime.combine(now.date(), time.min)
    return start, start + timedelta(days=1)


class SubscriptionGate:
    def __init__(self, db: Session, clock: Clock = datetime.now, utc_clock: Clock = datetime.utcnow):
        self.db = db
        self.clock = clock
        self.utc_clock = utc_clock

    # ---- lookups --------------------------------------------------------------
    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def current_subscription(self, user_id: int) -> Subscription:
        """
        Most recent subscription row by creation time. A cancelled, expired or
        lapsed row, or no row at all, yields an unsaved free-tier record.
        """
        sub = (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )
        if sub is not None and sub.is_current(self.utc_clock()):
            return sub
        return Subscription(
            user_id=user_id,
            plan_type=Tier.FREE,
            plan_name="Free Plan",
            price=0,
            status="ACTIVE",
            payment_status="completed",
        )

    def tier_of(self, sub: Subscription) -> Tier:
        return Tier.parse(getattr(sub.plan_type, "value", sub.plan_type))

    def downloads_today(self, user_id: int) -> int:
        now = self.clock()
        counted = (
            self.db.query(DownloadCounter.count)
            .filter(DownloadCounter.user_id == user_id, DownloadCounter.day == now.date())
            .scalar()
        ) or 0
        start, end = local_day_bounds(now)
        recorded = (
            self.db.query(func.count(DownloadRecord.id))
            .filter(
                DownloadRecord.user_id == user_id,
                DownloadRecord.created_at >= start,
                DownloadRecord.created_at < end,
            )
            .scalar()
        ) or 0
        return max(counted, recorded)

    # ---- decisions ------------------------------------------------------------
    def check_eligibility(self, user_id: int) -> Eligibility:
        self.get_user(user_id)
        sub = self.current_subscription(user_id)
        tier = self.tier_of(sub)
        caps = tier.caps

        if caps.daily_downloads is None:
            return Eligibility(
                tier=tier, subscription=sub, can_download=True,
                downloads_today=0, max_downloads=None, qualities=caps.qualities,
            )

        used = self.downloads_today(user_id)
        return Eligibility(
            tier=tier, subscription=sub, can_download=used < caps.daily_downloads,
            downloads_today=used, max_downloads=caps.daily_downloads, qualities=caps.qualities,
        )

    def authorize(self, user_id: int, quality: str) -> Tuple[Eligibility, Quality]:
        """Eligibility plus the normalised quality label, or QuotaExceeded / QualityNotAllowed."""
        elig = self.check_eligibility(user_id)
        if not elig.can_download:
            raise QuotaExceeded(elig)
        try:
            wanted = Quality.parse(quality)
        except ValueError:
            raise QualityNotAllowed(elig, quality)
        if wanted not in elig.qualities:
            raise QualityNotAllowed(elig, wanted.value)
        return elig, wanted

    def claim_download(self, elig: Eligibility) -> None:
        """Consume one unit of today's quota. Unlimited tiers are not counted."""
        limit = elig.max_downloads
        if limit is None:
            return
        user_id = elig.subscription.user_id
        if not self._increment_if_under(user_id, self.clock().date(), limit):
            elig.can_download = False
            elig.downloads_today = max(elig.downloads_today, limit)
            raise QuotaExceeded(elig)

    def _increment_if_under(self, user_id: int, day: date, limit: int) -> bool:
        bump = (
            update(DownloadCounter)
            .where(
                DownloadCounter.user_id == user_id,
                DownloadCounter.day == day,
                DownloadCounter.count < limit,
            )
            .values(count=DownloadCounter.count + 1)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(bump).rowcount:
            return True

        exists = (
            self.db.query(DownloadCounter.id)
            .filter(DownloadCounter.user_id == user_id, DownloadCounter.day == day)
            .first()
        )
        if exists is not None or limit < 1:
            return False

        try:
            with self.db.begin_nested():
                self.db.add(DownloadCounter(user_id=user_id, day=day, count=1))
            return True
        except IntegrityError:
            # another request created today's row first
            return bool(self.db.execute(bump).rowcount)
