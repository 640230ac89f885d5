# db.py
import os
from datetime import datetime, timedelta
from sqlalchemy import (
    create_engine, Column, Integer, String, Boolean, DateTime, Date, Text,
    ForeignKey, UniqueConstraint, Index, Enum as SqlEnum,
)
from sqlalchemy.orm import sessionmaker, declarative_base, scoped_session

from tiers import Tier

# --- DB URL normalizer (Render/Heroku compatibility) -------------------------
def _normalize_db_url(url: str) -> str:
    # Heroku-style URLs use postgres://; SQLAlchemy expects postgresql://
    return url.replace("postgres://", "postgresql://", 1) if url.startswith("postgres://") else url

DATABASE_URL = _normalize_db_url(os.getenv("DATABASE_URL", "")) or "sqlite:///./yourtube.db"

# SQLite needs this flag for multi-threaded FastAPI usage
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = scoped_session(sessionmaker(bind=engine, autocommit=False, autoflush=False))
Base = declarative_base()

DOWNLOAD_LINK_TTL = timedelta(hours=24)

# enum columns store the lowercase value ("gold"), not the member name
def _tier_column():
    return SqlEnum(Tier, name="tier", values_callable=lambda e: [m.value for m in e])


# --- Models -------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    name = Column(String(120), nullable=True)
    channel_name = Column(String(120), nullable=True)
    phone = Column(String(20), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    current_plan = Column(_tier_column(), default=Tier.FREE, nullable=False)
    subscription_expiry = Column(DateTime, nullable=True)
    watch_time_limit = Column(Integer, default=5, nullable=False)  # minutes, -1 = unlimited
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_type = Column(_tier_column(), default=Tier.FREE, nullable=False)
    plan_name = Column(String(64), default="Free Plan")
    price = Column(Integer, default=0)
    status = Column(String(16), default="ACTIVE", nullable=False)   # ACTIVE | CANCELLED | EXPIRED
    start_date = Column(DateTime, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)
    payment_status = Column(String(16), default="pending")          # pending | completed | failed | refunded
    order_id = Column(String(64), nullable=True)
    payment_id = Column(String(64), nullable=True)
    auto_renew = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_subscriptions_user_status", "user_id", "status"),
    )

    def is_current(self, now: datetime) -> bool:
        if self.status != "ACTIVE":
            return False
        return self.end_date is None or self.end_date > now


class Video(Base):
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    filename = Column(String(255), nullable=False)
    filepath = Column(String(512), nullable=True)
    filetype = Column(String(64), nullable=True)
    filesize = Column(Integer, default=0)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    views = Column(Integer, default=0)
    likes = Column(Integer, default=0, nullable=False)
    dislikes = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class DownloadRecord(Base):
    __tablename__ = "downloads"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    video_id = Column(Integer, ForeignKey("videos.id"), nullable=False)
    video_title = Column(String(255), nullable=False)
    quality = Column(String(8), default="480p")
    file_size = Column(Integer, default=0)
    status = Column(String(16), default="completed")
    # server local time; quota days are local calendar days
    created_at = Column(DateTime, default=datetime.now)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_downloads_user_created", "user_id", "created_at"),
    )


class DownloadCounter(Base):
    """Downloads performed per user per local day; the quota is enforced on this row."""
    __tablename__ = "download_counters"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day = Column(Date, nullable=False)
    count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_download_counters_user_day"),
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(64), unique=True, nullable=False)
    payment_id = Column(String(64), nullable=True)
    amount = Column(Integer, default=0)
    currency = Column(String(8), default="INR")
    plan = Column(_tier_column(), nullable=False)
    status = Column(String(16), default="PENDING")   # PENDING | SUCCESS | FAILED
    invoice_number = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class WatchHistory(Base):
    """One row per user and video; re-watching moves it to the top."""
    __tablename__ = "watch_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    video_id = Column(Integer, ForeignKey("videos.id"), nullable=False)
    watch_duration = Column(Integer, default=0)       # seconds
    watch_percentage = Column(Integer, default=0)     # 0-100
    device = Column(String(16), default="desktop")
    viewed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_watch_history_user_video"),
        Index("ix_watch_history_user_viewed", "user_id", "viewed_at"),
    )


class WatchLater(Base):
    __tablename__ = "watch_later"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    video_id = Column(Integer, ForeignKey("videos.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_watch_later_user_video"),
    )


class VideoReaction(Base):
    __tablename__ = "video_reactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    video_id = Column(Integer, ForeignKey("videos.id"), nullable=False)
    reaction = Column(String(8), default="like", nullable=False)   # like | dislike
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_video_reactions_user_video"),
        Index("ix_video_reactions_video_reaction", "video_id", "reaction"),
    )


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    target_type = Column(String(16), nullable=False)      # video | user | channel
    target_id = Column(Integer, nullable=False)
    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(32), nullable=False)
    reason = Column(String(500), nullable=False)
    description = Column(Text, default="")
    status = Column(String(16), default="pending", nullable=False)   # pending | under_review | action_taken | dismissed
    priority = Column(String(16), default="medium", nullable=False)  # low | medium | high | critical
    moderator_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action_taken = Column(String(32), default="none")
    moderator_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_reports_target", "target_type", "target_id"),
        Index("ix_reports_status_created", "status", "created_at"),
    )


# --- Helpers ------------------------------------------------------------------
def init_db():
    Base.metadata.create_all(bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
