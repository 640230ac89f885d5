"""
Test configuration and fixtures
"""
import os

os.environ.setdefault("SCHEDULER_ENABLED", "0")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from db import Base, get_db, User, Video
from auth import create_access_token, get_password_hash
from otp import OtpStore
from tiers import Tier
from main import app
import subscriptions
import video_files

MP4_HEADER = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00"


# =============================================================================
# Test Database Setup
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# FastAPI Test Client
# =============================================================================

@pytest.fixture(scope="function")
def upload_root(tmp_path, monkeypatch):
    monkeypatch.setattr(video_files, "UPLOAD_ROOT", tmp_path)
    (tmp_path / "videos").mkdir()
    return tmp_path


@pytest.fixture(scope="function")
def otp_store():
    return OtpStore(ttl_seconds=300)


@pytest.fixture(scope="function")
def client(db_session, upload_root, otp_store) -> Generator[TestClient, None, None]:
    """Test client with the DB dependency pointed at the test session; lifespan not run"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.otp_store = otp_store
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Test Data Fixtures
# =============================================================================

@pytest.fixture
def make_user(db_session):
    """Factory: user on the free plan, optionally upgraded to a paid tier"""

    def _make(email="alice@mailbox.org", password="secret123", plan=None, is_admin=False):
        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            name=email.split("@")[0].title(),
            is_admin=is_admin,
        )
        db_session.add(user)
        db_session.flush()
        subscriptions.start_free(db_session, user)
        db_session.commit()
        if plan is not None and plan is not Tier.FREE:
            subscriptions.activate(db_session, user, plan, order_id=f"order_{user.id}")
            db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user()


@pytest.fixture
def gold_user(make_user) -> User:
    return make_user(email="gold@mailbox.org", plan=Tier.GOLD)


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(email="admin@mailbox.org", is_admin=True)


def _bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.email)}"}


@pytest.fixture
def headers_for():
    return _bearer


@pytest.fixture
def auth_headers(user) -> dict:
    return _bearer(user)


@pytest.fixture
def make_video(db_session, upload_root):
    """Factory: video row plus its file under UPLOAD_ROOT/videos"""

    def _make(owner, title="My Clip", filename="clip.mp4", content=MP4_HEADER + b"x" * 100, write=True):
        if write:
            (upload_root / "videos" / filename).write_bytes(content)
        video = Video(title=title, filename=filename, filetype="video/mp4",
                      filesize=len(content), uploaded_by=owner.id)
        db_session.add(video)
        db_session.commit()
        db_session.refresh(video)
        return video

    return _make
