"""
Shared fixtures for the Donation Hub test suite.

Every test gets a fresh in-memory SQLite schema. The API client shares that
database through ``app.dependency_overrides[get_db]``.
"""

import os
import tempfile

# Configuration is read at import time, so the environment is set up first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STATIC_DIR"] = tempfile.mkdtemp(prefix="donation-hub-static-")
os.environ.pop("DEFAULT_ADMIN_EMAIL", None)
os.environ.pop("DEFAULT_ADMIN_PASSWORD", None)

import logging
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token, get_password_hash, session_claims
from database import Base, get_db
from main import app
from models import Campaign, Donation, Identity, IdentitySpace

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="session")
def password_hash():
    """One cheap bcrypt hash shared by fixtures that bypass registration."""
    return get_password_hash(TEST_PASSWORD, rounds=4)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_identity(db_session, password_hash):
    def _make(name="Alice", email="alice@donors.org", space=IdentitySpace.USER, photo=None, role="donor"):
        identity = Identity(
            space=space,
            name=name,
            email=email,
            role=role if space == IdentitySpace.USER else None,
            password_hash=password_hash,
            photo=photo,
        )
        db_session.add(identity)
        db_session.commit()
        db_session.refresh(identity)
        return identity
    return _make


@pytest.fixture
def make_campaign(db_session):
    def _make(title="Clean Water", goal=1000, status="active", image=None):
        campaign = Campaign(title=title, description=f"{title} campaign", goal=goal, status=status, image=image)
        db_session.add(campaign)
        db_session.commit()
        db_session.refresh(campaign)
        return campaign
    return _make


@pytest.fixture
def make_donation(db_session):
    def _make(user, campaign, amount, message="Keep it up", date=None):
        donation = Donation(
            user_id=user.id,
            campaign_id=campaign.id,
            amount=amount,
            message=message,
            date=date or datetime.utcnow(),
        )
        db_session.add(donation)
        db_session.commit()
        db_session.refresh(donation)
        return donation
    return _make


@pytest.fixture
def admin(make_identity):
    return make_identity(name="Root", email="root@donationhub.org", space=IdentitySpace.ADMIN)


@pytest.fixture
def admin_headers(admin):
    token = create_access_token(session_claims(admin))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def png_bytes():
    from io import BytesIO
    from PIL import Image

    buffer = BytesIO()
    Image.new("RGB", (8, 8), color=(200, 40, 40)).save(buffer, format="PNG")
    return buffer.getvalue()
