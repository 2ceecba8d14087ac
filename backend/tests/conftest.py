# tests/conftest.py
import os

# Settings are read at import time; pin them before fanconnect is imported.
os.environ["DATABASE_URL"] = ""
os.environ["IDENTITY_JWT_SECRET"] = "test-secret"
os.environ["IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ.pop("IDENTITY_JWT_AUDIENCE", None)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fanconnect import auth, models  # noqa: E402
from fanconnect.database import Base, get_db, make_engine  # noqa: E402
from fanconnect.dependencies import get_clock  # noqa: E402


class FakeClock:
    """
    Controllable clock. Each call returns the current instant and then moves
    forward by `step`, so rows written back to back get distinct timestamps.
    """

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0), step: timedelta = timedelta(0)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)

    def set(self, when: datetime) -> None:
        self.current = when


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = Session(engine, autoflush=False, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(step=timedelta(milliseconds=1))


# -----------------------------
# Factories
# -----------------------------
@pytest.fixture
def make_profile(db, clock):
    def _make(profile_id: str, role: str = models.ROLE_FAN, **fields) -> models.Profile:
        profile = models.Profile(id=profile_id, role=role, created_at=clock(), **fields)
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def make_tiers(db, clock):
    def _make(creator_id: str, levels=(1, 2, 3)) -> list[models.Tier]:
        tiers = [
            models.Tier(creator_id=creator_id, level=lvl, name=f"Level {lvl}", price=100_000 * lvl, created_at=clock())
            for lvl in levels
        ]
        db.add_all(tiers)
        db.commit()
        return tiers

    return _make


@pytest.fixture
def creator(make_profile, make_tiers):
    profile = make_profile("creator-1", models.ROLE_CREATOR, full_name="Creator One")
    make_tiers(profile.id)
    return profile


@pytest.fixture
def fan(make_profile):
    return make_profile("fan-1", models.ROLE_FAN, full_name="Fan One")


# -----------------------------
# HTTP
# -----------------------------
@pytest.fixture
def bearer():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {auth.create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def client(engine, clock):
    from fanconnect.main import app

    def _db():
        session = Session(engine, autoflush=False, expire_on_commit=False)
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
