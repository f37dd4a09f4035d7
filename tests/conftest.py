"""Shared fixtures: a throwaway SQLite database per test, a pinned clock and an authenticated client."""

import datetime as dt
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_SECRET_KEY"] = "test-secret-key-for-testing-at-least-32-chars"
os.environ["AUTH_ALGORITHM"] = "HS256"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker

from db import make_engine
from models import Base, Subscription, Workout

UTC = dt.timezone.utc
ACTIVATED_AT = dt.datetime(2024, 1, 1, tzinfo=UTC)


def utc(*args) -> dt.datetime:
    return dt.datetime(*args, tzinfo=UTC)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, future=True, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


def add_subscription(db, user_id="user-1", activated_at=ACTIVATED_AT, **kwargs) -> Subscription:
    defaults = dict(
        program_length_weeks=12,
        required_workouts_per_week=4,
        pledge_amount=80.0,
        variation=1,
        status="active",
    )
    defaults.update(kwargs)
    sub = Subscription(user_id=user_id, activated_at=activated_at, **defaults)
    db.add(sub)
    db.commit()
    return sub


def add_workouts(db, variation=1):
    rows = [
        Workout(id=f"v{variation}-legs", variation=variation, day_number=1, title="Leg Day", description="Squat focus"),
        Workout(id=f"v{variation}-push", variation=variation, day_number=2, title="Push", description="Bench and press"),
        Workout(id=f"v{variation}-pull", variation=variation, day_number=4, title="Pull", description="Rows and pull-ups"),
        Workout(id=f"v{variation}-burn", variation=variation, day_number=6, title="Metabolic Burn", description=""),
    ]
    db.add_all(rows)
    db.commit()
    return rows


class Clock:
    def __init__(self, now: dt.datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + dt.timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(utc(2024, 1, 1, 9, 0))


def auth_headers(user_id: str = "user-1") -> dict:
    token = jwt.encode({"sub": user_id}, os.environ["AUTH_SECRET_KEY"], algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session_factory, clock):
    from main import app, get_now, get_session_factory

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_now] = lambda: clock.now
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
