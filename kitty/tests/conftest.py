"""
Shared fixtures: an in-memory SQLite database wired into the app.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import kitty.models  # noqa: F401
from kitty.db.base import Base
from kitty.db.session import get_db
from kitty.main import app
from kitty.models import Activity, ActivityType, Member


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def split_activity(db):
    """Court rental: cost split by heads, with members Alice, Bob and Carol."""
    activity = Activity(name="Pickleball", type=ActivityType.SPLIT, cost_per_unit=0.0, alert_threshold=200.0)
    db.add(activity)
    db.flush()
    for name in ("Alice", "Bob", "Carol"):
        db.add(Member(activity_id=activity.id, name=name, balance=0.0))
    db.commit()
    db.refresh(activity)
    return activity


@pytest.fixture
def bowling_activity(db):
    """Bowling: cost per game played, with members Dan and Eve."""
    activity = Activity(name="Bowling", type=ActivityType.PER_USE, cost_per_unit=30.0, alert_threshold=200.0)
    db.add(activity)
    db.flush()
    for name in ("Dan", "Eve"):
        db.add(Member(activity_id=activity.id, name=name, balance=0.0))
    db.commit()
    db.refresh(activity)
    return activity


@pytest.fixture
def members_of(db):
    """Fresh name -> Member lookup for an activity."""
    def lookup(activity_id):
        db.expire_all()
        return {
            m.name: m for m in db.query(Member).filter(Member.activity_id == activity_id).all()
        }
    return lookup
