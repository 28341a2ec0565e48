"""
Shared fixtures for the study tracker tests.
"""
import os
import tempfile

# main.py configures logging and creates tables on import
os.environ.setdefault("STUDY_TRACKER_DATABASE_URL", "sqlite://")
os.environ.setdefault("STUDY_TRACKER_LOG_DIR", tempfile.mkdtemp(prefix="study-tracker-logs-"))

import pytest
from datetime import date, datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from study_tracker.database import Base
from study_tracker import models  # noqa: F401  register tables
from study_tracker.models import StudySession
from study_tracker.schemas import GoalCreate
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.repositories.rewards_repository import RewardRepository
from study_tracker.services.goal_service import GoalService
from study_tracker.services.reward_service import seed_default_rewards


@pytest.fixture
def db_session():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def default_settings(db_session):
    """Settings row with defaults; retries never sleep"""
    settings = SettingsRepository.get(db_session)
    settings.conflict_backoff_ms = 0
    db_session.commit()
    return settings


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


@pytest.fixture
def now():
    """Fixed clock: Wednesday 2026-03-11 12:00 UTC"""
    return datetime(2026, 3, 11, 12, 0, 0)


@pytest.fixture
def make_goal(db_session, default_settings, now):
    """Factory creating a stored goal; keyword arguments override GoalCreate fields"""
    def _make_goal(user_id="user-1", created_at=None, **overrides):
        data = {
            "title": "Study goal",
            "target": 10,
            "progress_unit": "hours",
            "period": "weekly",
        }
        data.update(overrides)
        return GoalService(db_session).create_goal(user_id, GoalCreate(**data), now=created_at or now)
    return _make_goal


@pytest.fixture
def seeded_catalog(db_session, default_settings):
    """Default reward catalog, keyed by code"""
    seed_default_rewards(db_session)
    return {reward.code: reward for reward in RewardRepository.get_active(db_session)}


def add_session(db_session, user_id, started_at, duration_seconds=1800, subject=None):
    """Store a completed study session directly"""
    session = StudySession(
        user_id=user_id,
        subject=subject,
        started_at=started_at,
        duration_seconds=duration_seconds,
        created_at=started_at,
    )
    db_session.add(session)
    db_session.commit()
    return session
