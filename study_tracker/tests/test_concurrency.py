"""
Tests for run_with_retry and concurrent reward evaluation.
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from study_tracker.database import Base
from study_tracker import models  # noqa: F401  register tables
from study_tracker.models import EarnedReward, PointsLedgerEntry
from study_tracker.services.concurrency import run_with_retry
from study_tracker.services.reward_service import RewardService, seed_default_rewards
from study_tracker.repositories.goal_repository import GoalRepository
from study_tracker.repositories.rewards_repository import (
    RewardRepository, UserRewardsRepository, PointsLedgerRepository
)
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.exceptions import ConflictException
from study_tracker.tests.conftest import add_session
class TestRunWithRetry:
    """Tests for the optimistic retry loop"""

    def test_returns_operation_result(self):
        db = MagicMock()

        assert run_with_retry(db, lambda: 42, "goal", 1, max_retries=3, backoff_ms=0) == 42
        db.commit.assert_called_once()

    def test_retries_after_conflict(self):
        db = MagicMock()
        db.commit.side_effect = [StaleDataError("stale"), None]
        operation = MagicMock(return_value="ok")

        with patch("study_tracker.services.concurrency.time.sleep") as sleep:
            result = run_with_retry(db, operation, "goal", 1, max_retries=3, backoff_ms=50)

        assert result == "ok"
        assert operation.call_count == 2
        db.rollback.assert_called_once()
        sleep.assert_called_once_with(0.05)

    def test_gives_up_with_conflict_error(self):
        db = MagicMock()
        db.commit.side_effect = StaleDataError("stale")

        with patch("study_tracker.services.concurrency.time.sleep") as sleep:
            with pytest.raises(ConflictException) as exc:
                run_with_retry(db, lambda: None, "user_rewards", "user-1", max_retries=2, backoff_ms=10)

        assert exc.value.attempts == 3
        assert exc.value.entity == "user_rewards"
        assert [c.args[0] for c in sleep.call_args_list] == [0.01, 0.02]

    def test_other_errors_roll_back_and_propagate(self):
        db = MagicMock()

        def operation():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(db, operation, "goal", 1, max_retries=3, backoff_ms=0)
        db.rollback.assert_called_once()
        db.commit.assert_not_called()

    def test_stale_version_is_replayed(self, db_session, make_goal, now):
        """A concurrent version bump forces one replay on fresh state"""
        goal_id = make_goal(target=10).id
        attempts = []

        def operation():
            goal = GoalRepository.get_by_id(db_session, goal_id)
            if not attempts:
                db_session.execute(text("UPDATE goals SET version = version + 1 WHERE id = :id"), {"id": goal_id})
            attempts.append(goal.version)
            goal.current_progress = goal.current_progress + 1
            goal.updated_at = now
            return goal

        goal = run_with_retry(db_session, operation, "goal", goal_id, max_retries=3, backoff_ms=0)

        assert len(attempts) == 2
        assert goal.current_progress == 1


@pytest.fixture
def two_sessions(tmp_path):
    """Two sessions on one file database, each with its own connection"""
    engine = create_engine(f"sqlite:///{tmp_path / 'rewards.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = SessionLocal(), SessionLocal()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


class TestConcurrentRewardEvaluation:
    """Two evaluations of the same user racing on one database"""

    def test_reward_is_earned_once(self, two_sessions):
        """The other session commits between our read and our write"""
        session_a, session_b = two_sessions
        now = datetime(2026, 3, 11, 12, 0, 0)
        settings = SettingsRepository.get(session_a)
        settings.conflict_backoff_ms = 0
        session_a.commit()
        seed_default_rewards(session_a)
        add_session(session_a, "user-1", now - timedelta(hours=1))

        other_results = []

        def get_active(db):
            if not other_results:
                other_results.append(RewardService(session_b).evaluate_user("user-1", now))
            return RewardRepository.get_active(db)

        service_a = RewardService(session_a)
        service_a.reward_repo = MagicMock()
        service_a.reward_repo.get_active.side_effect = get_active

        result = service_a.evaluate_user("user-1", now)

        assert other_results[0]["rewards_earned"] == ["first_steps"]
        assert result["rewards_earned"] == []
        assert service_a.reward_repo.get_active.call_count == 2

        profile = UserRewardsRepository.get_by_user(session_a, "user-1")
        assert session_a.query(EarnedReward).count() == 1
        assert session_a.query(PointsLedgerEntry).count() == 1
        assert profile.total_points == 10
        assert PointsLedgerRepository.sum_for_user(session_a, profile.id) == profile.total_points
