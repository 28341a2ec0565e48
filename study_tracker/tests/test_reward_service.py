"""
Tests for RewardService.

Tests cover:
1. Criterion strategies and timeframes
2. Idempotent awarding
3. Points ledger and levels
4. Achievement flags and bonus grants
5. Catalog seeding
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from study_tracker.services.reward_service import RewardService, EvaluationContext, seed_default_rewards
from study_tracker.repositories.rewards_repository import UserRewardsRepository, PointsLedgerRepository
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.models import EarnedReward, PendingNotification, Reward
from study_tracker.schemas import StatCounters, StatsSnapshot, StreakState
from study_tracker.seed_data import DEFAULT_REWARDS
from study_tracker.exceptions import UserRewardsNotFoundException, ValidationException
from study_tracker.tests.conftest import add_session


def weekly_sessions_reward(threshold=2):
    return {
        "code": "busy_week",
        "name": "Busy Week",
        "description": "Study several times in one week",
        "type": "achievement",
        "category": "study",
        "icon": None,
        "points_value": 40,
        "rarity": "uncommon",
        "criteria_type": "sessions_count",
        "criteria_threshold": threshold,
        "criteria_timeframe": "weekly",
        "display_order": 1,
    }


def notification_types(db_session):
    return [n.type for n in db_session.query(PendingNotification).order_by(PendingNotification.id)]


class TestCriteria:
    """Tests for criterion_value and evaluate"""

    def _context(self, **alltime):
        stats = StatsSnapshot(alltime=StatCounters(**alltime), weekly=StatCounters(sessions=1))
        return EvaluationContext(stats, StreakState(current_streak=4, status="completed_today"), {"welcome"})

    def test_counter_criteria_follow_timeframe(self):
        ctx = self._context(sessions=12)
        alltime = Reward(id=1, code="a", criteria_type="sessions_count", criteria_threshold=10, criteria_timeframe="alltime")
        weekly = Reward(id=2, code="w", criteria_type="sessions_count", criteria_threshold=10, criteria_timeframe="weekly")

        assert RewardService.criterion_value(alltime, ctx) == 12
        assert RewardService.criterion_value(weekly, ctx) == 1
        assert [r.id for r in RewardService.evaluate(set(), [alltime, weekly], ctx)] == [1]

    def test_streak_criterion_uses_current_streak(self):
        ctx = self._context()
        reward = Reward(id=1, code="s", criteria_type="streak_days", criteria_threshold=3, criteria_timeframe="alltime")

        assert RewardService.qualifies(reward, ctx) is True

    def test_custom_criterion_needs_matching_flag(self):
        ctx = self._context()
        welcome = Reward(id=1, code="welcome", criteria_type="custom", criteria_threshold=1, criteria_timeframe="alltime")
        other = Reward(id=2, code="profile_complete", criteria_type="custom", criteria_threshold=1, criteria_timeframe="alltime")

        assert RewardService.qualifies(welcome, ctx) is True
        assert RewardService.qualifies(other, ctx) is False

    def test_boolean_criteria_ignore_catalog_threshold(self):
        ctx = self._context()
        reward = Reward(id=1, code="welcome", criteria_type="custom", criteria_threshold=5, criteria_timeframe="alltime")

        assert RewardService.threshold_for(reward) == 1
        assert RewardService.qualifies(reward, ctx) is True

    def test_already_earned_rewards_are_skipped(self):
        ctx = self._context(sessions=12)
        reward = Reward(id=7, code="a", criteria_type="sessions_count", criteria_threshold=1, criteria_timeframe="alltime")

        assert RewardService.evaluate({7}, [reward], ctx) == []

    def test_unknown_criterion_is_rejected(self):
        reward = Reward(id=1, code="x", criteria_type="focus_time", criteria_threshold=1, criteria_timeframe="alltime")

        with pytest.raises(ValidationException):
            RewardService.criterion_value(reward, self._context())


class TestEvaluateUser:
    """Tests for evaluate_user"""

    def test_awards_exactly_once(self, db_session, seeded_catalog, now):
        """A second run on unchanged activity awards nothing"""
        add_session(db_session, "user-1", now - timedelta(hours=1))
        service = RewardService(db_session)

        first = service.evaluate_user("user-1", now)
        second = service.evaluate_user("user-1", now)

        assert first["rewards_earned"] == ["first_steps"]
        assert first["points_awarded"] == 10
        assert second["rewards_earned"] == []
        assert second["points_awarded"] == 0
        assert db_session.query(EarnedReward).count() == 1

    def test_total_points_match_ledger(self, db_session, seeded_catalog, now):
        for hours in (1, 2, 3, 4, 5):
            add_session(db_session, "user-1", now - timedelta(hours=hours), duration_seconds=1200)
        service = RewardService(db_session)

        service.evaluate_user("user-1", now)
        service.award_bonus_points("user-1", 15, "Helping a classmate", now)

        profile = service.get_user_rewards("user-1")
        assert profile.total_points == 10 + 25 + 15 + 15
        assert PointsLedgerRepository.sum_for_user(db_session, profile.id) == profile.total_points

    def test_achievement_notification_is_queued(self, db_session, seeded_catalog, now):
        add_session(db_session, "user-1", now - timedelta(hours=1))

        RewardService(db_session).evaluate_user("user-1", now)

        assert "achievement_unlocked" in notification_types(db_session)

    def test_early_bird_and_night_owl(self, db_session, seeded_catalog, now):
        add_session(db_session, "user-1", datetime(2026, 3, 11, 6, 30))
        add_session(db_session, "user-1", datetime(2026, 3, 10, 22, 15))

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert "early_bird" in result["rewards_earned"]
        assert "night_owl" in result["rewards_earned"]

    def test_early_bird_uses_local_time(self, db_session, seeded_catalog, default_settings, now):
        """06:30 UTC is 07:30 in Berlin"""
        default_settings.timezone = "Europe/Berlin"
        db_session.commit()
        add_session(db_session, "user-1", datetime(2026, 3, 11, 6, 30))

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert "early_bird" not in result["rewards_earned"]

    def test_weekly_reward_counts_current_week_only(self, db_session, default_settings, now):
        seed_default_rewards(db_session, [weekly_sessions_reward(threshold=2)])
        add_session(db_session, "user-1", now - timedelta(days=7))
        add_session(db_session, "user-1", now - timedelta(days=8))
        add_session(db_session, "user-1", now - timedelta(hours=3))
        service = RewardService(db_session)

        assert service.evaluate_user("user-1", now)["rewards_earned"] == []

        add_session(db_session, "user-1", now - timedelta(hours=2))
        assert service.evaluate_user("user-1", now)["rewards_earned"] == ["busy_week"]

    def test_perfect_week_from_previous_week(self, db_session, seeded_catalog, now):
        for day in range(2, 9):
            add_session(db_session, "user-1", datetime(2026, 3, day, 18, 0))

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert "perfect_week" in result["rewards_earned"]

    def test_lifetime_counters_never_decrease(self, db_session, seeded_catalog, now):
        """Stored counters win over a lower recount"""
        add_session(db_session, "user-1", now - timedelta(hours=1))
        profile = UserRewardsRepository.get_or_create(db_session, "user-1")
        profile.total_sessions = 5
        db_session.commit()

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert "getting_started" in result["rewards_earned"]
        assert RewardService(db_session).get_user_rewards("user-1").total_sessions == 5

    def test_streak_is_stored_on_profile(self, db_session, seeded_catalog, now):
        for days_ago in (2, 1, 0):
            add_session(db_session, "user-1", now - timedelta(days=days_ago, hours=1))

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert result["streak"].current_streak == 3
        assert "streak_starter" in result["rewards_earned"]
        profile = RewardService(db_session).get_user_rewards("user-1")
        assert profile.current_streak == 3
        assert "streak_milestone" in notification_types(db_session)

    def test_clears_needs_evaluation(self, db_session, seeded_catalog, now):
        service = RewardService(db_session)
        service.mark_needs_evaluation("user-1")

        service.evaluate_user("user-1", now)

        assert service.get_user_rewards("user-1").needs_evaluation is False

    def test_future_sessions_are_not_counted(self, db_session, seeded_catalog, now):
        """Only activity up to the evaluation time counts"""
        add_session(db_session, "user-1", now - timedelta(hours=1))
        for hours in (1, 2, 3, 4):
            add_session(db_session, "user-1", now + timedelta(hours=hours))

        result = RewardService(db_session).evaluate_user("user-1", now)

        assert result["rewards_earned"] == ["first_steps"]
        assert RewardService(db_session).get_user_rewards("user-1").total_sessions == 1

    def test_settings_are_read_once(self, db_session, now):
        """Settings row is created before the unit of work and not re-read"""
        seed_default_rewards(db_session)
        add_session(db_session, "user-1", now - timedelta(hours=1))

        with patch.object(SettingsRepository, "get", wraps=SettingsRepository.get) as get_settings:
            result = RewardService(db_session).evaluate_user("user-1", now)

        assert result["rewards_earned"] == ["first_steps"]
        assert get_settings.call_count == 1


class TestFlagsAndBonus:
    """Tests for set_achievement_flag and award_bonus_points"""

    def test_flag_unlocks_custom_reward(self, db_session, seeded_catalog, now):
        result = RewardService(db_session).set_achievement_flag("user-1", "welcome", now)

        assert result["rewards_earned"] == ["welcome"]
        assert result["total_points"] == 5

    def test_flag_for_perfect_week(self, db_session, seeded_catalog, now):
        result = RewardService(db_session).set_achievement_flag("user-1", "perfect_week", now)

        assert result["rewards_earned"] == ["perfect_week"]

    def test_bonus_reaches_next_level(self, db_session, default_settings, now):
        result = RewardService(db_session).award_bonus_points("user-1", 100, "Class award", now)

        assert result == {"points_awarded": 100, "total_points": 100, "current_level": 2, "leveled_up": True}
        assert notification_types(db_session) == ["level_up"]

    @pytest.mark.parametrize("amount", [0, -5, 2.5, True])
    def test_bonus_amount_must_be_positive_integer(self, db_session, default_settings, amount):
        with pytest.raises(ValidationException):
            RewardService(db_session).award_bonus_points("user-1", amount, "reason")

    def test_bonus_needs_reason(self, db_session, default_settings):
        with pytest.raises(ValidationException):
            RewardService(db_session).award_bonus_points("user-1", 10, "   ")

    def test_bonus_is_recorded_in_ledger(self, db_session, default_settings, now):
        service = RewardService(db_session)
        service.award_bonus_points("user-1", 30, "Extra credit", now)

        profile = service.get_user_rewards("user-1")
        entries = PointsLedgerRepository.get_for_user(db_session, profile.id)
        assert [(e.amount, e.source, e.reason) for e in entries] == [(30, "bonus", "Extra credit")]


class TestQueries:
    """Tests for get_profile and get_rewards_progress"""

    def test_profile_requires_existing_user(self, db_session, default_settings):
        with pytest.raises(UserRewardsNotFoundException):
            RewardService(db_session).get_profile("nobody")

    def test_profile_summarizes_rewards(self, db_session, seeded_catalog, now):
        add_session(db_session, "user-1", now - timedelta(hours=1), duration_seconds=3600)
        service = RewardService(db_session)
        service.evaluate_user("user-1", now)

        profile = service.get_profile("user-1", now)

        assert profile["total_points"] == 25
        assert profile["total_badges"] == 2
        assert profile["lifetime_stats"]["total_study_hours"] == 1.0
        assert profile["streak"].status == "completed_today"

    def test_rewards_progress_excludes_earned(self, db_session, seeded_catalog, now):
        add_session(db_session, "user-1", now - timedelta(hours=1))
        service = RewardService(db_session)
        service.evaluate_user("user-1", now)

        progress = service.get_rewards_progress("user-1", now)

        codes = [p["reward"].code for p in progress]
        assert "first_steps" not in codes
        getting_started = next(p for p in progress if p["reward"].code == "getting_started")
        assert getting_started["current_value"] == 1
        assert getting_started["progress_percent"] == 20
        percents = [p["progress_percent"] for p in progress]
        assert percents == sorted(percents, reverse=True)


class TestSeeding:
    """Tests for seed_default_rewards"""

    def test_seeding_is_idempotent(self, db_session, default_settings):
        assert seed_default_rewards(db_session) == len(DEFAULT_REWARDS)
        assert seed_default_rewards(db_session) == 0

    def test_unknown_criterion_in_catalog(self, db_session, default_settings):
        reward = weekly_sessions_reward()
        reward["criteria_type"] = "focus_time"

        with pytest.raises(ValidationException):
            seed_default_rewards(db_session, [reward])
