"""
Reward criteria evaluation service.

Maps each criterion type of the reward catalog to the statistic it compares
against, awards newly qualifying rewards exactly once per user and keeps the
points total, level and points ledger in step.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from study_tracker.models import Reward, UserRewards, EarnedReward, PointsLedgerEntry, Settings
from study_tracker.schemas import StatCounters, StatsSnapshot, StreakState
from study_tracker.repositories.rewards_repository import RewardRepository, UserRewardsRepository
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.repositories.notification_repository import NotificationRepository
from study_tracker.services.activity_source import ActivitySource, SqlActivitySource
from study_tracker.services.concurrency import run_with_retry
from study_tracker.services.date_service import DateService
from study_tracker.services.leaderboard_service import level_for_points
from study_tracker.services.streak_service import StreakService
from study_tracker.exceptions import UserRewardsNotFoundException, ValidationException
from study_tracker.seed_data import DEFAULT_REWARDS
from study_tracker.constants import (
    CRITERIA_STREAK_DAYS,
    CRITERIA_SESSIONS_COUNT,
    CRITERIA_STUDY_HOURS,
    CRITERIA_GOALS_COMPLETED,
    CRITERIA_EARLY_BIRD,
    CRITERIA_NIGHT_OWL,
    CRITERIA_PERFECT_WEEK,
    CRITERIA_CUSTOM,
    CRITERIA_TYPES,
    TIMEFRAMES,
    TIMEFRAME_WEEKLY,
    TIMEFRAME_MONTHLY,
    REWARD_TYPE_BADGE,
    LEDGER_SOURCE_ACHIEVEMENT,
    LEDGER_SOURCE_BONUS,
    NOTIFICATION_ACHIEVEMENT,
    NOTIFICATION_LEVEL_UP,
)

logger = logging.getLogger("study_tracker.rewards")


class EvaluationContext:
    """Stats, streak and flags a user is judged on in one evaluation"""

    def __init__(self, stats: StatsSnapshot, streak: StreakState, flags: Set[str]):
        self.stats = stats
        self.streak = streak
        self.flags = flags

    def counters(self, timeframe: str) -> StatCounters:
        """Counters scoped to a criterion's timeframe"""
        if timeframe == TIMEFRAME_WEEKLY:
            return self.stats.weekly
        if timeframe == TIMEFRAME_MONTHLY:
            return self.stats.monthly
        return self.stats.alltime


def _counter(name: str) -> Callable[[EvaluationContext, Reward], float]:
    def value(ctx: EvaluationContext, reward: Reward) -> float:
        return getattr(ctx.counters(reward.criteria_timeframe), name)
    return value


def _perfect_week(ctx: EvaluationContext, reward: Reward) -> float:
    return 1 if ctx.stats.perfect_week or reward.code in ctx.flags else 0


def _custom(ctx: EvaluationContext, reward: Reward) -> float:
    return 1 if reward.code in ctx.flags else 0


# One strategy per criterion type, each returning the current value of the
# statistic the threshold is compared against
CRITERIA_STRATEGIES: Dict[str, Callable[[EvaluationContext, Reward], float]] = {
    CRITERIA_STREAK_DAYS: lambda ctx, reward: ctx.streak.current_streak,
    CRITERIA_SESSIONS_COUNT: _counter("sessions"),
    CRITERIA_STUDY_HOURS: _counter("study_hours"),
    CRITERIA_GOALS_COMPLETED: _counter("goals_completed"),
    CRITERIA_EARLY_BIRD: _counter("early_bird"),
    CRITERIA_NIGHT_OWL: _counter("night_owl"),
    CRITERIA_PERFECT_WEEK: _perfect_week,
    CRITERIA_CUSTOM: _custom,
}

# Caller-supplied booleans, compared against 1 whatever the catalog says
BOOLEAN_CRITERIA = {CRITERIA_PERFECT_WEEK, CRITERIA_CUSTOM}


class RewardService:
    """Service for reward evaluation and points accrual"""

    def __init__(self, db: Session, activity_source: Optional[ActivitySource] = None):
        self.db = db
        self.reward_repo = RewardRepository()
        self.user_rewards_repo = UserRewardsRepository()
        self.settings_repo = SettingsRepository()
        self.notification_repo = NotificationRepository()
        self.date_service = DateService()
        self._activity_source = activity_source
        self._settings = None

    @property
    def settings(self) -> Settings:
        """Engine settings, read once before any unit of work starts"""
        if self._settings is None:
            self._settings = self.settings_repo.get(self.db)
        return self._settings

    @property
    def activity_source(self) -> ActivitySource:
        if self._activity_source is None:
            self._activity_source = SqlActivitySource(self.db, self.settings)
        return self._activity_source

    # ---- Pure rule evaluation ----

    @staticmethod
    def threshold_for(reward: Reward) -> float:
        if reward.criteria_type in BOOLEAN_CRITERIA:
            return 1
        return reward.criteria_threshold

    @staticmethod
    def criterion_value(reward: Reward, ctx: EvaluationContext) -> float:
        """
        Current value of the statistic a reward is judged on.

        Raises:
            ValidationException: Unknown criterion type
        """
        strategy = CRITERIA_STRATEGIES.get(reward.criteria_type)
        if strategy is None:
            raise ValidationException("criteria_type", f"unknown criterion '{reward.criteria_type}'")
        return strategy(ctx, reward)

    @staticmethod
    def qualifies(reward: Reward, ctx: EvaluationContext) -> bool:
        return RewardService.criterion_value(reward, ctx) >= RewardService.threshold_for(reward)

    @staticmethod
    def evaluate(earned_reward_ids: Set[int], catalog: List[Reward], ctx: EvaluationContext) -> List[Reward]:
        """
        Catalog rewards that now qualify and are not yet earned.

        Membership is checked before anything else, so running this again
        on the same snapshot after awarding returns nothing.
        """
        newly_earned = []
        for reward in catalog:
            if reward.id in earned_reward_ids:
                continue
            if RewardService.qualifies(reward, ctx):
                newly_earned.append(reward)
        return newly_earned

    # ---- Context building ----

    def build_context(self, user_id: str, as_of: datetime, user_rewards: Optional[UserRewards] = None) -> EvaluationContext:
        """Gather stats, streak and flags for a user at as_of"""
        settings = self.settings
        today = self.date_service.to_local_date(as_of, settings.timezone)

        stats = self.activity_source.get_lifetime_stats(user_id, as_of)
        activity_dates = self.activity_source.get_activity_dates(user_id, range_end=today)
        streak = StreakService.compute_streak(activity_dates, today)
        flags = user_rewards.get_flags() if user_rewards else set()
        return EvaluationContext(stats, streak, flags)

    @staticmethod
    def _store_lifetime_stats(user_rewards: UserRewards, stats: StatCounters) -> StatCounters:
        """Fold recounted stats into the profile without ever lowering them"""
        user_rewards.total_sessions = max(user_rewards.total_sessions or 0, stats.sessions)
        user_rewards.total_study_hours = max(user_rewards.total_study_hours or 0.0, stats.study_hours)
        user_rewards.total_goals_completed = max(user_rewards.total_goals_completed or 0, stats.goals_completed)
        user_rewards.early_bird_count = max(user_rewards.early_bird_count or 0, stats.early_bird)
        user_rewards.night_owl_count = max(user_rewards.night_owl_count or 0, stats.night_owl)
        return StatCounters(
            sessions=user_rewards.total_sessions,
            study_hours=user_rewards.total_study_hours,
            goals_completed=user_rewards.total_goals_completed,
            early_bird=user_rewards.early_bird_count,
            night_owl=user_rewards.night_owl_count,
        )

    def _apply_points(self, user_rewards: UserRewards, amount: int, now: datetime) -> bool:
        """Add points, recompute the level and report a level-up"""
        settings = self.settings
        previous_level = user_rewards.current_level or 1
        user_rewards.total_points = (user_rewards.total_points or 0) + amount
        level, progress, _ = level_for_points(
            user_rewards.total_points, settings.level_base_points, settings.level_growth_factor
        )
        user_rewards.current_level = level
        user_rewards.level_progress = progress

        if level > previous_level:
            self.notification_repo.enqueue(
                self.db,
                user_id=user_rewards.user_id,
                type=NOTIFICATION_LEVEL_UP,
                title=f"Level {level}!",
                message=f"You reached level {level}. Keep it up!",
                created_at=now,
                payload={"level": level, "previous_level": previous_level},
            )
            return True
        return False

    def _retry(self, operation, user_id: str):
        settings = self.settings
        return run_with_retry(
            self.db,
            operation,
            entity="user_rewards",
            entity_id=user_id,
            max_retries=settings.max_conflict_retries,
            backoff_ms=settings.conflict_backoff_ms,
            retry_on=(StaleDataError, IntegrityError),
        )

    # ---- Commands ----

    def evaluate_user(self, user_id: str, now: Optional[datetime] = None) -> dict:
        """
        Re-score a user and award every newly qualifying reward.

        Refreshes the streak and lifetime counters, then applies all new
        rewards, their points, ledger entries and notifications in one
        transaction. Safe to run repeatedly.

        Raises:
            ConflictException: Retries exhausted

        Returns:
            Dict with rewards_earned codes, points_awarded, total_points,
            current_level, leveled_up and streak
        """
        now = now or self.date_service.utc_now()
        self.user_rewards_repo.get_or_create(self.db, user_id)
        streak_service = StreakService(self.db, self._activity_source)

        def operation():
            user_rewards = self.user_rewards_repo.get_by_user(self.db, user_id)
            ctx = self.build_context(user_id, now, user_rewards)

            streak_service.apply_to_profile(user_rewards, ctx.streak, now)
            ctx.stats.alltime = self._store_lifetime_stats(user_rewards, ctx.stats.alltime)

            earned_ids = {er.reward_id for er in user_rewards.earned_rewards}
            catalog = self.reward_repo.get_active(self.db)
            newly_earned = self.evaluate(earned_ids, catalog, ctx)

            points_awarded = 0
            for reward in newly_earned:
                user_rewards.earned_rewards.append(EarnedReward(
                    reward_id=reward.id,
                    points_value=reward.points_value,
                    earned_at=now,
                ))
                user_rewards.ledger_entries.append(PointsLedgerEntry(
                    amount=reward.points_value,
                    source=LEDGER_SOURCE_ACHIEVEMENT,
                    reason=f"Earned {reward.name}",
                    reward_id=reward.id,
                    created_at=now,
                ))
                self.notification_repo.enqueue(
                    self.db,
                    user_id=user_id,
                    type=NOTIFICATION_ACHIEVEMENT,
                    title=f"{reward.icon or ''} {reward.name} Unlocked!".strip(),
                    message=reward.description or f"You earned {reward.name}",
                    created_at=now,
                    payload={"reward_id": reward.id, "code": reward.code, "points": reward.points_value},
                )
                points_awarded += reward.points_value

            leveled_up = self._apply_points(user_rewards, points_awarded, now) if points_awarded else False
            user_rewards.needs_evaluation = False
            user_rewards.updated_at = now

            return {
                "rewards_earned": [reward.code for reward in newly_earned],
                "points_awarded": points_awarded,
                "total_points": user_rewards.total_points,
                "current_level": user_rewards.current_level,
                "leveled_up": leveled_up,
                "streak": ctx.streak,
            }

        result = self._retry(operation, user_id)
        if result["rewards_earned"]:
            logger.info(
                f"User {user_id} earned {', '.join(result['rewards_earned'])} "
                f"(+{result['points_awarded']} points)"
            )
        return result

    def award_bonus_points(self, user_id: str, amount: int, reason: str, now: Optional[datetime] = None) -> dict:
        """
        Administrative point grant, recorded in the ledger.

        Raises:
            ValidationException: Non-positive amount or empty reason
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationException("amount", "must be a positive whole number")
        if not reason or not reason.strip():
            raise ValidationException("reason", "is required")
        now = now or self.date_service.utc_now()
        self.user_rewards_repo.get_or_create(self.db, user_id)

        def operation():
            user_rewards = self.user_rewards_repo.get_by_user(self.db, user_id)
            user_rewards.ledger_entries.append(PointsLedgerEntry(
                amount=amount,
                source=LEDGER_SOURCE_BONUS,
                reason=reason.strip(),
                created_at=now,
            ))
            leveled_up = self._apply_points(user_rewards, amount, now)
            user_rewards.updated_at = now
            return {
                "points_awarded": amount,
                "total_points": user_rewards.total_points,
                "current_level": user_rewards.current_level,
                "leveled_up": leveled_up,
            }

        result = self._retry(operation, user_id)
        logger.info(f"Bonus of {amount} points for user {user_id}: {reason}")
        return result

    def set_achievement_flag(self, user_id: str, flag: str, now: Optional[datetime] = None) -> dict:
        """Record a caller-computed achievement flag and re-evaluate"""
        if not flag or not flag.strip():
            raise ValidationException("flag", "is required")
        now = now or self.date_service.utc_now()
        self.user_rewards_repo.get_or_create(self.db, user_id)

        def operation():
            user_rewards = self.user_rewards_repo.get_by_user(self.db, user_id)
            user_rewards.add_flag(flag.strip())
            user_rewards.updated_at = now

        self._retry(operation, user_id)
        return self.evaluate_user(user_id, now)

    def mark_needs_evaluation(self, user_id: str) -> None:
        """Flag a user for the scheduler's retry job"""
        self.db.rollback()
        self.user_rewards_repo.get_or_create(self.db, user_id)

        def operation():
            profile = self.user_rewards_repo.get_by_user(self.db, user_id)
            profile.needs_evaluation = True

        self._retry(operation, user_id)
        logger.info(f"User {user_id} queued for reward re-evaluation")

    def set_display_name(self, user_id: str, display_name: str) -> UserRewards:
        self.user_rewards_repo.get_or_create(self.db, user_id)

        def operation():
            profile = self.user_rewards_repo.get_by_user(self.db, user_id)
            profile.display_name = display_name
            return profile

        profile = self._retry(operation, user_id)
        self.db.refresh(profile)
        return profile

    # ---- Queries ----

    def get_user_rewards(self, user_id: str) -> UserRewards:
        """
        Raises:
            UserRewardsNotFoundException: The user has no profile yet
        """
        user_rewards = self.user_rewards_repo.get_by_user(self.db, user_id)
        if not user_rewards:
            raise UserRewardsNotFoundException(user_id)
        return user_rewards

    def get_profile(self, user_id: str, as_of: Optional[datetime] = None) -> dict:
        """Points, level, lifetime stats, live streak and earned rewards of a user"""
        as_of = as_of or self.date_service.utc_now()
        user_rewards = self.get_user_rewards(user_id)
        settings = self.settings
        level, progress, to_next = level_for_points(
            user_rewards.total_points or 0, settings.level_base_points, settings.level_growth_factor
        )
        streak = StreakService(self.db, self._activity_source).get_streak(user_id, as_of)
        earned = list(user_rewards.earned_rewards)

        return {
            "user_id": user_rewards.user_id,
            "display_name": user_rewards.display_name,
            "total_points": user_rewards.total_points or 0,
            "current_level": level,
            "level_progress": progress,
            "points_to_next_level": to_next,
            "lifetime_stats": {
                "total_sessions": user_rewards.total_sessions or 0,
                "total_study_hours": user_rewards.total_study_hours or 0.0,
                "total_goals_completed": user_rewards.total_goals_completed or 0,
                "early_bird_count": user_rewards.early_bird_count or 0,
                "night_owl_count": user_rewards.night_owl_count or 0,
            },
            "streak": streak,
            "earned_rewards": earned,
            "total_badges": sum(1 for er in earned if er.reward.type == REWARD_TYPE_BADGE),
        }

    def get_rewards_progress(self, user_id: str, as_of: Optional[datetime] = None) -> List[dict]:
        """Progress towards every unearned active reward, closest first"""
        as_of = as_of or self.date_service.utc_now()
        user_rewards = self.user_rewards_repo.get_by_user(self.db, user_id)
        ctx = self.build_context(user_id, as_of, user_rewards)
        earned_ids = {er.reward_id for er in user_rewards.earned_rewards} if user_rewards else set()

        progress = []
        for reward in self.reward_repo.get_active(self.db):
            if reward.id in earned_ids:
                continue
            current = self.criterion_value(reward, ctx)
            target = self.threshold_for(reward)
            progress.append({
                "reward": reward,
                "current_value": current,
                "target_value": target,
                "progress_percent": min(100, round(current / target * 100)),
                "timeframe": reward.criteria_timeframe,
            })

        progress.sort(key=lambda p: p["progress_percent"], reverse=True)
        return progress


def seed_default_rewards(db: Session, rewards: Optional[List[dict]] = None) -> int:
    """
    Insert catalog entries whose code is not stored yet.

    Returns:
        Number of rewards added
    """
    rewards = DEFAULT_REWARDS if rewards is None else rewards
    existing = RewardRepository.get_codes(db)
    to_add = []
    for data in rewards:
        if data["code"] in existing:
            continue
        if data["criteria_type"] not in CRITERIA_TYPES:
            raise ValidationException("criteria_type", f"unknown criterion '{data['criteria_type']}'")
        if data.get("criteria_timeframe") and data["criteria_timeframe"] not in TIMEFRAMES:
            raise ValidationException("criteria_timeframe", f"unknown timeframe '{data['criteria_timeframe']}'")
        to_add.append(Reward(**data))

    if to_add:
        RewardRepository.create_many(db, to_add)
        logger.info(f"Seeded {len(to_add)} rewards")
    return len(to_add)
