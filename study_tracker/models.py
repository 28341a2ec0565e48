import json
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Float, Date, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from study_tracker.database import Base
from study_tracker.constants import (
    GOAL_STATUS_ACTIVE,
    DEFAULT_TIMEZONE,
    DEFAULT_EARLY_BIRD_HOUR,
    DEFAULT_NIGHT_OWL_HOUR,
    DEFAULT_LEVEL_BASE_POINTS,
    DEFAULT_LEVEL_GROWTH_FACTOR,
    DEFAULT_MAX_CONFLICT_RETRIES,
    DEFAULT_CONFLICT_BACKOFF_MS,
    DEFAULT_REWARD_RETRY_INTERVAL_MINUTES,
    TIMEFRAME_ALLTIME,
)


def _load_json_list(raw):
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


class Settings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)

    # Calendar days for streaks and early-bird/night-owl are taken in this zone
    timezone = Column(String, default=DEFAULT_TIMEZONE)
    early_bird_hour = Column(Integer, default=DEFAULT_EARLY_BIRD_HOUR)
    night_owl_hour = Column(Integer, default=DEFAULT_NIGHT_OWL_HOUR)

    # Level curve
    level_base_points = Column(Integer, default=DEFAULT_LEVEL_BASE_POINTS)
    level_growth_factor = Column(Float, default=DEFAULT_LEVEL_GROWTH_FACTOR)

    # Optimistic concurrency
    max_conflict_retries = Column(Integer, default=DEFAULT_MAX_CONFLICT_RETRIES)
    conflict_backoff_ms = Column(Integer, default=DEFAULT_CONFLICT_BACKOFF_MS)

    # Scheduler
    reward_retry_interval_minutes = Column(Integer, default=DEFAULT_REWARD_RETRY_INTERVAL_MINUTES)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, default="personal")
    priority = Column(String, default="medium")  # low, medium, high, critical

    # Target definition
    target = Column(Float, nullable=False)
    progress_unit = Column(String, nullable=False)  # free-form label, e.g. "hours"
    period = Column(String, nullable=False)  # daily, weekly, monthly, custom
    start_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True)

    # Progress state
    current_progress = Column(Float, default=0.0)
    completion_rate = Column(Float, default=0.0)  # 0-100
    status = Column(String, default=GOAL_STATUS_ACTIVE, index=True)
    completed_at = Column(DateTime, nullable=True)

    # Session integration
    auto_progress_from_sessions = Column(Boolean, default=True)
    linked_subjects = Column(String, nullable=True)  # JSON array, empty = all subjects

    visibility = Column(String, default="private")  # private, shared, public

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    # Optimistic lock: every UPDATE checks and bumps this
    version = Column(Integer, nullable=False, default=1)

    milestones = relationship(
        "Milestone", back_populates="goal", order_by="Milestone.position",
        cascade="all, delete-orphan"
    )
    subtasks = relationship(
        "SubTask", back_populates="goal", order_by="SubTask.position",
        cascade="all, delete-orphan"
    )
    progress_entries = relationship(
        "ProgressEntry", back_populates="goal", order_by="ProgressEntry.id",
        cascade="all, delete-orphan"
    )
    guardian_shares = relationship(
        "GoalGuardianShare", back_populates="goal", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def get_linked_subjects(self) -> list:
        return _load_json_list(self.linked_subjects)

    def set_linked_subjects(self, subjects) -> None:
        self.linked_subjects = json.dumps(list(subjects or []))

    def accepts_subject(self, subject) -> bool:
        """Empty link list means every subject counts"""
        linked = self.get_linked_subjects()
        return not linked or subject in linked


class Milestone(Base):
    __tablename__ = "goal_milestones"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    target = Column(Float, nullable=False)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)
    reward = Column(String, nullable=True)  # free-form reward label

    goal = relationship("Goal", back_populates="milestones")


class SubTask(Base):
    __tablename__ = "goal_subtasks"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String, nullable=False)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)

    goal = relationship("Goal", back_populates="subtasks")


class ProgressEntry(Base):
    __tablename__ = "goal_progress_entries"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(Float, nullable=False)  # change actually applied after clamping
    requested_value = Column(Float, nullable=False)  # delta as submitted
    source = Column(String, nullable=False)  # manual, session
    session_id = Column(Integer, nullable=True)
    notes = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    goal = relationship("Goal", back_populates="progress_entries")


class GoalGuardianShare(Base):
    __tablename__ = "goal_guardian_shares"

    id = Column(Integer, primary_key=True, index=True)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    guardian_id = Column(String, nullable=False)
    access_level = Column(String, default="view")
    consent_given = Column(Boolean, default=False)
    shared_at = Column(DateTime, default=datetime.now)

    goal = relationship("Goal", back_populates="guardian_shares")


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    type = Column(String, nullable=False)  # badge, achievement
    category = Column(String, default="study")
    icon = Column(String, nullable=True)
    points_value = Column(Integer, default=0)
    rarity = Column(String, default="common")

    criteria_type = Column(String, nullable=False, index=True)
    criteria_threshold = Column(Float, nullable=False, default=1)
    criteria_timeframe = Column(String, default=TIMEFRAME_ALLTIME)

    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)


class UserRewards(Base):
    __tablename__ = "user_rewards"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)

    # Points and level
    total_points = Column(Integer, default=0, index=True)
    current_level = Column(Integer, default=1)
    level_progress = Column(Float, default=0.0)  # % towards next level

    # Lifetime stats (monotonic)
    total_sessions = Column(Integer, default=0)
    total_study_hours = Column(Float, default=0.0)
    total_goals_completed = Column(Integer, default=0)
    early_bird_count = Column(Integer, default=0)
    night_owl_count = Column(Integer, default=0)

    # Streak data
    current_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    last_active_date = Column(Date, nullable=True)

    # Caller-supplied booleans for perfect_week/custom criteria
    achievement_flags = Column(String, nullable=True)  # JSON array of flag names

    # Set when an evaluation failed and the scheduler has to retry it
    needs_evaluation = Column(Boolean, default=False, index=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    version = Column(Integer, nullable=False, default=1)

    earned_rewards = relationship(
        "EarnedReward", back_populates="user_rewards", order_by="EarnedReward.id",
        cascade="all, delete-orphan"
    )
    ledger_entries = relationship(
        "PointsLedgerEntry", back_populates="user_rewards", order_by="PointsLedgerEntry.id",
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def get_flags(self) -> set:
        return set(_load_json_list(self.achievement_flags))

    def add_flag(self, flag: str) -> None:
        flags = self.get_flags()
        flags.add(flag)
        self.achievement_flags = json.dumps(sorted(flags))

    def has_reward(self, reward_id: int) -> bool:
        return any(er.reward_id == reward_id for er in self.earned_rewards)


class EarnedReward(Base):
    __tablename__ = "earned_rewards"
    __table_args__ = (
        UniqueConstraint("user_rewards_id", "reward_id", name="uq_earned_reward_once"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_rewards_id = Column(Integer, ForeignKey("user_rewards.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    points_value = Column(Integer, nullable=False)  # catalog value at award time
    earned_at = Column(DateTime, nullable=False, index=True)

    user_rewards = relationship("UserRewards", back_populates="earned_rewards")
    reward = relationship("Reward")


class PointsLedgerEntry(Base):
    __tablename__ = "points_ledger"

    id = Column(Integer, primary_key=True, index=True)
    user_rewards_id = Column(Integer, ForeignKey("user_rewards.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    source = Column(String, nullable=False)  # achievement, bonus
    reason = Column(String, nullable=False)
    reward_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False)

    user_rewards = relationship("UserRewards", back_populates="ledger_entries")


class PendingNotification(Base):
    __tablename__ = "pending_notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    payload = Column(String, nullable=True)  # JSON object
    created_at = Column(DateTime, nullable=False)
    delivered = Column(Boolean, default=False, index=True)
    delivered_at = Column(DateTime, nullable=True)


class StudySession(Base):
    __tablename__ = "study_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    external_id = Column(String, nullable=True, unique=True)  # id from the timer service
    subject = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    duration_seconds = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class MotivationalTip(Base):
    __tablename__ = "motivational_tips"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(String, nullable=False)
    type = Column(String, nullable=False)  # quote, tip, encouragement, ...
    category = Column(String, default="motivation")
    context = Column(String, default="any")  # session-start, behind-goal, on-track, ...
    performance_level = Column(String, default="any")  # low, medium, high, any
    priority = Column(Integer, default=5)  # 1-10, selection weight
    display_count = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
