from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import Optional, List, Dict


# Goal schemas
class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    target: float = Field(..., ge=0)
    due_date: Optional[datetime] = None
    reward: Optional[str] = Field(None, max_length=100)


class MilestoneResponse(MilestoneCreate):
    id: int
    position: int
    completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubTaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class SubTaskResponse(SubTaskCreate):
    id: int
    position: int
    completed: bool
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProgressEntryResponse(BaseModel):
    id: int
    value: float
    requested_value: float
    source: str
    session_id: Optional[int] = None
    notes: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class GoalCreate(BaseModel):
    # target/period/progress_unit are checked by GoalService so missing fields
    # surface as ValidationException rather than a generic 422
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category: str = Field(default="personal")
    priority: str = Field(default="medium", pattern="^(low|medium|high|critical)$")
    target: Optional[float] = None
    progress_unit: Optional[str] = Field(None, max_length=50)
    period: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    milestones: List[MilestoneCreate] = Field(default_factory=list)
    subtasks: List[SubTaskCreate] = Field(default_factory=list)
    auto_progress_from_sessions: bool = True
    linked_subjects: List[str] = Field(default_factory=list)
    visibility: str = Field(default="private", pattern="^(private|shared|public)$")


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    category: Optional[str] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|critical)$")
    target: Optional[float] = None
    progress_unit: Optional[str] = Field(None, min_length=1, max_length=50)
    due_date: Optional[datetime] = None
    auto_progress_from_sessions: Optional[bool] = None
    linked_subjects: Optional[List[str]] = None
    visibility: Optional[str] = Field(None, pattern="^(private|shared|public)$")


class ProgressCreate(BaseModel):
    value: float
    notes: Optional[str] = Field(None, max_length=200)


class GuardianShareCreate(BaseModel):
    guardian_id: str = Field(..., min_length=1)
    access_level: str = Field(default="view", pattern="^(view|comment)$")
    user_consent: bool = False


class GuardianShareResponse(BaseModel):
    guardian_id: str
    access_level: str
    consent_given: bool
    shared_at: datetime

    class Config:
        from_attributes = True


class CatchUpSuggestion(BaseModel):
    type: str
    priority: str
    message: str
    daily_rate: float
    remaining_target: float
    remaining_days: int


class GoalResponse(BaseModel):
    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    category: str
    priority: str
    target: float
    progress_unit: str
    period: str
    start_date: datetime
    due_date: Optional[datetime] = None
    current_progress: float
    completion_rate: float
    status: str
    completed_at: Optional[datetime] = None
    auto_progress_from_sessions: bool
    visibility: str
    created_at: datetime
    milestones: List[MilestoneResponse] = Field(default_factory=list)
    subtasks: List[SubTaskResponse] = Field(default_factory=list)
    guardian_shares: List[GuardianShareResponse] = Field(default_factory=list)

    # Derived on read
    expected_progress: Optional[float] = None
    is_overdue: bool = False
    days_remaining: Optional[int] = None
    catch_up_suggestions: List[CatchUpSuggestion] = Field(default_factory=list)

    class Config:
        from_attributes = True


class DueSoonGoal(BaseModel):
    id: int
    title: str
    due_date: datetime
    current_progress: float
    target: float
    completion_rate: float

    class Config:
        from_attributes = True


class GoalStats(BaseModel):
    total: int
    active: int
    completed: int
    by_status: Dict[str, int]
    average_completion_rate: float
    total_progress: float
    due_within_days: int
    due_soon: List[DueSoonGoal]


class GoalCatchUp(BaseModel):
    goal_id: int
    goal_title: str
    is_overdue: bool
    completion_rate: float
    days_remaining: Optional[int] = None
    suggestions: List[CatchUpSuggestion]


class PeriodBucket(BaseModel):
    period_start: date
    period_end: date
    target_for_period: float
    actual_for_period: float


# Streak schemas
class StreakState(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    status: str
    last_active_date: Optional[date] = None
    milestones_reached: List[int] = Field(default_factory=list)
    next_milestone: Optional[int] = None


# Stats schemas
class StatCounters(BaseModel):
    sessions: int = 0
    study_hours: float = 0.0
    goals_completed: int = 0
    early_bird: int = 0
    night_owl: int = 0


class StatsSnapshot(BaseModel):
    alltime: StatCounters = Field(default_factory=StatCounters)
    weekly: StatCounters = Field(default_factory=StatCounters)
    monthly: StatCounters = Field(default_factory=StatCounters)
    perfect_week: bool = False


# Reward schemas
class RewardBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: str = Field(..., pattern="^(badge|achievement)$")
    category: str = "study"
    icon: Optional[str] = None
    points_value: int = Field(default=0, ge=0)
    rarity: str = Field(default="common", pattern="^(common|uncommon|rare|epic|legendary)$")
    criteria_type: str
    criteria_threshold: float = Field(default=1, ge=1)
    criteria_timeframe: str = Field(default="alltime", pattern="^(alltime|weekly|monthly)$")


class RewardResponse(RewardBase):
    id: int
    is_active: bool
    display_order: int

    class Config:
        from_attributes = True


class EarnedRewardResponse(BaseModel):
    reward_id: int
    points_value: int
    earned_at: datetime
    reward: RewardResponse

    class Config:
        from_attributes = True


class RewardProgressResponse(BaseModel):
    reward: RewardResponse
    current_value: float
    target_value: float
    progress_percent: int
    timeframe: str


class LifetimeStatsResponse(BaseModel):
    total_sessions: int
    total_study_hours: float
    total_goals_completed: int
    early_bird_count: int
    night_owl_count: int


class RewardsProfileResponse(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    total_points: int
    current_level: int
    level_progress: float
    points_to_next_level: int
    lifetime_stats: LifetimeStatsResponse
    streak: StreakState
    earned_rewards: List[EarnedRewardResponse]
    total_badges: int


class BonusGrantCreate(BaseModel):
    amount: int = Field(..., ge=1, le=100000)
    reason: str = Field(..., min_length=1, max_length=200)


class FlagCreate(BaseModel):
    flag: str = Field(..., min_length=1, max_length=100)


class PointsResult(BaseModel):
    points_awarded: int
    total_points: int
    current_level: int
    leveled_up: bool


# Leaderboard schemas
class LeaderboardEntry(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    points: int
    rank: int


class RankResponse(BaseModel):
    user_id: str
    timeframe: str
    rank: int
    points: int


# Notification schemas
class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    payload: Optional[Dict] = None
    created_at: datetime
    delivered: bool

    class Config:
        from_attributes = True


class NotificationAck(BaseModel):
    notification_ids: Optional[List[int]] = None  # None = all pending


# Session schemas
class SessionCompletedEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    duration_seconds: int = Field(..., ge=0)
    started_at: datetime
    subject: Optional[str] = None
    session_id: Optional[str] = None  # external id, makes replays idempotent


class SessionCompletedResponse(BaseModel):
    session_id: int
    duplicate: bool = False
    goals_updated: List[int] = Field(default_factory=list)
    goals_completed: List[int] = Field(default_factory=list)
    rewards_earned: List[str] = Field(default_factory=list)
    streak: Optional[StreakState] = None


# Motivational tip schemas
class TipResponse(BaseModel):
    content: str
    type: str
    category: str

    class Config:
        from_attributes = True


# Settings schemas
class SettingsBase(BaseModel):
    timezone: str = Field(default="UTC", min_length=1, max_length=64)
    early_bird_hour: int = Field(default=7, ge=0, le=23)
    night_owl_hour: int = Field(default=22, ge=0, le=23)
    level_base_points: int = Field(default=100, ge=1, le=100000)
    level_growth_factor: float = Field(default=1.2, ge=1.0, le=5.0)
    max_conflict_retries: int = Field(default=3, ge=0, le=20)
    conflict_backoff_ms: int = Field(default=50, ge=0, le=5000)
    reward_retry_interval_minutes: int = Field(default=5, ge=1, le=1440)


class SettingsUpdate(SettingsBase):
    pass


class SettingsResponse(SettingsBase):
    id: int
    updated_at: datetime

    class Config:
        from_attributes = True
