"""
Shared constants for the study tracker engine.
"""

# Goal statuses
GOAL_STATUS_ACTIVE = "active"
GOAL_STATUS_COMPLETED = "completed"
GOAL_STATUS_PAUSED = "paused"
GOAL_STATUS_CANCELLED = "cancelled"

# Allowed status transitions (from -> to)
GOAL_STATUS_TRANSITIONS = {
    GOAL_STATUS_ACTIVE: {GOAL_STATUS_COMPLETED, GOAL_STATUS_PAUSED, GOAL_STATUS_CANCELLED},
    GOAL_STATUS_PAUSED: {GOAL_STATUS_ACTIVE},
    GOAL_STATUS_COMPLETED: set(),
    GOAL_STATUS_CANCELLED: set(),
}

# Goal periods
PERIOD_DAILY = "daily"
PERIOD_WEEKLY = "weekly"
PERIOD_MONTHLY = "monthly"
PERIOD_CUSTOM = "custom"
GOAL_PERIODS = (PERIOD_DAILY, PERIOD_WEEKLY, PERIOD_MONTHLY, PERIOD_CUSTOM)

# Breakdown granularities
GRANULARITY_WEEK = "week"
GRANULARITY_MONTH = "month"

# Progress units that sessions can feed automatically
UNIT_HOURS = "hours"
UNIT_MINUTES = "minutes"
UNIT_SESSIONS = "sessions"

# Progress entry sources
SOURCE_MANUAL = "manual"
SOURCE_SESSION = "session"

# Guardian share access levels
ACCESS_LEVELS = ("view", "comment")

# Reward types and criteria
REWARD_TYPE_BADGE = "badge"
REWARD_TYPE_ACHIEVEMENT = "achievement"

CRITERIA_STREAK_DAYS = "streak_days"
CRITERIA_SESSIONS_COUNT = "sessions_count"
CRITERIA_STUDY_HOURS = "study_hours"
CRITERIA_GOALS_COMPLETED = "goals_completed"
CRITERIA_EARLY_BIRD = "early_bird"
CRITERIA_NIGHT_OWL = "night_owl"
CRITERIA_PERFECT_WEEK = "perfect_week"
CRITERIA_CUSTOM = "custom"
CRITERIA_TYPES = (
    CRITERIA_STREAK_DAYS,
    CRITERIA_SESSIONS_COUNT,
    CRITERIA_STUDY_HOURS,
    CRITERIA_GOALS_COMPLETED,
    CRITERIA_EARLY_BIRD,
    CRITERIA_NIGHT_OWL,
    CRITERIA_PERFECT_WEEK,
    CRITERIA_CUSTOM,
)

TIMEFRAME_ALLTIME = "alltime"
TIMEFRAME_WEEKLY = "weekly"
TIMEFRAME_MONTHLY = "monthly"
TIMEFRAMES = (TIMEFRAME_ALLTIME, TIMEFRAME_WEEKLY, TIMEFRAME_MONTHLY)

RARITIES = ("common", "uncommon", "rare", "epic", "legendary")

# Points ledger sources
LEDGER_SOURCE_ACHIEVEMENT = "achievement"
LEDGER_SOURCE_BONUS = "bonus"

# Notification types
NOTIFICATION_ACHIEVEMENT = "achievement_unlocked"
NOTIFICATION_GOAL_COMPLETED = "goal_completed"
NOTIFICATION_STREAK_MILESTONE = "streak_milestone"
NOTIFICATION_PERSONAL_BEST = "personal_best"
NOTIFICATION_LEVEL_UP = "level_up"

# Streak
STREAK_STATUS_COMPLETED_TODAY = "completed_today"
STREAK_STATUS_AT_RISK = "at_risk"
STREAK_STATUS_BROKEN = "broken"
STREAK_STATUS_NONE = "none"
STREAK_MILESTONES = (3, 7, 14, 30, 100)

# Engine defaults (overridable through the settings table)
DEFAULT_TIMEZONE = "UTC"
DEFAULT_EARLY_BIRD_HOUR = 7   # session started before 07:00
DEFAULT_NIGHT_OWL_HOUR = 22   # session started at or after 22:00
DEFAULT_LEVEL_BASE_POINTS = 100
DEFAULT_LEVEL_GROWTH_FACTOR = 1.2
DEFAULT_MAX_CONFLICT_RETRIES = 3
DEFAULT_CONFLICT_BACKOFF_MS = 50
DEFAULT_REWARD_RETRY_INTERVAL_MINUTES = 5

# Catch-up suggestions
CATCH_UP_HIGH_PRIORITY_DEFICIT = 0.25  # behind by more than 25% of target

# Motivational tips
TIP_CONTEXT_ANY = "any"
TIP_PERFORMANCE_ANY = "any"
DEFAULT_TIP = {
    "content": "Keep up the great work! Every study session brings you closer to your goals.",
    "type": "encouragement",
    "category": "motivation",
}

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/study-tracker"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

# CORS
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]
