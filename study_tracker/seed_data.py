"""
Reference data inserted on startup: the default reward catalog and a starter
set of motivational tips.
"""
from study_tracker.constants import (
    REWARD_TYPE_BADGE,
    REWARD_TYPE_ACHIEVEMENT,
    CRITERIA_SESSIONS_COUNT,
    CRITERIA_STUDY_HOURS,
    CRITERIA_STREAK_DAYS,
    CRITERIA_GOALS_COMPLETED,
    CRITERIA_EARLY_BIRD,
    CRITERIA_NIGHT_OWL,
    CRITERIA_PERFECT_WEEK,
    CRITERIA_CUSTOM,
    TIMEFRAME_ALLTIME,
    TIMEFRAME_WEEKLY,
)


def _reward(code, name, description, type, category, icon, points, rarity,
            criteria_type, threshold, order, timeframe=TIMEFRAME_ALLTIME):
    return {
        "code": code,
        "name": name,
        "description": description,
        "type": type,
        "category": category,
        "icon": icon,
        "points_value": points,
        "rarity": rarity,
        "criteria_type": criteria_type,
        "criteria_threshold": threshold,
        "criteria_timeframe": timeframe,
        "display_order": order,
    }


DEFAULT_REWARDS = [
    # Sessions
    _reward("first_steps", "First Steps", "Complete your first study session",
            REWARD_TYPE_BADGE, "study", "🎯", 10, "common", CRITERIA_SESSIONS_COUNT, 1, 1),
    _reward("getting_started", "Getting Started", "Complete 5 study sessions",
            REWARD_TYPE_BADGE, "study", "📚", 25, "common", CRITERIA_SESSIONS_COUNT, 5, 2),
    _reward("dedicated_learner", "Dedicated Learner", "Complete 25 study sessions",
            REWARD_TYPE_BADGE, "study", "⭐", 50, "uncommon", CRITERIA_SESSIONS_COUNT, 25, 3),
    _reward("study_champion", "Study Champion", "Complete 50 study sessions",
            REWARD_TYPE_BADGE, "study", "🏆", 100, "rare", CRITERIA_SESSIONS_COUNT, 50, 4),
    _reward("study_master", "Study Master", "Complete 100 study sessions",
            REWARD_TYPE_BADGE, "study", "👑", 250, "epic", CRITERIA_SESSIONS_COUNT, 100, 5),
    _reward("study_legend", "Study Legend", "Complete 500 study sessions",
            REWARD_TYPE_BADGE, "study", "🌟", 1000, "legendary", CRITERIA_SESSIONS_COUNT, 500, 6),

    # Study time
    _reward("hour_hero", "Hour Hero", "Study for 1 hour total",
            REWARD_TYPE_BADGE, "study", "⏰", 15, "common", CRITERIA_STUDY_HOURS, 1, 10),
    _reward("time_investor", "Time Investor", "Study for 10 hours total",
            REWARD_TYPE_BADGE, "study", "⏱️", 50, "uncommon", CRITERIA_STUDY_HOURS, 10, 11),
    _reward("marathon_learner", "Marathon Learner", "Study for 50 hours total",
            REWARD_TYPE_BADGE, "study", "🏃", 150, "rare", CRITERIA_STUDY_HOURS, 50, 12),
    _reward("century_club", "Century Club", "Study for 100 hours total",
            REWARD_TYPE_BADGE, "study", "💯", 300, "epic", CRITERIA_STUDY_HOURS, 100, 13),

    # Streaks
    _reward("streak_starter", "Streak Starter", "Maintain a 3-day study streak",
            REWARD_TYPE_BADGE, "streak", "🔥", 20, "common", CRITERIA_STREAK_DAYS, 3, 20),
    _reward("week_warrior", "Week Warrior", "Maintain a 7-day study streak",
            REWARD_TYPE_BADGE, "streak", "🔥", 50, "uncommon", CRITERIA_STREAK_DAYS, 7, 21),
    _reward("two_week_titan", "Two Week Titan", "Maintain a 14-day study streak",
            REWARD_TYPE_BADGE, "streak", "💪", 100, "rare", CRITERIA_STREAK_DAYS, 14, 22),
    _reward("monthly_master", "Monthly Master", "Maintain a 30-day study streak",
            REWARD_TYPE_BADGE, "streak", "🌟", 250, "epic", CRITERIA_STREAK_DAYS, 30, 23),
    _reward("streak_legend", "Streak Legend", "Maintain a 100-day study streak",
            REWARD_TYPE_BADGE, "streak", "👑", 1000, "legendary", CRITERIA_STREAK_DAYS, 100, 24),

    # Goals
    _reward("goal_getter", "Goal Getter", "Complete your first goal",
            REWARD_TYPE_BADGE, "goal", "🎯", 25, "common", CRITERIA_GOALS_COMPLETED, 1, 30),
    _reward("goal_crusher", "Goal Crusher", "Complete 5 goals",
            REWARD_TYPE_BADGE, "goal", "💎", 75, "uncommon", CRITERIA_GOALS_COMPLETED, 5, 31),
    _reward("goal_master", "Goal Master", "Complete 25 goals",
            REWARD_TYPE_BADGE, "goal", "🏅", 200, "rare", CRITERIA_GOALS_COMPLETED, 25, 32),
    _reward("goal_champion", "Goal Champion", "Complete 50 goals",
            REWARD_TYPE_BADGE, "goal", "🏆", 500, "epic", CRITERIA_GOALS_COMPLETED, 50, 33),

    # Special
    _reward("early_bird", "Early Bird", "Start a study session before 7 AM",
            REWARD_TYPE_ACHIEVEMENT, "special", "🌅", 30, "uncommon", CRITERIA_EARLY_BIRD, 1, 40),
    _reward("night_owl", "Night Owl", "Start a study session after 10 PM",
            REWARD_TYPE_ACHIEVEMENT, "special", "🦉", 30, "uncommon", CRITERIA_NIGHT_OWL, 1, 41),
    _reward("perfect_week", "Perfect Week", "Study every day for a week",
            REWARD_TYPE_ACHIEVEMENT, "special", "✨", 100, "rare", CRITERIA_PERFECT_WEEK, 1, 43,
            timeframe=TIMEFRAME_WEEKLY),
    _reward("welcome", "Welcome!", "Join the study community",
            REWARD_TYPE_ACHIEVEMENT, "special", "👋", 5, "common", CRITERIA_CUSTOM, 1, 50),
    _reward("profile_complete", "Profile Complete", "Complete your profile setup",
            REWARD_TYPE_ACHIEVEMENT, "special", "✅", 10, "common", CRITERIA_CUSTOM, 1, 51),
]


DEFAULT_TIPS = [
    {"content": "The secret of getting ahead is getting started. - Mark Twain",
     "type": "quote", "category": "motivation", "context": "session-start",
     "performance_level": "any", "priority": 8},
    {"content": "Success is the sum of small efforts repeated day in and day out. - Robert Collier",
     "type": "quote", "category": "motivation", "context": "any",
     "performance_level": "any", "priority": 7},
    {"content": "Break your study material into small chunks. 25-30 minute intervals work well.",
     "type": "tip", "category": "study-technique", "context": "session-start",
     "performance_level": "any", "priority": 9},
    {"content": "Active recall beats passive reading. Test yourself on what you just learned.",
     "type": "tip", "category": "study-technique", "context": "any",
     "performance_level": "any", "priority": 8},
    {"content": "Great job staying consistent! Your dedication is building strong study habits.",
     "type": "encouragement", "category": "motivation", "context": "session-end",
     "performance_level": "high", "priority": 8},
    {"content": "You're making progress! Every expert was once a beginner.",
     "type": "encouragement", "category": "motivation", "context": "any",
     "performance_level": "medium", "priority": 7},
    {"content": "Don't be discouraged. Small steps lead to big achievements.",
     "type": "encouragement", "category": "motivation", "context": "behind-goal",
     "performance_level": "low", "priority": 10},
    {"content": "Stretch, hydrate and rest your eyes. A healthy body supports a healthy mind.",
     "type": "reminder", "category": "health", "context": "break",
     "performance_level": "any", "priority": 9},
]
