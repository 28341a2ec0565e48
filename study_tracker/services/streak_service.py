"""
Streak tracking service.
Derives current/longest streak and risk state from per-day activity.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from study_tracker.models import UserRewards
from study_tracker.schemas import StreakState
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.repositories.notification_repository import NotificationRepository
from study_tracker.services.activity_source import ActivitySource, SqlActivitySource
from study_tracker.services.date_service import DateService
from study_tracker.constants import (
    STREAK_MILESTONES,
    STREAK_STATUS_COMPLETED_TODAY,
    STREAK_STATUS_AT_RISK,
    STREAK_STATUS_BROKEN,
    STREAK_STATUS_NONE,
    NOTIFICATION_STREAK_MILESTONE,
    NOTIFICATION_PERSONAL_BEST,
)

logger = logging.getLogger("study_tracker.streaks")


class StreakService:
    """Service for streak calculation"""

    def __init__(self, db: Session, activity_source: Optional[ActivitySource] = None):
        self.db = db
        self.settings_repo = SettingsRepository()
        self.notification_repo = NotificationRepository()
        self.date_service = DateService()
        self._activity_source = activity_source

    @property
    def activity_source(self) -> ActivitySource:
        if self._activity_source is None:
            self._activity_source = SqlActivitySource(self.db, self.settings_repo.get(self.db))
        return self._activity_source

    @staticmethod
    def compute_streak(activity_dates: Set[date], as_of: date) -> StreakState:
        """
        Compute streak state from the set of active days.

        Walks backward from as_of. Activity on as_of means completed_today.
        Otherwise activity on the day before means at_risk (one day of
        grace) and counting starts from that day. With neither, the streak
        is broken, or none when there is no history at all.

        Args:
            activity_dates: Local calendar days with activity
            as_of: Day to evaluate

        Returns:
            StreakState
        """
        longest = StreakService.longest_run(activity_dates)

        if as_of in activity_dates:
            status = STREAK_STATUS_COMPLETED_TODAY
            anchor = as_of
        elif as_of - timedelta(days=1) in activity_dates:
            status = STREAK_STATUS_AT_RISK
            anchor = as_of - timedelta(days=1)
        else:
            status = STREAK_STATUS_BROKEN if activity_dates else STREAK_STATUS_NONE
            anchor = None

        current = 0
        if anchor is not None:
            day = anchor
            while day in activity_dates:
                current += 1
                day -= timedelta(days=1)

        past = [d for d in activity_dates if d <= as_of]
        reached, next_milestone = StreakService.milestones_for(current)

        return StreakState(
            current_streak=current,
            # retroactive history after as_of can make the run longer
            longest_streak=max(longest, current),
            status=status,
            last_active_date=max(past) if past else None,
            milestones_reached=reached,
            next_milestone=next_milestone,
        )

    @staticmethod
    def longest_run(activity_dates: Iterable[date]) -> int:
        """Longest run of consecutive days in the set"""
        longest = 0
        run = 0
        previous = None
        for day in sorted(set(activity_dates)):
            if previous is not None and day - previous == timedelta(days=1):
                run += 1
            else:
                run = 1
            longest = max(longest, run)
            previous = day
        return longest

    @staticmethod
    def milestones_for(current_streak: int) -> Tuple[List[int], Optional[int]]:
        """Milestones reached by a streak and the next one ahead"""
        reached = [m for m in STREAK_MILESTONES if current_streak >= m]
        upcoming = [m for m in STREAK_MILESTONES if current_streak < m]
        return reached, (upcoming[0] if upcoming else None)

    def get_streak(self, user_id: str, as_of: Optional[datetime] = None) -> StreakState:
        """Streak state of a user on the local day containing as_of"""
        as_of = as_of or self.date_service.utc_now()
        settings = self.settings_repo.get(self.db)
        today = self.date_service.to_local_date(as_of, settings.timezone)
        activity_dates = self.activity_source.get_activity_dates(user_id, range_end=today)
        return self.compute_streak(activity_dates, today)

    def apply_to_profile(self, user_rewards: UserRewards, state: StreakState, now: datetime) -> None:
        """
        Store a freshly computed streak on the profile.

        Queues a streak_milestone notification for every milestone crossed
        upward and a personal_best notification when the current streak beats
        the previous longest. Runs inside the caller's transaction.
        """
        previous_current = user_rewards.current_streak or 0
        previous_longest = user_rewards.longest_streak or 0

        for milestone in STREAK_MILESTONES:
            if previous_current < milestone <= state.current_streak:
                self.notification_repo.enqueue(
                    self.db,
                    user_id=user_rewards.user_id,
                    type=NOTIFICATION_STREAK_MILESTONE,
                    title=f"{milestone}-Day Streak!",
                    message=f"You've studied {milestone} days in a row. Keep the momentum going!",
                    created_at=now,
                    payload={"milestone": milestone},
                )

        if previous_longest > 0 and state.current_streak > previous_longest:
            self.notification_repo.enqueue(
                self.db,
                user_id=user_rewards.user_id,
                type=NOTIFICATION_PERSONAL_BEST,
                title="New Longest Streak!",
                message=f"You've set a new personal record: {state.current_streak} days!",
                created_at=now,
                payload={"stat": "longest_streak", "value": state.current_streak},
            )

        user_rewards.current_streak = state.current_streak
        user_rewards.longest_streak = state.longest_streak
        user_rewards.last_active_date = state.last_active_date
