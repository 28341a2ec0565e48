"""
Activity source adapter.

Everything the streak tracker and reward evaluator know about a user's
activity comes through an ActivitySource: the calendar days with at least one
completed session and the stat counters the reward criteria compare against.
SqlActivitySource derives both from the study_sessions table and the user's
completed goals.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Optional, Set

from sqlalchemy.orm import Session

from study_tracker.models import Settings
from study_tracker.schemas import StatCounters, StatsSnapshot
from study_tracker.repositories.session_repository import StudySessionRepository
from study_tracker.repositories.goal_repository import GoalRepository
from study_tracker.services.date_service import DateService


class ActivitySource(ABC):
    """Read-only view of a user's study activity"""

    @abstractmethod
    def get_activity_dates(
        self,
        user_id: str,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None
    ) -> Set[date]:
        """Local calendar days with at least one completed session"""

    @abstractmethod
    def get_lifetime_stats(self, user_id: str, as_of: datetime) -> StatsSnapshot:
        """Alltime, weekly and monthly counters as of a moment"""


class SqlActivitySource(ActivitySource):
    """Activity source backed by the study_sessions table"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.session_repo = StudySessionRepository()
        self.goal_repo = GoalRepository()
        self.date_service = DateService()

    def get_activity_dates(
        self,
        user_id: str,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None
    ) -> Set[date]:
        tz = self.settings.timezone
        dates = set()
        for session in self.session_repo.get_for_user(self.db, user_id):
            day = self.date_service.to_local_date(session.started_at, tz)
            if range_start and day < range_start:
                continue
            if range_end and day > range_end:
                continue
            dates.add(day)
        return dates

    def get_lifetime_stats(self, user_id: str, as_of: datetime) -> StatsSnapshot:
        """
        Recount every counter from stored activity up to as_of.

        Weekly counters cover the ISO week and monthly counters the calendar
        month containing as_of, both in the configured timezone.
        """
        tz = self.settings.timezone
        today = self.date_service.to_local_date(as_of, tz)
        week = self.date_service.get_week_range(today)
        month = self.date_service.get_month_range(today)

        alltime, weekly, monthly = StatCounters(), StatCounters(), StatCounters()
        seconds = {"alltime": 0, "weekly": 0, "monthly": 0}
        activity_dates = set()

        for session in self.session_repo.get_for_user(self.db, user_id):
            if session.started_at > as_of:
                continue
            local = self.date_service.to_local(session.started_at, tz)
            day = local.date()
            activity_dates.add(day)

            scopes = [("alltime", alltime)]
            if week[0] <= day <= week[1]:
                scopes.append(("weekly", weekly))
            if month[0] <= day <= month[1]:
                scopes.append(("monthly", monthly))

            for name, counters in scopes:
                counters.sessions += 1
                seconds[name] += session.duration_seconds or 0
                if local.hour < self.settings.early_bird_hour:
                    counters.early_bird += 1
                if local.hour >= self.settings.night_owl_hour:
                    counters.night_owl += 1

        for completed_at in self.goal_repo.get_completed_times(self.db, user_id):
            if completed_at > as_of:
                continue
            day = self.date_service.to_local_date(completed_at, tz)
            alltime.goals_completed += 1
            if week[0] <= day <= week[1]:
                weekly.goals_completed += 1
            if month[0] <= day <= month[1]:
                monthly.goals_completed += 1

        alltime.study_hours = round(seconds["alltime"] / 3600, 2)
        weekly.study_hours = round(seconds["weekly"] / 3600, 2)
        monthly.study_hours = round(seconds["monthly"] / 3600, 2)

        return StatsSnapshot(
            alltime=alltime,
            weekly=weekly,
            monthly=monthly,
            perfect_week=self.is_perfect_week(activity_dates, today),
        )

    @staticmethod
    def is_perfect_week(activity_dates: Set[date], today: date) -> bool:
        """True when every day of the current or the previous ISO week has activity"""
        week_start = DateService.get_week_start(today)
        for start in (week_start, week_start - timedelta(days=7)):
            if all(start + timedelta(days=offset) in activity_dates for offset in range(7)):
                return True
        return False
