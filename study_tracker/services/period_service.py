"""
Period decomposition service.
Derives expected progress, overdue state, catch-up suggestions and per-week or
per-month breakdowns from a goal's target, period and progress history.

Recurring windows and breakdown buckets are local calendar days in the
configured timezone; stored timestamps stay naive UTC.
"""
import math
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from study_tracker.models import Goal
from study_tracker.repositories.goal_repository import GoalRepository
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.services.date_service import DateService
from study_tracker.exceptions import GoalNotFoundException, ValidationException
from study_tracker.constants import (
    GOAL_STATUS_ACTIVE,
    PERIOD_CUSTOM,
    PERIOD_DAILY,
    PERIOD_WEEKLY,
    PERIOD_MONTHLY,
    SOURCE_MANUAL,
    SOURCE_SESSION,
    CATCH_UP_HIGH_PRIORITY_DEFICIT,
    DEFAULT_TIMEZONE,
)

SECONDS_PER_DAY = 86400


class PeriodService:
    """Service for period-based goal pacing"""

    def __init__(self, db: Session):
        self.db = db
        self.goal_repo = GoalRepository()
        self.settings_repo = SettingsRepository()
        self._tz_name = None

    @property
    def tz_name(self) -> str:
        if self._tz_name is None:
            self._tz_name = self.settings_repo.get(self.db).timezone
        return self._tz_name

    # ---- Pure calculations ----

    @staticmethod
    def get_window(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
        """
        Window a goal's pace is judged against.

        Custom goals use start to due date. Daily, weekly and monthly goals use
        the local calendar day, ISO week or month containing as_of.
        """
        if goal.period == PERIOD_CUSTOM:
            return goal.start_date, goal.due_date
        return DateService.get_period_window(goal.period, as_of, tz_name)

    @staticmethod
    def elapsed_fraction(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> float:
        """Share of the window elapsed at as_of, clamped to [0, 1]"""
        start, end = PeriodService.get_window(goal, as_of, tz_name)
        total = (end - start).total_seconds()
        if total <= 0:
            return 1.0
        fraction = (as_of - start).total_seconds() / total
        return min(1.0, max(0.0, fraction))

    @staticmethod
    def expected_progress(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> float:
        """Progress the goal should show at as_of if it were on pace"""
        return goal.target * PeriodService.elapsed_fraction(goal, as_of, tz_name)

    @staticmethod
    def is_overdue(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> bool:
        """Active goal behind its expected progress"""
        if goal.status != GOAL_STATUS_ACTIVE:
            return False
        return goal.current_progress < PeriodService.expected_progress(goal, as_of, tz_name)

    @staticmethod
    def days_remaining(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> int:
        """Whole days left in the window, partial days rounded up; 0 once it ended"""
        _, end = PeriodService.get_window(goal, as_of, tz_name)
        seconds = (end - as_of).total_seconds()
        if seconds <= 0:
            return 0
        return math.ceil(seconds / SECONDS_PER_DAY)

    @staticmethod
    def catch_up_suggestions(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> List[dict]:
        """
        Advisory catch-up plan for an overdue goal.

        Always proposes the daily rate needed to finish in the remaining
        days. Goals behind by more than a quarter of their target, or whose
        window already ended, also get an extend_deadline suggestion.
        Returns nothing when the goal is on track or ahead.
        """
        if not PeriodService.is_overdue(goal, as_of, tz_name):
            return []

        remaining_target = round(goal.target - goal.current_progress, 2)
        days_left = PeriodService.days_remaining(goal, as_of, tz_name)
        remaining_days = max(1, days_left)
        daily_rate = round(remaining_target / remaining_days, 2)

        deficit = PeriodService.expected_progress(goal, as_of, tz_name) - goal.current_progress
        far_behind = deficit > goal.target * CATCH_UP_HIGH_PRIORITY_DEFICIT

        suggestions = [{
            "type": "increase_daily",
            "priority": "high" if far_behind else "medium",
            "message": (
                f"Aim for {daily_rate} {goal.progress_unit} per day over the next "
                f"{remaining_days} day(s) to reach your target"
            ),
            "daily_rate": daily_rate,
            "remaining_target": remaining_target,
            "remaining_days": remaining_days,
        }]

        if goal.period == PERIOD_CUSTOM and (far_behind or days_left == 0):
            suggestions.append({
                "type": "extend_deadline",
                "priority": "medium",
                "message": "Consider moving the due date to keep the daily load manageable",
                "daily_rate": daily_rate,
                "remaining_target": remaining_target,
                "remaining_days": remaining_days,
            })

        return suggestions

    @staticmethod
    def daily_target(goal: Goal, day: date, tz_name: str = DEFAULT_TIMEZONE) -> float:
        """Share of the target falling on one calendar day"""
        if goal.period == PERIOD_DAILY:
            return goal.target
        if goal.period == PERIOD_WEEKLY:
            return goal.target / 7
        if goal.period == PERIOD_MONTHLY:
            return goal.target / DateService.days_in_month(day)
        first = DateService.to_local_date(goal.start_date, tz_name)
        last = DateService.to_local_date(goal.due_date, tz_name)
        return goal.target / max(1, (last - first).days + 1)

    @staticmethod
    def lifetime_end(goal: Goal, as_of: datetime, tz_name: str = DEFAULT_TIMEZONE) -> date:
        """Last local day of the goal's active lifetime as seen at as_of"""
        candidates = [as_of]
        if goal.completed_at:
            candidates.append(goal.completed_at)
        if goal.due_date:
            candidates.append(goal.due_date)
        return max(
            DateService.to_local_date(min(candidates), tz_name),
            DateService.to_local_date(goal.start_date, tz_name),
        )

    @staticmethod
    def period_breakdown(
        goal: Goal,
        granularity: str,
        as_of: datetime,
        tz_name: str = DEFAULT_TIMEZONE
    ) -> List[dict]:
        """
        Bucket progress history by local calendar week or month.

        Buckets cover the goal's lifetime from start to the earliest of as_of,
        completion and due date, clipped at both ends. Buckets without
        entries are still returned with actual_for_period = 0.
        """
        start = DateService.to_local_date(goal.start_date, tz_name)
        end = PeriodService.lifetime_end(goal, as_of, tz_name)
        entry_days = [
            (DateService.to_local_date(entry.timestamp, tz_name), entry.value)
            for entry in goal.progress_entries
        ]

        buckets = []
        cursor = start
        while cursor <= end:
            bucket_start, bucket_end = DateService.get_bucket_range(cursor, granularity)
            period_start = max(bucket_start, start)
            period_end = min(bucket_end, end)

            target_for_period = sum(
                PeriodService.daily_target(goal, day, tz_name)
                for day in DateService.iter_days(period_start, period_end)
            )
            actual_for_period = sum(
                value for day, value in entry_days
                if period_start <= day <= period_end
            )

            buckets.append({
                "period_start": period_start,
                "period_end": period_end,
                "target_for_period": round(target_for_period, 2),
                "actual_for_period": round(actual_for_period, 2),
            })
            cursor = bucket_end + timedelta(days=1)

        return buckets

    # ---- Database-backed queries ----

    def pacing(self, goal: Goal, as_of: Optional[datetime] = None) -> dict:
        """Derived pacing fields of a goal in the configured timezone"""
        as_of = as_of or DateService.utc_now()
        tz_name = self.tz_name
        return {
            "expected_progress": round(self.expected_progress(goal, as_of, tz_name), 2),
            "is_overdue": self.is_overdue(goal, as_of, tz_name),
            "days_remaining": self.days_remaining(goal, as_of, tz_name),
            "catch_up_suggestions": self.catch_up_suggestions(goal, as_of, tz_name),
        }

    def _get_goal(self, goal_id: int) -> Goal:
        goal = self.goal_repo.get_by_id(self.db, goal_id)
        if not goal:
            raise GoalNotFoundException(goal_id)
        return goal

    def get_breakdown(self, goal_id: int, granularity: str, as_of: Optional[datetime] = None) -> List[dict]:
        """Week or month breakdown of a stored goal"""
        goal = self._get_goal(goal_id)
        return self.period_breakdown(goal, granularity, as_of or DateService.utc_now(), self.tz_name)

    def get_catch_up_suggestions(self, user_id: str, as_of: Optional[datetime] = None) -> List[dict]:
        """Catch-up suggestions across all of a user's active goals"""
        as_of = as_of or DateService.utc_now()
        tz_name = self.tz_name
        result = []
        for goal in self.goal_repo.get_active_for_user(self.db, user_id):
            suggestions = self.catch_up_suggestions(goal, as_of, tz_name)
            if not suggestions:
                continue
            result.append({
                "goal_id": goal.id,
                "goal_title": goal.title,
                "is_overdue": True,
                "completion_rate": goal.completion_rate,
                "days_remaining": self.days_remaining(goal, as_of, tz_name),
                "suggestions": suggestions,
            })
        return result

    def get_progress_summary(self, goal_id: int, days: int = 7, as_of: Optional[datetime] = None) -> dict:
        """
        Recent progress of a goal split by source.

        Args:
            goal_id: Goal to summarize
            days: Look-back window in days
            as_of: End of the window

        Returns:
            Dict with totals per source, daily average and upcoming milestones
        """
        if days < 1:
            raise ValidationException("days", "must be at least 1")
        as_of = as_of or DateService.utc_now()
        goal = self._get_goal(goal_id)
        since = as_of - timedelta(days=days)

        entries = [
            e for e in self.goal_repo.get_entries_since(self.db, goal_id, since)
            if e.timestamp <= as_of
        ]
        session_total = sum(e.value for e in entries if e.source == SOURCE_SESSION)
        manual_total = sum(e.value for e in entries if e.source == SOURCE_MANUAL)
        total = session_total + manual_total

        upcoming = sorted(
            (m for m in goal.milestones if not m.completed),
            key=lambda m: m.target
        )[:3]

        return {
            "goal_id": goal.id,
            "period_days": days,
            "total_progress": round(total, 2),
            "session_progress": round(session_total, 2),
            "manual_progress": round(manual_total, 2),
            "entries_count": len(entries),
            "average_per_day": round(total / days, 2),
            "current_progress": goal.current_progress,
            "completion_rate": goal.completion_rate,
            "expected_progress": round(self.expected_progress(goal, as_of, self.tz_name), 2),
            "is_overdue": self.is_overdue(goal, as_of, self.tz_name),
            "days_remaining": self.days_remaining(goal, as_of, self.tz_name),
            "upcoming_milestones": [
                {
                    "id": m.id,
                    "title": m.title,
                    "target": m.target,
                    "remaining": round(max(0.0, m.target - goal.current_progress), 2),
                }
                for m in upcoming
            ],
        }
