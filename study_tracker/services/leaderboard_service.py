"""
Points and leaderboard service.
Handles the level curve and dense ranking of users by points.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from study_tracker.repositories.rewards_repository import (
    UserRewardsRepository, EarnedRewardRepository, PointsLedgerRepository
)
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.services.date_service import DateService
from study_tracker.exceptions import UserRewardsNotFoundException, ValidationException
from study_tracker.constants import (
    TIMEFRAMES,
    TIMEFRAME_ALLTIME,
    TIMEFRAME_WEEKLY,
    DEFAULT_LEVEL_BASE_POINTS,
    DEFAULT_LEVEL_GROWTH_FACTOR,
)

MAX_LEADERBOARD_LIMIT = 100


def level_for_points(
    points: int,
    base: int = DEFAULT_LEVEL_BASE_POINTS,
    growth: float = DEFAULT_LEVEL_GROWTH_FACTOR
) -> tuple[int, float, int]:
    """
    Place a point total on the level curve.

    Level 1 starts at 0 points and the step from level L to L+1 costs
    floor(base * growth^(L-1)) points.

    Returns:
        Tuple of (level, percent through the current step, points to next level)
    """
    level = 1
    level_floor = 0
    step = math.floor(base * growth ** (level - 1))
    while points >= level_floor + step:
        level_floor += step
        level += 1
        step = math.floor(base * growth ** (level - 1))
    progress = round((points - level_floor) / step * 100, 2)
    return level, progress, level_floor + step - points


class LeaderboardService:
    """Service for leaderboard ranking"""

    def __init__(self, db: Session):
        self.db = db
        self.user_rewards_repo = UserRewardsRepository()
        self.earned_repo = EarnedRewardRepository()
        self.ledger_repo = PointsLedgerRepository()
        self.settings_repo = SettingsRepository()
        self.date_service = DateService()

    @staticmethod
    def rank(entries: List[dict]) -> List[dict]:
        """
        Dense-rank entries by points.

        Ties share a rank and the next distinct value gets the next rank.
        Ordering within a tie goes to whoever reached the score first
        (reached_at, missing last), then user_id.

        Args:
            entries: Dicts with user_id, points, reached_at and optional display_name

        Returns:
            New list of dicts with user_id, display_name, points and rank
        """
        ordered = sorted(
            entries,
            key=lambda e: (
                -e["points"],
                e.get("reached_at") is None,
                e.get("reached_at") or datetime.max,
                e["user_id"],
            )
        )
        ranked = []
        current_rank = 0
        previous_points = None
        for entry in ordered:
            if entry["points"] != previous_points:
                current_rank += 1
                previous_points = entry["points"]
            ranked.append({
                "user_id": entry["user_id"],
                "display_name": entry.get("display_name"),
                "points": entry["points"],
                "rank": current_rank,
            })
        return ranked

    @staticmethod
    def rank_of(user_id: str, entries: List[dict]) -> dict:
        """
        Dense rank of one user without sorting.

        Counts the distinct point values above the user's, plus one.

        Raises:
            UserRewardsNotFoundException: If the user is not among the entries
        """
        points = None
        for entry in entries:
            if entry["user_id"] == user_id:
                points = entry["points"]
                break
        if points is None:
            raise UserRewardsNotFoundException(user_id)

        higher = {entry["points"] for entry in entries if entry["points"] > points}
        return {"rank": len(higher) + 1, "points": points}

    def _window(self, timeframe: str, as_of: datetime) -> tuple[datetime, datetime]:
        """UTC bounds of the local week or month containing as_of"""
        tz = self.settings_repo.get(self.db).timezone
        today = self.date_service.to_local_date(as_of, tz)
        if timeframe == TIMEFRAME_WEEKLY:
            first, last = self.date_service.get_week_range(today)
        else:
            first, last = self.date_service.get_month_range(today)
        start = datetime.combine(first, datetime.min.time())
        end = datetime.combine(last + timedelta(days=1), datetime.min.time())
        return self.date_service.local_to_utc(start, tz), self.date_service.local_to_utc(end, tz)

    def collect_entries(self, timeframe: str, as_of: Optional[datetime] = None) -> List[dict]:
        """
        Points of every user for a timeframe.

        Alltime uses total_points (bonus grants included). Weekly and monthly
        sum the reward points earned inside the window containing as_of.
        """
        if timeframe not in TIMEFRAMES:
            raise ValidationException("timeframe", f"must be one of {', '.join(TIMEFRAMES)}")
        as_of = as_of or self.date_service.utc_now()
        profiles = self.user_rewards_repo.get_all(self.db)

        if timeframe == TIMEFRAME_ALLTIME:
            last_times = self.ledger_repo.get_last_entry_times(self.db)
            return [
                {
                    "user_id": p.user_id,
                    "display_name": p.display_name,
                    "points": p.total_points or 0,
                    "reached_at": last_times.get(p.id),
                }
                for p in profiles
            ]

        start, end = self._window(timeframe, as_of)
        points = {}
        reached = {}
        for user_rewards_id, value, earned_at in self.earned_repo.get_earned_between(self.db, start, end):
            points[user_rewards_id] = points.get(user_rewards_id, 0) + value
            if reached.get(user_rewards_id) is None or earned_at > reached[user_rewards_id]:
                reached[user_rewards_id] = earned_at

        return [
            {
                "user_id": p.user_id,
                "display_name": p.display_name,
                "points": points.get(p.id, 0),
                "reached_at": reached.get(p.id),
            }
            for p in profiles
        ]

    def get_leaderboard(
        self,
        timeframe: str = TIMEFRAME_ALLTIME,
        limit: int = 10,
        as_of: Optional[datetime] = None
    ) -> List[dict]:
        """Top users for a timeframe"""
        if limit < 1 or limit > MAX_LEADERBOARD_LIMIT:
            raise ValidationException("limit", f"must be between 1 and {MAX_LEADERBOARD_LIMIT}")
        return self.rank(self.collect_entries(timeframe, as_of))[:limit]

    def get_rank(
        self,
        user_id: str,
        timeframe: str = TIMEFRAME_ALLTIME,
        as_of: Optional[datetime] = None
    ) -> dict:
        """Rank and points of one user"""
        result = self.rank_of(user_id, self.collect_entries(timeframe, as_of))
        return {"user_id": user_id, "timeframe": timeframe, **result}
