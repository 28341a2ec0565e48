"""
Rewards, streak, leaderboard, notification and tip HTTP routes.
"""
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from study_tracker.database import get_db
from study_tracker.schemas import (
    RewardsProfileResponse, RewardProgressResponse, RewardResponse,
    BonusGrantCreate, FlagCreate, PointsResult, StreakState,
    LeaderboardEntry, RankResponse, NotificationResponse, NotificationAck, TipResponse
)
from study_tracker.repositories.rewards_repository import RewardRepository
from study_tracker.repositories.notification_repository import NotificationRepository
from study_tracker.services.reward_service import RewardService
from study_tracker.services.streak_service import StreakService
from study_tracker.services.leaderboard_service import LeaderboardService
from study_tracker.services.tip_service import TipService
from study_tracker.services.date_service import DateService
from study_tracker.constants import TIMEFRAME_ALLTIME, TIP_CONTEXT_ANY, TIP_PERFORMANCE_ANY

router = APIRouter(prefix="/api", tags=["rewards"])

TIMEFRAME_PATTERN = "^(alltime|weekly|monthly)$"


@router.get("/rewards/catalog", response_model=List[RewardResponse])
def get_catalog(db: Session = Depends(get_db)):
    """Active reward catalog."""
    return RewardRepository.get_active(db)


@router.get("/users/{user_id}/rewards", response_model=RewardsProfileResponse)
def get_rewards_profile(user_id: str, db: Session = Depends(get_db)):
    """Points, level, stats, streak and earned rewards."""
    return RewardService(db).get_profile(user_id)


@router.get("/users/{user_id}/rewards/progress", response_model=List[RewardProgressResponse])
def get_rewards_progress(user_id: str, db: Session = Depends(get_db)):
    """Progress towards unearned rewards, closest first."""
    return RewardService(db).get_rewards_progress(user_id)


@router.post("/users/{user_id}/rewards/evaluate")
def evaluate_rewards(user_id: str, db: Session = Depends(get_db)):
    """Re-score a user's rewards now."""
    return RewardService(db).evaluate_user(user_id)


@router.post("/users/{user_id}/rewards/bonus", response_model=PointsResult)
def award_bonus(user_id: str, grant: BonusGrantCreate, db: Session = Depends(get_db)):
    """Administrative bonus points."""
    return RewardService(db).award_bonus_points(user_id, grant.amount, grant.reason)


@router.post("/users/{user_id}/rewards/flags")
def set_flag(user_id: str, flag: FlagCreate, db: Session = Depends(get_db)):
    """Set an achievement flag for perfect_week/custom rewards."""
    return RewardService(db).set_achievement_flag(user_id, flag.flag)


@router.get("/users/{user_id}/streak", response_model=StreakState)
def get_streak(user_id: str, db: Session = Depends(get_db)):
    return StreakService(db).get_streak(user_id)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    timeframe: str = Query(TIMEFRAME_ALLTIME, pattern=TIMEFRAME_PATTERN),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Dense-ranked leaderboard."""
    return LeaderboardService(db).get_leaderboard(timeframe, limit)


@router.get("/users/{user_id}/rank", response_model=RankResponse)
def get_rank(
    user_id: str,
    timeframe: str = Query(TIMEFRAME_ALLTIME, pattern=TIMEFRAME_PATTERN),
    db: Session = Depends(get_db)
):
    return LeaderboardService(db).get_rank(user_id, timeframe)


@router.get("/users/{user_id}/notifications", response_model=List[NotificationResponse])
def get_notifications(user_id: str, db: Session = Depends(get_db)):
    """Pending notifications."""
    return [
        {
            "id": n.id,
            "type": n.type,
            "title": n.title,
            "message": n.message,
            "payload": json.loads(n.payload) if n.payload else None,
            "created_at": n.created_at,
            "delivered": n.delivered,
        }
        for n in NotificationRepository.get_pending(db, user_id)
    ]


@router.post("/users/{user_id}/notifications/ack")
def acknowledge_notifications(user_id: str, ack: NotificationAck, db: Session = Depends(get_db)):
    """Mark pending notifications delivered."""
    count = NotificationRepository.mark_delivered(
        db, user_id, DateService.utc_now(), ack.notification_ids
    )
    return {"acknowledged": count}


@router.get("/tips/random", response_model=TipResponse)
def get_random_tip(
    context: str = TIP_CONTEXT_ANY,
    performance_level: str = TIP_PERFORMANCE_ANY,
    tip_type: Optional[str] = Query(None, alias="type"),
    db: Session = Depends(get_db)
):
    return TipService(db).get_random_tip(context, performance_level, tip_type)
