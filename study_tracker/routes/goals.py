"""
Goal HTTP routes.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from study_tracker.database import get_db
from study_tracker.models import Goal
from study_tracker.schemas import (
    GoalCreate, GoalUpdate, GoalResponse, GoalStats, ProgressCreate, MilestoneCreate,
    GuardianShareCreate, GoalCatchUp, PeriodBucket
)
from study_tracker.services.goal_service import GoalService
from study_tracker.services.period_service import PeriodService
from study_tracker.services.activity_service import ActivityService
from study_tracker.services.date_service import DateService
from study_tracker.constants import GRANULARITY_WEEK

router = APIRouter(prefix="/api", tags=["goals"])


def goal_response(goal: Goal, db: Session, as_of: Optional[datetime] = None) -> GoalResponse:
    """Goal with its derived pacing fields"""
    data = GoalResponse.model_validate(goal).model_dump()
    data.update(PeriodService(db).pacing(goal, as_of))
    return GoalResponse(**data)


@router.post("/users/{user_id}/goals", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
def create_goal(user_id: str, goal_data: GoalCreate, db: Session = Depends(get_db)):
    """Create a goal."""
    goal = GoalService(db).create_goal(user_id, goal_data)
    return goal_response(goal, db)


@router.get("/users/{user_id}/goals", response_model=List[GoalResponse])
def list_goals(
    user_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    include_cancelled: bool = False,
    db: Session = Depends(get_db)
):
    """List a user's goals."""
    now = DateService.utc_now()
    goals = GoalService(db).list_goals(user_id, status_filter, include_cancelled)
    return [goal_response(goal, db, now) for goal in goals]


@router.get("/users/{user_id}/goals/stats", response_model=GoalStats)
def get_goal_stats(
    user_id: str,
    due_within_days: int = Query(7, ge=0, le=365),
    db: Session = Depends(get_db)
):
    """Goal dashboard: counts, average completion and goals due soon."""
    return GoalService(db).get_goal_stats(user_id, due_within_days)


@router.get("/users/{user_id}/catch-up", response_model=List[GoalCatchUp])
def get_catch_up_suggestions(user_id: str, db: Session = Depends(get_db)):
    """Catch-up suggestions for every active goal that is behind."""
    return PeriodService(db).get_catch_up_suggestions(user_id)


@router.get("/goals/{goal_id}", response_model=GoalResponse)
def get_goal(goal_id: int, db: Session = Depends(get_db)):
    return goal_response(GoalService(db).get_goal(goal_id), db)


@router.put("/goals/{goal_id}")
def update_goal(goal_id: int, goal_update: GoalUpdate, db: Session = Depends(get_db)):
    """Edit a goal."""
    result = ActivityService(db).update_goal(goal_id, goal_update)
    return {
        "goal": goal_response(result["goal"], db),
        "just_completed": result["just_completed"],
        "rewards_earned": result["rewards_earned"],
    }


@router.delete("/goals/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(goal_id: int, db: Session = Depends(get_db)):
    """Hard delete a goal."""
    GoalService(db).delete_goal(goal_id)


@router.post("/goals/{goal_id}/progress")
def add_progress(goal_id: int, progress: ProgressCreate, db: Session = Depends(get_db)):
    """Submit manual progress."""
    result = ActivityService(db).submit_manual_progress(goal_id, progress.value, progress.notes)
    return {
        "goal": goal_response(result["goal"], db),
        "just_completed": result["just_completed"],
        "milestones_completed": [m.id for m in result["milestones_completed"]],
        "rewards_earned": result["rewards_earned"],
    }


@router.post("/goals/{goal_id}/subtasks/{subtask_id}/toggle", response_model=GoalResponse)
def toggle_subtask(goal_id: int, subtask_id: int, db: Session = Depends(get_db)):
    return goal_response(GoalService(db).toggle_subtask(goal_id, subtask_id), db)


@router.post("/goals/{goal_id}/milestones", response_model=GoalResponse)
def add_milestone(goal_id: int, milestone: MilestoneCreate, db: Session = Depends(get_db)):
    return goal_response(GoalService(db).add_milestone(goal_id, milestone), db)


@router.post("/goals/{goal_id}/pause", response_model=GoalResponse)
def pause_goal(goal_id: int, db: Session = Depends(get_db)):
    return goal_response(GoalService(db).pause_goal(goal_id), db)


@router.post("/goals/{goal_id}/resume", response_model=GoalResponse)
def resume_goal(goal_id: int, db: Session = Depends(get_db)):
    return goal_response(GoalService(db).resume_goal(goal_id), db)


@router.post("/goals/{goal_id}/cancel", response_model=GoalResponse)
def cancel_goal(goal_id: int, db: Session = Depends(get_db)):
    """Soft delete a goal."""
    return goal_response(GoalService(db).cancel_goal(goal_id), db)


@router.post("/goals/{goal_id}/share", response_model=GoalResponse)
def share_goal(goal_id: int, share: GuardianShareCreate, db: Session = Depends(get_db)):
    """Share a goal with a guardian (requires consent)."""
    goal = GoalService(db).share_with_guardian(
        goal_id, share.guardian_id, share.access_level, share.user_consent
    )
    return goal_response(goal, db)


@router.get("/goals/{goal_id}/breakdown", response_model=List[PeriodBucket])
def get_breakdown(
    goal_id: int,
    granularity: str = Query(GRANULARITY_WEEK, pattern="^(week|month)$"),
    db: Session = Depends(get_db)
):
    """Week or month progress breakdown."""
    return PeriodService(db).get_breakdown(goal_id, granularity)


@router.get("/goals/{goal_id}/summary")
def get_progress_summary(
    goal_id: int,
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db)
):
    """Recent progress split by source."""
    return PeriodService(db).get_progress_summary(goal_id, days)
