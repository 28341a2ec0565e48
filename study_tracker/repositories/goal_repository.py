"""
Goal repository - Data access layer for the goal aggregate.
Handles all database queries related to goals and their children.
"""
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from study_tracker.models import Goal, ProgressEntry
from study_tracker.constants import GOAL_STATUS_ACTIVE, GOAL_STATUS_CANCELLED


class GoalRepository:
    """Repository for Goal data access"""

    @staticmethod
    def get_by_id(db: Session, goal_id: int) -> Optional[Goal]:
        """Get goal by ID"""
        return db.query(Goal).filter(Goal.id == goal_id).first()

    @staticmethod
    def get_for_user(
        db: Session,
        user_id: str,
        status: Optional[str] = None,
        include_cancelled: bool = False
    ) -> List[Goal]:
        """Get a user's goals, newest first"""
        query = db.query(Goal).filter(Goal.user_id == user_id)
        if status:
            query = query.filter(Goal.status == status)
        elif not include_cancelled:
            query = query.filter(Goal.status != GOAL_STATUS_CANCELLED)
        return query.order_by(Goal.created_at.desc(), Goal.id.desc()).all()

    @staticmethod
    def get_active_for_user(db: Session, user_id: str) -> List[Goal]:
        """Get a user's active goals"""
        return db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_ACTIVE
            )
        ).order_by(Goal.id).all()

    @staticmethod
    def get_auto_progress_goals(db: Session, user_id: str) -> List[Goal]:
        """Get active goals that take progress from study sessions"""
        return db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_ACTIVE,
                Goal.auto_progress_from_sessions == True
            )
        ).order_by(Goal.id).all()

    @staticmethod
    def count_by_status(db: Session, user_id: str) -> Dict[str, int]:
        """Number of a user's goals per status"""
        rows = db.query(Goal.status, func.count(Goal.id)).filter(
            Goal.user_id == user_id
        ).group_by(Goal.status).all()
        return {status: count for status, count in rows}

    @staticmethod
    def get_due_before(db: Session, user_id: str, cutoff: datetime) -> List[Goal]:
        """Active goals due on or before cutoff, earliest first"""
        return db.query(Goal).filter(
            and_(
                Goal.user_id == user_id,
                Goal.status == GOAL_STATUS_ACTIVE,
                Goal.due_date.isnot(None),
                Goal.due_date <= cutoff
            )
        ).order_by(Goal.due_date, Goal.id).all()

    @staticmethod
    def get_completed_times(db: Session, user_id: str) -> List[datetime]:
        """Completion timestamps of the user's completed goals"""
        rows = db.query(Goal.completed_at).filter(
            and_(
                Goal.user_id == user_id,
                Goal.completed_at.isnot(None)
            )
        ).all()
        return [row[0] for row in rows]

    @staticmethod
    def get_entries_since(db: Session, goal_id: int, since: datetime) -> List[ProgressEntry]:
        """Progress entries of a goal recorded at or after since"""
        return db.query(ProgressEntry).filter(
            and_(
                ProgressEntry.goal_id == goal_id,
                ProgressEntry.timestamp >= since
            )
        ).order_by(ProgressEntry.timestamp).all()

    @staticmethod
    def create(db: Session, goal: Goal) -> Goal:
        """Create new goal with its children"""
        db.add(goal)
        db.commit()
        db.refresh(goal)
        return goal

    @staticmethod
    def delete(db: Session, goal: Goal) -> None:
        """Delete a goal and everything attached to it"""
        db.delete(goal)
        db.commit()
