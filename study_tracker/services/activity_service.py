"""
Activity orchestration service.

The single entry point for completed study sessions and manual progress:
applies progress to the affected goals, then re-scores the user's rewards.
Goal state and reward state are separate aggregates; a failed reward
evaluation never undoes the goal update, the user is flagged for the
scheduler's retry job instead.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from study_tracker.models import StudySession, Goal
from study_tracker.schemas import GoalUpdate, SessionCompletedEvent
from study_tracker.repositories.goal_repository import GoalRepository
from study_tracker.repositories.session_repository import StudySessionRepository
from study_tracker.services.goal_service import GoalService
from study_tracker.services.reward_service import RewardService
from study_tracker.services.date_service import DateService
from study_tracker.exceptions import InvalidStateException, ConflictException
from study_tracker.constants import (
    SOURCE_MANUAL,
    SOURCE_SESSION,
    UNIT_HOURS,
    UNIT_MINUTES,
    UNIT_SESSIONS,
)

logger = logging.getLogger("study_tracker.activity")


class ActivityService:
    """Service chaining goal progress and reward evaluation"""

    def __init__(self, db: Session):
        self.db = db
        self.goal_repo = GoalRepository()
        self.session_repo = StudySessionRepository()
        self.goal_service = GoalService(db)
        self.reward_service = RewardService(db)

    @staticmethod
    def session_delta(goal: Goal, duration_seconds: int) -> Optional[float]:
        """
        Progress a session contributes to a goal, by the goal's unit.

        Hours goals get the duration in hours (2 decimals), minutes goals the
        duration in minutes and sessions goals 1. Any other unit is fed by
        manual progress only and gets None.
        """
        unit = (goal.progress_unit or "").strip().lower()
        if unit == UNIT_HOURS:
            return round(duration_seconds / 3600, 2)
        if unit == UNIT_MINUTES:
            return round(duration_seconds / 60, 2)
        if unit == UNIT_SESSIONS:
            return 1.0
        return None

    def evaluate_rewards_safely(self, user_id: str, now: datetime) -> Optional[dict]:
        """
        Evaluate rewards after a goal mutation that is already committed.

        Failures are logged and the user is flagged for a later retry. A
        failure to set that flag is logged too and never raised.
        """
        try:
            return self.reward_service.evaluate_user(user_id, now)
        except Exception as e:
            logger.error(f"Reward evaluation failed for user {user_id}: {e}")
        try:
            self.reward_service.mark_needs_evaluation(user_id)
        except Exception as e:
            # goal progress is already committed
            self.db.rollback()
            logger.error(f"Could not queue user {user_id} for reward re-evaluation: {e}")
        return None

    def on_session_completed(self, event: SessionCompletedEvent, now: Optional[datetime] = None) -> dict:
        """
        Handle a completed study session.

        Stores the session (a replay with the same session_id is ignored),
        applies progress to matching auto-progress goals and re-evaluates
        the user's rewards and streak.
        """
        now = now or DateService.utc_now()

        if event.session_id:
            existing = self.session_repo.get_by_external_id(self.db, event.session_id)
            if existing:
                logger.info(f"Session {event.session_id} already processed")
                return {"session_id": existing.id, "duplicate": True}

        session = StudySession(
            user_id=event.user_id,
            external_id=event.session_id,
            subject=event.subject,
            started_at=DateService.to_utc(event.started_at),
            duration_seconds=event.duration_seconds,
            created_at=now,
        )
        try:
            session = self.session_repo.create(self.db, session)
        except IntegrityError:
            # lost a race against the same event
            self.db.rollback()
            existing = self.session_repo.get_by_external_id(self.db, event.session_id)
            if existing is None:
                raise
            return {"session_id": existing.id, "duplicate": True}

        goals_updated = []
        goals_completed = []
        for goal in self.goal_repo.get_auto_progress_goals(self.db, event.user_id):
            if not goal.accepts_subject(event.subject):
                continue
            delta = self.session_delta(goal, event.duration_seconds)
            if not delta:
                continue
            try:
                result = self.goal_service.apply_progress(
                    goal.id,
                    delta,
                    source=SOURCE_SESSION,
                    notes=f"Study session: {event.subject}" if event.subject else "Study session",
                    session_id=session.id,
                    now=now,
                )
            except (InvalidStateException, ConflictException) as e:
                # goal changed status or stayed contended; the other goals still get their share
                logger.error(f"Session {session.id} progress skipped for goal {goal.id}: {e}")
                continue
            goals_updated.append(goal.id)
            if result["just_completed"]:
                goals_completed.append(goal.id)

        evaluation = self.evaluate_rewards_safely(event.user_id, now)

        logger.info(
            f"Session {session.id} for user {event.user_id}: "
            f"{len(goals_updated)} goal(s) updated, {len(goals_completed)} completed"
        )
        return {
            "session_id": session.id,
            "duplicate": False,
            "goals_updated": goals_updated,
            "goals_completed": goals_completed,
            "rewards_earned": evaluation["rewards_earned"] if evaluation else [],
            "streak": evaluation["streak"] if evaluation else None,
        }

    def submit_manual_progress(
        self,
        goal_id: int,
        value: float,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """
        Apply manual progress; a completion triggers reward evaluation.

        Returns:
            apply_progress result plus rewards_earned
        """
        now = now or DateService.utc_now()
        result = self.goal_service.apply_progress(goal_id, value, source=SOURCE_MANUAL, notes=notes, now=now)
        result["rewards_earned"] = []
        if result["just_completed"]:
            evaluation = self.evaluate_rewards_safely(result["goal"].user_id, now)
            if evaluation:
                result["rewards_earned"] = evaluation["rewards_earned"]
        return result

    def update_goal(self, goal_id: int, goal_update: GoalUpdate, now: Optional[datetime] = None) -> dict:
        """
        Edit a goal; a completion caused by a lowered target triggers reward evaluation.

        Returns:
            update_goal result plus rewards_earned
        """
        now = now or DateService.utc_now()
        result = self.goal_service.update_goal(goal_id, goal_update, now=now)
        result["rewards_earned"] = []
        if result["just_completed"]:
            evaluation = self.evaluate_rewards_safely(result["goal"].user_id, now)
            if evaluation:
                result["rewards_earned"] = evaluation["rewards_earned"]
        return result
