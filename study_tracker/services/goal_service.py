"""
Goal management service.
Owns the goal progress state machine: progress deltas, completion detection,
milestones, sub-tasks and lifecycle transitions.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from study_tracker.models import Goal, Milestone, SubTask, ProgressEntry, GoalGuardianShare
from study_tracker.schemas import GoalCreate, GoalUpdate, MilestoneCreate
from study_tracker.repositories.goal_repository import GoalRepository
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.repositories.notification_repository import NotificationRepository
from study_tracker.services.concurrency import run_with_retry
from study_tracker.services.date_service import DateService
from study_tracker.exceptions import (
    GoalNotFoundException,
    SubTaskNotFoundException,
    InvalidStateException,
    ValidationException,
)
from study_tracker.constants import (
    GOAL_STATUS_ACTIVE,
    GOAL_STATUS_COMPLETED,
    GOAL_STATUS_PAUSED,
    GOAL_STATUS_CANCELLED,
    GOAL_STATUS_TRANSITIONS,
    GOAL_PERIODS,
    PERIOD_CUSTOM,
    SOURCE_MANUAL,
    SOURCE_SESSION,
    ACCESS_LEVELS,
    NOTIFICATION_GOAL_COMPLETED,
)

logger = logging.getLogger("study_tracker.goals")

# Editable goal fields copied as given, and those that may not be cleared
UPDATE_PLAIN_FIELDS = (
    "title", "description", "category", "priority", "progress_unit",
    "auto_progress_from_sessions", "visibility",
)
UPDATE_REQUIRED_FIELDS = (
    "title", "category", "priority", "target", "progress_unit",
    "auto_progress_from_sessions", "linked_subjects", "visibility",
)


class GoalService:
    """Service for managing goals"""

    def __init__(self, db: Session):
        self.db = db
        self.goal_repo = GoalRepository()
        self.settings_repo = SettingsRepository()
        self.notification_repo = NotificationRepository()

    # ---- Progress state machine ----

    @staticmethod
    def completion_rate(current_progress: float, target: float) -> float:
        return min(100.0, round(current_progress / target * 100, 2))

    @staticmethod
    def evaluate_milestones(goal: Goal, now: datetime) -> List[Milestone]:
        """Mark reached milestones completed in declaration order"""
        newly_completed = []
        for milestone in goal.milestones:
            if not milestone.completed and milestone.target <= goal.current_progress:
                milestone.completed = True
                milestone.completed_at = now
                newly_completed.append(milestone)
        return newly_completed

    @staticmethod
    def apply_progress_to_goal(
        goal: Goal,
        delta: float,
        source: str,
        now: datetime,
        notes: Optional[str] = None,
        session_id: Optional[int] = None
    ) -> dict:
        """
        Apply a progress delta to an in-memory goal.

        The result is clamped to [0, target]. A ProgressEntry records both
        the requested delta and the change actually applied. Reaching the
        target moves the goal to completed.

        Raises:
            InvalidStateException: If the goal is not active

        Returns:
            Dict with just_completed flag and newly completed milestones
        """
        if goal.status != GOAL_STATUS_ACTIVE:
            raise InvalidStateException(
                f"cannot apply progress to goal {goal.id} in status '{goal.status}'"
            )

        previous = goal.current_progress or 0.0
        updated = min(goal.target, max(0.0, previous + delta))
        goal.current_progress = updated
        goal.completion_rate = GoalService.completion_rate(updated, goal.target)
        goal.updated_at = now

        goal.progress_entries.append(ProgressEntry(
            value=round(updated - previous, 4),
            requested_value=delta,
            source=source,
            session_id=session_id,
            notes=notes,
            timestamp=now,
        ))

        milestones_completed = GoalService.evaluate_milestones(goal, now)

        just_completed = False
        if updated >= goal.target:
            goal.status = GOAL_STATUS_COMPLETED
            goal.completed_at = now
            just_completed = True

        return {
            "just_completed": just_completed,
            "milestones_completed": milestones_completed,
        }

    # ---- Queries ----

    def get_goal(self, goal_id: int) -> Goal:
        """
        Get a goal by ID.

        Raises:
            GoalNotFoundException: If the goal does not exist
        """
        goal = self.goal_repo.get_by_id(self.db, goal_id)
        if not goal:
            raise GoalNotFoundException(goal_id)
        return goal

    def list_goals(
        self,
        user_id: str,
        status: Optional[str] = None,
        include_cancelled: bool = False
    ) -> List[Goal]:
        """A user's goals; cancelled ones only when asked for"""
        if status and status not in GOAL_STATUS_TRANSITIONS:
            raise ValidationException("status", f"unknown goal status '{status}'")
        return self.goal_repo.get_for_user(self.db, user_id, status, include_cancelled)

    def get_goal_stats(self, user_id: str, due_within_days: int = 7, as_of: Optional[datetime] = None) -> dict:
        """
        Dashboard figures for a user's goals.

        Averages and progress totals cover active goals. due_soon lists the
        active goals due on or before as_of + due_within_days, past-due
        ones included.
        """
        if due_within_days < 0:
            raise ValidationException("due_within_days", "cannot be negative")
        as_of = as_of or DateService.utc_now()

        counts = self.goal_repo.count_by_status(self.db, user_id)
        active_goals = self.goal_repo.get_active_for_user(self.db, user_id)
        average = (
            round(sum(g.completion_rate for g in active_goals) / len(active_goals), 2)
            if active_goals else 0.0
        )

        return {
            "total": sum(counts.values()),
            "active": counts.get(GOAL_STATUS_ACTIVE, 0),
            "completed": counts.get(GOAL_STATUS_COMPLETED, 0),
            "by_status": {status: counts.get(status, 0) for status in GOAL_STATUS_TRANSITIONS},
            "average_completion_rate": average,
            "total_progress": round(sum(g.current_progress for g in active_goals), 2),
            "due_within_days": due_within_days,
            "due_soon": self.goal_repo.get_due_before(
                self.db, user_id, as_of + timedelta(days=due_within_days)
            ),
        }

    # ---- Commands ----

    def _notify_completed(self, goal: Goal, now: datetime) -> None:
        self.notification_repo.enqueue(
            self.db,
            user_id=goal.user_id,
            type=NOTIFICATION_GOAL_COMPLETED,
            title="Goal Completed!",
            message=f"You completed '{goal.title}'. Great work!",
            created_at=now,
            payload={"goal_id": goal.id},
        )

    def _retry(self, operation, goal_id: int):
        settings = self.settings_repo.get(self.db)
        return run_with_retry(
            self.db,
            operation,
            entity="goal",
            entity_id=goal_id,
            max_retries=settings.max_conflict_retries,
            backoff_ms=settings.conflict_backoff_ms,
        )

    def create_goal(self, user_id: str, goal_data: GoalCreate, now: Optional[datetime] = None) -> Goal:
        """
        Create a goal with its milestones and sub-tasks.

        Raises:
            ValidationException: Missing target, period or progress unit,
                unknown period, or a bad custom date range
            InvalidStateException: Non-positive target
        """
        now = now or DateService.utc_now()

        if goal_data.target is None:
            raise ValidationException("target", "is required")
        if not goal_data.period:
            raise ValidationException("period", "is required")
        if not goal_data.progress_unit or not goal_data.progress_unit.strip():
            raise ValidationException("progress_unit", "is required")
        if goal_data.period not in GOAL_PERIODS:
            raise ValidationException("period", f"must be one of {', '.join(GOAL_PERIODS)}")
        if not math.isfinite(goal_data.target) or goal_data.target <= 0:
            raise InvalidStateException("goal target must be greater than 0")

        start_date = DateService.to_utc(goal_data.start_date) if goal_data.start_date else now
        due_date = DateService.to_utc(goal_data.due_date) if goal_data.due_date else None

        if goal_data.period == PERIOD_CUSTOM:
            if not goal_data.start_date:
                raise ValidationException("start_date", "is required for custom goals")
            if not due_date:
                raise ValidationException("due_date", "is required for custom goals")
        if due_date and due_date <= start_date:
            raise ValidationException("due_date", "must be after start_date")

        goal = Goal(
            user_id=user_id,
            title=goal_data.title,
            description=goal_data.description,
            category=goal_data.category,
            priority=goal_data.priority,
            target=goal_data.target,
            progress_unit=goal_data.progress_unit.strip(),
            period=goal_data.period,
            start_date=start_date,
            due_date=due_date,
            current_progress=0.0,
            completion_rate=0.0,
            status=GOAL_STATUS_ACTIVE,
            auto_progress_from_sessions=goal_data.auto_progress_from_sessions,
            visibility=goal_data.visibility,
            created_at=now,
            updated_at=now,
        )
        goal.set_linked_subjects(goal_data.linked_subjects)

        for position, milestone in enumerate(goal_data.milestones):
            goal.milestones.append(Milestone(
                position=position,
                title=milestone.title,
                description=milestone.description,
                target=milestone.target,
                due_date=DateService.to_utc(milestone.due_date) if milestone.due_date else None,
                reward=milestone.reward,
                completed=False,
            ))
        for position, subtask in enumerate(goal_data.subtasks):
            goal.subtasks.append(SubTask(position=position, title=subtask.title, completed=False))

        goal = self.goal_repo.create(self.db, goal)
        logger.info(f"Created goal {goal.id} for user {user_id}: {goal.target} {goal.progress_unit} ({goal.period})")
        return goal

    def apply_progress(
        self,
        goal_id: int,
        delta: float,
        source: str = SOURCE_MANUAL,
        notes: Optional[str] = None,
        session_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """
        Apply a progress delta to a stored goal.

        Concurrent deltas on one goal are serialized by the goal's version
        column; a conflicting write is replayed on fresh state.

        Raises:
            GoalNotFoundException: Unknown goal
            InvalidStateException: Goal not active (nothing is changed)
            ValidationException: Non-numeric delta or unknown source
            ConflictException: Retries exhausted

        Returns:
            Dict with goal, just_completed and milestones_completed
        """
        if delta is None or not math.isfinite(delta):
            raise ValidationException("value", "must be a finite number")
        if source not in (SOURCE_MANUAL, SOURCE_SESSION):
            raise ValidationException("source", f"unknown progress source '{source}'")
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            outcome = self.apply_progress_to_goal(goal, delta, source, now, notes, session_id)
            if outcome["just_completed"]:
                self._notify_completed(goal, now)
            return {"goal": goal, **outcome}

        result = self._retry(operation, goal_id)
        self.db.refresh(result["goal"])

        if result["just_completed"]:
            logger.info(f"Goal {goal_id} completed")
        for milestone in result["milestones_completed"]:
            logger.info(f"Goal {goal_id} milestone '{milestone.title}' reached")
        return result

    def update_goal(self, goal_id: int, goal_update: GoalUpdate, now: Optional[datetime] = None) -> dict:
        """
        Edit an active or paused goal.

        Only fields present in goal_update change. A new target re-clamps
        current_progress and recomputes completion_rate; an active goal whose
        new target is already reached completes.

        Raises:
            GoalNotFoundException: Unknown goal
            InvalidStateException: Goal completed or cancelled, or non-positive target
            ValidationException: Cleared required field or bad due date

        Returns:
            Dict with goal and just_completed
        """
        changes = goal_update.model_dump(exclude_unset=True)
        for field in UPDATE_REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationException(field, "cannot be cleared")
        if "target" in changes and (not math.isfinite(changes["target"]) or changes["target"] <= 0):
            raise InvalidStateException("goal target must be greater than 0")
        if "progress_unit" in changes:
            changes["progress_unit"] = changes["progress_unit"].strip()
            if not changes["progress_unit"]:
                raise ValidationException("progress_unit", "is required")
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            if goal.status not in (GOAL_STATUS_ACTIVE, GOAL_STATUS_PAUSED):
                raise InvalidStateException(f"cannot edit goal {goal_id} in status '{goal.status}'")

            if "due_date" in changes:
                due_date = DateService.to_utc(changes["due_date"]) if changes["due_date"] else None
                if due_date is None and goal.period == PERIOD_CUSTOM:
                    raise ValidationException("due_date", "is required for custom goals")
                if due_date and due_date <= goal.start_date:
                    raise ValidationException("due_date", "must be after start_date")
                goal.due_date = due_date
            if "linked_subjects" in changes:
                goal.set_linked_subjects(changes["linked_subjects"])
            for key in UPDATE_PLAIN_FIELDS:
                if key in changes:
                    setattr(goal, key, changes[key])

            if "target" in changes:
                goal.target = changes["target"]
                goal.current_progress = min(goal.target, max(0.0, goal.current_progress or 0.0))
                goal.completion_rate = self.completion_rate(goal.current_progress, goal.target)

            just_completed = False
            if goal.status == GOAL_STATUS_ACTIVE and goal.current_progress >= goal.target:
                goal.status = GOAL_STATUS_COMPLETED
                goal.completed_at = now
                just_completed = True
                self._notify_completed(goal, now)
            goal.updated_at = now
            return {"goal": goal, "just_completed": just_completed}

        result = self._retry(operation, goal_id)
        self.db.refresh(result["goal"])
        logger.info(f"Updated goal {goal_id}: {', '.join(sorted(changes)) or 'no changes'}")
        if result["just_completed"]:
            logger.info(f"Goal {goal_id} completed by target change")
        return result

    def toggle_subtask(self, goal_id: int, subtask_id: int, now: Optional[datetime] = None) -> Goal:
        """
        Flip a sub-task's completion.

        Raises:
            GoalNotFoundException: Unknown goal
            SubTaskNotFoundException: Sub-task is not part of the goal
            InvalidStateException: Goal is cancelled
        """
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            if goal.status == GOAL_STATUS_CANCELLED:
                raise InvalidStateException(f"goal {goal_id} is cancelled")
            subtask = next((s for s in goal.subtasks if s.id == subtask_id), None)
            if subtask is None:
                raise SubTaskNotFoundException(goal_id, subtask_id)
            subtask.completed = not subtask.completed
            subtask.completed_at = now if subtask.completed else None
            goal.updated_at = now
            return goal

        goal = self._retry(operation, goal_id)
        self.db.refresh(goal)
        return goal

    def add_milestone(
        self,
        goal_id: int,
        milestone_data: MilestoneCreate,
        now: Optional[datetime] = None
    ) -> Goal:
        """
        Append a milestone and evaluate it against current progress.

        Raises:
            InvalidStateException: Goal is completed or cancelled
        """
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            if goal.status not in (GOAL_STATUS_ACTIVE, GOAL_STATUS_PAUSED):
                raise InvalidStateException(
                    f"cannot add milestones to goal {goal_id} in status '{goal.status}'"
                )
            position = max((m.position for m in goal.milestones), default=-1) + 1
            goal.milestones.append(Milestone(
                position=position,
                title=milestone_data.title,
                description=milestone_data.description,
                target=milestone_data.target,
                due_date=DateService.to_utc(milestone_data.due_date) if milestone_data.due_date else None,
                reward=milestone_data.reward,
                completed=False,
            ))
            self.evaluate_milestones(goal, now)
            goal.updated_at = now
            return goal

        goal = self._retry(operation, goal_id)
        self.db.refresh(goal)
        return goal

    def _transition(self, goal_id: int, new_status: str, now: Optional[datetime]) -> Goal:
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            if new_status not in GOAL_STATUS_TRANSITIONS.get(goal.status, set()):
                raise InvalidStateException(
                    f"goal {goal_id} cannot move from '{goal.status}' to '{new_status}'"
                )
            goal.status = new_status
            goal.updated_at = now
            return goal

        goal = self._retry(operation, goal_id)
        self.db.refresh(goal)
        logger.info(f"Goal {goal_id} is now {new_status}")
        return goal

    def pause_goal(self, goal_id: int, now: Optional[datetime] = None) -> Goal:
        return self._transition(goal_id, GOAL_STATUS_PAUSED, now)

    def resume_goal(self, goal_id: int, now: Optional[datetime] = None) -> Goal:
        return self._transition(goal_id, GOAL_STATUS_ACTIVE, now)

    def cancel_goal(self, goal_id: int, now: Optional[datetime] = None) -> Goal:
        """Soft delete: the goal stays stored with status cancelled"""
        return self._transition(goal_id, GOAL_STATUS_CANCELLED, now)

    def delete_goal(self, goal_id: int) -> None:
        """Hard delete a goal with its milestones, sub-tasks and history"""
        goal = self.get_goal(goal_id)
        self.goal_repo.delete(self.db, goal)
        logger.info(f"Deleted goal {goal_id}")

    def share_with_guardian(
        self,
        goal_id: int,
        guardian_id: str,
        access_level: str = "view",
        user_consent: bool = False,
        now: Optional[datetime] = None
    ) -> Goal:
        """
        Share a goal with a guardian.

        Raises:
            InvalidStateException: The user has not consented
            ValidationException: Unknown access level
        """
        if not user_consent:
            raise InvalidStateException("sharing a goal with a guardian requires user consent")
        if access_level not in ACCESS_LEVELS:
            raise ValidationException("access_level", f"must be one of {', '.join(ACCESS_LEVELS)}")
        now = now or DateService.utc_now()

        def operation():
            goal = self.get_goal(goal_id)
            share = next((s for s in goal.guardian_shares if s.guardian_id == guardian_id), None)
            if share is None:
                goal.guardian_shares.append(GoalGuardianShare(
                    guardian_id=guardian_id,
                    access_level=access_level,
                    consent_given=True,
                    shared_at=now,
                ))
            else:
                share.access_level = access_level
                share.consent_given = True
                share.shared_at = now
            if goal.visibility == "private":
                goal.visibility = "shared"
            goal.updated_at = now
            return goal

        goal = self._retry(operation, goal_id)
        self.db.refresh(goal)
        return goal
