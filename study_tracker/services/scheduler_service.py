"""
Background scheduler.
Handles:
- Retrying reward evaluations that failed after a goal update
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from study_tracker.database import SessionLocal
from study_tracker.repositories.rewards_repository import UserRewardsRepository
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.services.reward_service import RewardService

logger = logging.getLogger("study_tracker.scheduler")

# Create scheduler instance
scheduler = AsyncIOScheduler()


def run_pending_evaluations(session_factory=SessionLocal) -> int:
    """
    Re-evaluate every user flagged needs_evaluation.

    A user whose evaluation fails again stays flagged for the next run.

    Returns:
        Number of users evaluated successfully
    """
    db = session_factory()
    evaluated = 0
    try:
        user_ids = [p.user_id for p in UserRewardsRepository.get_needing_evaluation(db)]
        if not user_ids:
            return 0

        logger.info(f"Retrying reward evaluation for {len(user_ids)} user(s)")
        service = RewardService(db)
        for user_id in user_ids:
            try:
                service.evaluate_user(user_id)
                evaluated += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Scheduler Error (Reward retry) for user {user_id}: {e}")
        return evaluated
    finally:
        db.close()


async def run_reward_retry_job():
    """Task: reward evaluation retry"""
    try:
        run_pending_evaluations()
    except Exception as e:
        logger.error(f"Scheduler Error (Reward retry): {e}")


def start_scheduler():
    """Start the scheduler"""
    if not scheduler.running:
        db = SessionLocal()
        try:
            interval = SettingsRepository.get(db).reward_retry_interval_minutes
        finally:
            db.close()

        scheduler.add_job(
            run_reward_retry_job,
            IntervalTrigger(minutes=interval),
            id='reward_retry',
            replace_existing=True
        )

        scheduler.start()
        logger.info(">>> APScheduler STARTED <<<")
        logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")


def reschedule_reward_retry(interval_minutes: int):
    """Apply a changed retry interval to the running job"""
    if scheduler.running and scheduler.get_job('reward_retry'):
        scheduler.reschedule_job('reward_retry', trigger=IntervalTrigger(minutes=interval_minutes))
        logger.info(f"Reward retry job now runs every {interval_minutes} minute(s)")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")
