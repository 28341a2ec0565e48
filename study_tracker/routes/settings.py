"""
Settings HTTP routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from study_tracker.database import get_db
from study_tracker.schemas import SettingsUpdate, SettingsResponse
from study_tracker.repositories.settings_repository import SettingsRepository
from study_tracker.services.date_service import DateService
from study_tracker.services.scheduler_service import reschedule_reward_retry

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
def get_settings(db: Session = Depends(get_db)):
    return SettingsRepository.get(db)


@router.put("", response_model=SettingsResponse)
def update_settings(settings_update: SettingsUpdate, db: Session = Depends(get_db)):
    """Update engine settings."""
    DateService.get_zone(settings_update.timezone)

    settings = SettingsRepository.get(db)
    previous_interval = settings.reward_retry_interval_minutes
    settings = SettingsRepository.update(db, settings, settings_update.model_dump(exclude_unset=True))

    if settings.reward_retry_interval_minutes != previous_interval:
        reschedule_reward_retry(settings.reward_retry_interval_minutes)
    return settings
