"""
Study session HTTP routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from study_tracker.database import get_db
from study_tracker.schemas import SessionCompletedEvent, SessionCompletedResponse
from study_tracker.services.activity_service import ActivityService

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("/completed", response_model=SessionCompletedResponse)
def session_completed(event: SessionCompletedEvent, db: Session = Depends(get_db)):
    """Feed a completed study session into goals, streak and rewards."""
    return ActivityService(db).on_session_completed(event)
