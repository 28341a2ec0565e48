"""
Study session repository - stores completed session events.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_

from study_tracker.models import StudySession


class StudySessionRepository:
    """Repository for StudySession data access"""

    @staticmethod
    def get_by_external_id(db: Session, external_id: str) -> Optional[StudySession]:
        """Get a stored session by the id the timer service gave it"""
        return db.query(StudySession).filter(StudySession.external_id == external_id).first()

    @staticmethod
    def get_for_user(db: Session, user_id: str) -> List[StudySession]:
        """All sessions of a user in start order"""
        return db.query(StudySession).filter(
            StudySession.user_id == user_id
        ).order_by(StudySession.started_at).all()

    @staticmethod
    def get_started_between(
        db: Session,
        user_id: str,
        start: datetime,
        end: datetime
    ) -> List[StudySession]:
        """Sessions of a user started in [start, end)"""
        return db.query(StudySession).filter(
            and_(
                StudySession.user_id == user_id,
                StudySession.started_at >= start,
                StudySession.started_at < end
            )
        ).order_by(StudySession.started_at).all()

    @staticmethod
    def create(db: Session, session: StudySession) -> StudySession:
        """Store a completed session"""
        db.add(session)
        db.commit()
        db.refresh(session)
        return session
