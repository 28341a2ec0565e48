"""
Notification repository - the queue of pending notifications.
Records are only enqueued here; delivery happens elsewhere.
"""
import json
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_

from study_tracker.models import PendingNotification


class NotificationRepository:
    """Repository for PendingNotification data access"""

    @staticmethod
    def enqueue(
        db: Session,
        user_id: str,
        type: str,
        title: str,
        message: str,
        created_at: datetime,
        payload: Optional[dict] = None
    ) -> PendingNotification:
        """Add a notification to the caller's transaction (no commit)"""
        notification = PendingNotification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            payload=json.dumps(payload) if payload else None,
            created_at=created_at,
            delivered=False,
        )
        db.add(notification)
        return notification

    @staticmethod
    def get_pending(db: Session, user_id: str) -> List[PendingNotification]:
        """Undelivered notifications of a user, oldest first"""
        return db.query(PendingNotification).filter(
            and_(
                PendingNotification.user_id == user_id,
                PendingNotification.delivered == False
            )
        ).order_by(PendingNotification.id).all()

    @staticmethod
    def mark_delivered(
        db: Session,
        user_id: str,
        delivered_at: datetime,
        notification_ids: Optional[List[int]] = None
    ) -> int:
        """Mark pending notifications delivered, all of them when no ids are given"""
        query = db.query(PendingNotification).filter(
            and_(
                PendingNotification.user_id == user_id,
                PendingNotification.delivered == False
            )
        )
        if notification_ids is not None:
            query = query.filter(PendingNotification.id.in_(notification_ids))
        count = query.update(
            {"delivered": True, "delivered_at": delivered_at},
            synchronize_session=False
        )
        db.commit()
        return count
