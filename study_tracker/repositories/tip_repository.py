"""
Motivational tip repository.
"""
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import or_

from study_tracker.models import MotivationalTip
from study_tracker.constants import TIP_CONTEXT_ANY, TIP_PERFORMANCE_ANY


class TipRepository:
    """Repository for MotivationalTip data access"""

    @staticmethod
    def get_matching(
        db: Session,
        context: str = TIP_CONTEXT_ANY,
        performance_level: str = TIP_PERFORMANCE_ANY,
        tip_type: Optional[str] = None
    ) -> List[MotivationalTip]:
        """
        Active tips for a context and performance level, highest priority first.

        Tips tagged 'any' match every value. Asking for context 'any' skips
        the context filter entirely.
        """
        query = db.query(MotivationalTip).filter(
            MotivationalTip.is_active == True,
            or_(
                MotivationalTip.performance_level == performance_level,
                MotivationalTip.performance_level == TIP_PERFORMANCE_ANY
            )
        )
        if context != TIP_CONTEXT_ANY:
            query = query.filter(
                or_(
                    MotivationalTip.context == context,
                    MotivationalTip.context == TIP_CONTEXT_ANY
                )
            )
        if tip_type:
            query = query.filter(MotivationalTip.type == tip_type)
        return query.order_by(MotivationalTip.priority.desc(), MotivationalTip.id).all()

    @staticmethod
    def count(db: Session) -> int:
        return db.query(MotivationalTip).count()

    @staticmethod
    def create_many(db: Session, tips: List[MotivationalTip]) -> None:
        db.add_all(tips)
        db.commit()
