"""
Motivational tip service.
Picks a tip for a context with probability proportional to its priority.
"""
import logging
import random
from typing import Optional

from sqlalchemy.orm import Session

from study_tracker.models import MotivationalTip
from study_tracker.repositories.tip_repository import TipRepository
from study_tracker.services.selection import weighted_select
from study_tracker.services.date_service import DateService
from study_tracker.seed_data import DEFAULT_TIPS
from study_tracker.constants import TIP_CONTEXT_ANY, TIP_PERFORMANCE_ANY, DEFAULT_TIP

logger = logging.getLogger("study_tracker.tips")


class TipService:
    """Service for motivational tips"""

    def __init__(self, db: Session):
        self.db = db
        self.tip_repo = TipRepository()

    def get_random_tip(
        self,
        context: str = TIP_CONTEXT_ANY,
        performance_level: str = TIP_PERFORMANCE_ANY,
        tip_type: Optional[str] = None,
        rng: Optional[random.Random] = None
    ) -> dict:
        """
        Weighted random tip for a context.

        Falls back to a default encouragement when no tip matches.
        """
        tips = self.tip_repo.get_matching(self.db, context, performance_level, tip_type)
        if not tips:
            return dict(DEFAULT_TIP)

        tip = tips[weighted_select([t.priority for t in tips], rng)]
        tip.display_count = (tip.display_count or 0) + 1
        self.db.commit()
        return {"content": tip.content, "type": tip.type, "category": tip.category}


def seed_default_tips(db: Session) -> int:
    """Insert the starter tips into an empty table"""
    if TipRepository.count(db) > 0:
        return 0
    now = DateService.utc_now()
    TipRepository.create_many(db, [MotivationalTip(created_at=now, **data) for data in DEFAULT_TIPS])
    logger.info(f"Seeded {len(DEFAULT_TIPS)} motivational tips")
    return len(DEFAULT_TIPS)
