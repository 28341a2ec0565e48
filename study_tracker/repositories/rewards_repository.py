"""
Rewards repository - Data access layer for the reward catalog and user rewards.
"""
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_, func

from study_tracker.models import Reward, UserRewards, EarnedReward, PointsLedgerEntry


class RewardRepository:
    """Repository for the Reward catalog"""

    @staticmethod
    def get_active(db: Session) -> List[Reward]:
        """Get the active catalog in display order"""
        return db.query(Reward).filter(
            Reward.is_active == True
        ).order_by(Reward.display_order, Reward.id).all()

    @staticmethod
    def get_codes(db: Session) -> set:
        """All reward codes already in the catalog"""
        return {row[0] for row in db.query(Reward.code).all()}

    @staticmethod
    def create_many(db: Session, rewards: List[Reward]) -> None:
        """Insert several catalog entries at once"""
        db.add_all(rewards)
        db.commit()


class UserRewardsRepository:
    """Repository for UserRewards data access"""

    @staticmethod
    def get_by_user(db: Session, user_id: str) -> Optional[UserRewards]:
        """Get the rewards profile of a user"""
        return db.query(UserRewards).filter(UserRewards.user_id == user_id).first()

    @staticmethod
    def get_or_create(db: Session, user_id: str) -> UserRewards:
        """
        Get the rewards profile of a user, creating it lazily.

        A concurrent create of the same profile loses on the unique user_id
        and re-reads the winner's row.
        """
        user_rewards = UserRewardsRepository.get_by_user(db, user_id)
        if user_rewards:
            return user_rewards

        user_rewards = UserRewards(user_id=user_id)
        db.add(user_rewards)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return UserRewardsRepository.get_by_user(db, user_id)
        db.refresh(user_rewards)
        return user_rewards

    @staticmethod
    def get_all(db: Session) -> List[UserRewards]:
        """Get every rewards profile"""
        return db.query(UserRewards).order_by(UserRewards.id).all()

    @staticmethod
    def get_needing_evaluation(db: Session) -> List[UserRewards]:
        """Profiles whose last reward evaluation failed"""
        return db.query(UserRewards).filter(
            UserRewards.needs_evaluation == True
        ).order_by(UserRewards.id).all()


class EarnedRewardRepository:
    """Repository for earned reward history"""

    @staticmethod
    def get_earned_between(
        db: Session,
        start: datetime,
        end: datetime
    ) -> List[Tuple[int, int, datetime]]:
        """
        Rewards earned in [start, end) across all users.

        Returns:
            List of (user_rewards_id, points_value, earned_at)
        """
        return db.query(
            EarnedReward.user_rewards_id,
            EarnedReward.points_value,
            EarnedReward.earned_at
        ).filter(
            and_(
                EarnedReward.earned_at >= start,
                EarnedReward.earned_at < end
            )
        ).all()


class PointsLedgerRepository:
    """Repository for the points ledger"""

    @staticmethod
    def get_last_entry_times(db: Session) -> dict:
        """Latest ledger timestamp per profile, keyed by user_rewards_id"""
        rows = db.query(
            PointsLedgerEntry.user_rewards_id,
            func.max(PointsLedgerEntry.created_at)
        ).group_by(PointsLedgerEntry.user_rewards_id).all()
        return {user_rewards_id: last for user_rewards_id, last in rows}

    @staticmethod
    def sum_for_user(db: Session, user_rewards_id: int) -> int:
        """Sum of every ledger amount of a profile"""
        total = db.query(func.sum(PointsLedgerEntry.amount)).filter(
            PointsLedgerEntry.user_rewards_id == user_rewards_id
        ).scalar()
        return int(total or 0)

    @staticmethod
    def get_for_user(db: Session, user_rewards_id: int, limit: int = 100) -> List[PointsLedgerEntry]:
        """Most recent ledger entries of a profile"""
        return db.query(PointsLedgerEntry).filter(
            PointsLedgerEntry.user_rewards_id == user_rewards_id
        ).order_by(PointsLedgerEntry.id.desc()).limit(limit).all()
