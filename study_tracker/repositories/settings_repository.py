"""
Settings repository - Data access layer for the engine Settings row.
"""
from sqlalchemy.orm import Session
from study_tracker.models import Settings


class SettingsRepository:
    """Repository for Settings data access"""

    @staticmethod
    def get(db: Session) -> Settings:
        """
        Get settings (creates with defaults if not exists).

        Returns:
            Settings object
        """
        settings = db.query(Settings).first()
        if not settings:
            settings = Settings()
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

    @staticmethod
    def update(db: Session, settings: Settings, values: dict) -> Settings:
        """
        Apply changed fields and persist them.

        Args:
            db: Database session
            settings: Settings row to change
            values: Field name to new value

        Returns:
            Updated settings
        """
        for key, value in values.items():
            setattr(settings, key, value)
        db.commit()
        db.refresh(settings)
        return settings
