"""
Optimistic concurrency helper.

Goals and user reward profiles carry a version column that SQLAlchemy checks
on every UPDATE. A write against a stale version raises StaleDataError on
commit; the unit of work is then rolled back and replayed with exponential
backoff until the retry limit is reached.
"""
import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from study_tracker.exceptions import ConflictException

logger = logging.getLogger("study_tracker.concurrency")

T = TypeVar("T")


def run_with_retry(
    db: Session,
    operation: Callable[[], T],
    entity: str,
    entity_id,
    max_retries: int,
    backoff_ms: int,
    retry_on: tuple = (StaleDataError,)
) -> T:
    """
    Run operation and commit it, replaying on version conflicts.

    The operation must re-load whatever it mutates, since a rollback expires
    every instance in the session.

    Args:
        db: Database session
        operation: Unit of work; its return value is passed through
        entity: Entity name for the conflict error
        entity_id: Entity id for the conflict error
        max_retries: Replays allowed after the first attempt
        backoff_ms: Base delay, doubled on every replay
        retry_on: Exception types treated as conflicts

    Raises:
        ConflictException: When every attempt conflicted
    """
    attempt = 0
    while True:
        try:
            result = operation()
            db.commit()
            return result
        except retry_on as e:
            db.rollback()
            if attempt >= max_retries:
                logger.warning(
                    f"Giving up on {entity} {entity_id} after {attempt + 1} attempts: {e}"
                )
                raise ConflictException(entity, entity_id, attempt + 1)
            delay = backoff_ms * (2 ** attempt) / 1000.0
            logger.info(f"Version conflict on {entity} {entity_id}, retrying in {delay:.3f}s")
            time.sleep(delay)
            attempt += 1
        except Exception:
            db.rollback()
            raise
