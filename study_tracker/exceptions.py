"""
Custom exceptions for the study tracker engine.
Provides specific exception types so callers can tell not-found, invalid state,
conflict and validation failures apart.
"""


class StudyTrackerException(Exception):
    """Base exception for the study tracker engine"""
    pass


class NotFoundException(StudyTrackerException):
    """Base class for unknown goal/user/reward ids"""
    pass


class GoalNotFoundException(NotFoundException):
    """Raised when a goal is not found"""
    def __init__(self, goal_id: int):
        self.goal_id = goal_id
        super().__init__(f"Goal with ID {goal_id} not found")


class SubTaskNotFoundException(NotFoundException):
    """Raised when a sub-task is not part of the goal"""
    def __init__(self, goal_id: int, subtask_id: int):
        self.goal_id = goal_id
        self.subtask_id = subtask_id
        super().__init__(f"Sub-task {subtask_id} not found on goal {goal_id}")


class UserRewardsNotFoundException(NotFoundException):
    """Raised when a user has no rewards profile"""
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Rewards profile for user {user_id} not found")


class InvalidStateException(StudyTrackerException):
    """Raised when an operation is not allowed in the current state"""
    def __init__(self, message: str):
        super().__init__(f"Invalid state: {message}")


class ConflictException(StudyTrackerException):
    """Raised when concurrent-update retries are exhausted"""
    def __init__(self, entity: str, entity_id, attempts: int):
        self.entity = entity
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent update conflict on {entity} {entity_id} after {attempts} attempts"
        )


class ValidationException(StudyTrackerException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")
