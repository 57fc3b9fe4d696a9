"""Exception hierarchy.

Worker and planner faults are never raised out of the engine; these types
cover programming errors (illegal lifecycle transitions) and bad input files.
"""

from typing import Optional


class GoalflowError(Exception):
    """Base class for all goalflow errors."""


class InvalidTransitionError(GoalflowError):
    """Raised when a task is asked to make a transition its state machine forbids."""

    def __init__(self, task_id: str, current: str, requested: str):
        self.task_id = task_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Task {task_id} cannot move from '{current}' to '{requested}'"
        )


class ConfigError(GoalflowError):
    """Raised when a configuration file cannot be parsed or validated."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Invalid configuration in {path}: {message}")


class PlanFileError(GoalflowError):
    """Raised when a plan file does not describe a usable breakdown."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        prefix = f"{path}: " if path else ""
        super().__init__(f"{prefix}{message}")
