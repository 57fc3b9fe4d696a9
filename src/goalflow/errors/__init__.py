"""Exception types raised by goalflow."""

from .exceptions import (
    ConfigError,
    GoalflowError,
    InvalidTransitionError,
    PlanFileError,
)

__all__ = ["GoalflowError", "InvalidTransitionError", "ConfigError", "PlanFileError"]
