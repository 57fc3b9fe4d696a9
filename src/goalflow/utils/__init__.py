"""Shared utility functions."""

from .atomic_io import atomic_append_text, atomic_write_text
from .error_handling import ErrorContext, log_and_ignore
from .subprocess_utils import CommandFailedError, CommandOutcome, run_command

__all__ = [
    # Atomic I/O
    "atomic_write_text",
    "atomic_append_text",
    # Error handling
    "log_and_ignore",
    "ErrorContext",
    # Commands
    "CommandFailedError",
    "CommandOutcome",
    "run_command",
]
