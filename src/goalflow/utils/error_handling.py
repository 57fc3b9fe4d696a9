"""Helpers for best-effort calls whose failures must be logged, not raised."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def log_and_ignore(
    error: BaseException,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """Log ``message: error`` and carry on.

    For listener, notifier and feedback faults that must not change a run's outcome.
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")


class ErrorContext:
    """
    Context manager that logs a failed side effect and optionally suppresses it.

    Usage:
        with ErrorContext("appending audit log", raise_on_error=False):
            store.append_page(path, content)

    Only ``Exception`` subclasses are ever suppressed; cancellation and
    interpreter exits always propagate.
    """

    def __init__(
        self,
        operation: str,
        *,
        raise_on_error: bool = True,
        logger_instance: Optional[logging.Logger] = None,
        log_level: int = logging.ERROR,
    ):
        self.operation = operation
        self.raise_on_error = raise_on_error
        self.logger = logger_instance or logger
        self.log_level = log_level
        self.error: Optional[Exception] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None or not issubclass(exc_type, Exception):
            return False
        self.error = exc_val
        self.logger.log(self.log_level, f"Error during {self.operation}: {exc_val}")
        return not self.raise_on_error

    @property
    def failed(self) -> bool:
        return self.error is not None
