"""Logging with goal/task context and console-friendly formatting."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class GoalLogFormatter(logging.Formatter):
    """Formatter that prefixes records with the run name and goal/task context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, run_name: str, use_colors: bool = True):
        super().__init__()
        self.run_name = run_name
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        context = ""
        if hasattr(record, "goal_id"):
            context += f"[{record.goal_id[:14]}] "
        if hasattr(record, "task_id"):
            context += f"[{record.task_id[:14]}] "
        if hasattr(record, "phase"):
            context += f"[{record.phase}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        line = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"[{self.run_name}] {context}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps goal/task/phase context onto every record."""

    def __init__(self, logger: logging.Logger, run_name: str):
        super().__init__(logger, {})
        self.run_name = run_name
        self.current_goal_id: Optional[str] = None
        self.current_task_id: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_context(
        self,
        goal_id: Optional[str] = None,
        task_id: Optional[str] = None,
        phase: Optional[str] = None,
    ):
        """Set goal, task or phase context for subsequent log lines."""
        if goal_id:
            self.current_goal_id = goal_id
        if task_id:
            self.current_task_id = task_id
        if phase is not None:  # Allow clearing phase with None
            self.current_phase = phase

    def clear_task_context(self):
        """Drop task and phase context, keeping the goal."""
        self.current_task_id = None
        self.current_phase = None

    def clear_context(self):
        """Clear all context."""
        self.current_goal_id = None
        self.clear_task_context()

    def process(self, msg, kwargs):
        """Attach the current context to the record as extra fields."""
        extra = kwargs.get("extra", {})
        if self.current_goal_id:
            extra["goal_id"] = self.current_goal_id
        if self.current_task_id:
            extra["task_id"] = self.current_task_id
        if self.current_phase:
            extra["phase"] = self.current_phase
        kwargs["extra"] = extra
        return msg, kwargs

    def task_started(self, task_id: str, title: str, role: str):
        """Log the start of a dispatch and switch context to that subtask."""
        self.set_context(task_id=task_id, phase=role)
        self.info(f"📋 Dispatching to {role}: {title}")

    def task_completed(self, duration_seconds: float):
        """Log a successful dispatch and drop the task context."""
        self.info(f"✅ Subtask completed in {duration_seconds:.1f}s")
        self.clear_task_context()

    def task_failed(self, error: str, attempt: int, max_attempts: int):
        """Log a failed attempt with its position on the attempt budget."""
        self.warning(f"❌ Subtask failed (attempt {attempt}/{max_attempts}): {error}")

    def progress(self, message: str):
        """Log a progress update."""
        self.info(f"⏳ {message}")


def setup_rich_logging(
    run_name: str,
    workspace: Path,
    log_level: str = "INFO",
    use_file: bool = False,
    use_json: bool = False,
) -> ContextLogger:
    """
    Configure a per-process logger for a goalflow run.

    Args:
        run_name: Name shown on every line (e.g. "goalflow")
        workspace: Directory whose logs/ folder receives the log file
        log_level: DEBUG, INFO, WARNING or ERROR
        use_file: Also write plain-text logs to <workspace>/logs/<run_name>.log
        use_json: Emit one JSON object per line instead of the human format

    Returns:
        ContextLogger wrapping the configured logger
    """
    # PID keeps concurrent runs in one interpreter family from sharing handlers
    logger = logging.getLogger(f"{run_name}-{os.getpid()}")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if use_json:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","run":"%(run)s","level":"%(levelname)s",'
            '"message":"%(message)s","module":"%(module)s"}',
            defaults={"run": run_name},
        )
    else:
        formatter = GoalLogFormatter(run_name, use_colors=sys.stderr.isatty())

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if use_file:
        log_dir = workspace / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / f"{run_name}.log")
        file_handler.setFormatter(GoalLogFormatter(run_name, use_colors=False))
        logger.addHandler(file_handler)

    return ContextLogger(logger, run_name)
