"""Task model and its lifecycle state machine."""

import secrets
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..errors import InvalidTransitionError

DEFAULT_MAX_ATTEMPTS = 3

# Context key the engine uses to hand corrective guidance to the next attempt
FEEDBACK_CONTEXT_KEY = "previous_attempt_feedback"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class TaskStatus(str, Enum):
    """Task status values.

    pending -> in_progress -> completed | failed | blocked
    failed/blocked -> in_progress while attempts remain.
    """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


class TaskPriority(str, Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskType(str, Enum):
    """Kinds of work a task can describe."""
    IMPLEMENT = "implement"
    TEST = "test"
    FIX = "fix"
    REVIEW = "review"
    PLAN = "plan"


class TaskResult(BaseModel):
    """Outcome reported by a worker for one dispatch."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    files_modified: list[str] = Field(default_factory=list)
    tests_run: Optional[int] = None
    tests_passed: Optional[int] = None

    @property
    def failure_reason(self) -> Optional[str]:
        """Best available description of why the dispatch failed."""
        if self.success:
            return None
        return self.error or self.output or None


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_task_id() -> str:
    """Generate an opaque, unique task id: task_<time>_<random>."""
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"task_{timestamp}_{random_part}"


class Task(BaseModel):
    """A unit of work owned by a single engine instance.

    Workers receive copies; every status change goes through the mark_*
    methods so the lifecycle rules hold regardless of caller.
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=generate_task_id)
    type: TaskType = TaskType.IMPLEMENT
    title: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    created_by: str
    assigned_to: Optional[str] = None
    parent_task_id: Optional[str] = None
    subtask_ids: list[str] = Field(default_factory=list)
    attempts: int = 0
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    context: dict[str, Any] = Field(default_factory=dict)
    result: Optional[TaskResult] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    @property
    def last_error(self) -> Optional[str]:
        return self.result.failure_reason if self.result else None

    def _transition(self, new_status: TaskStatus, allowed_from: tuple) -> None:
        if self.status not in allowed_from:
            raise InvalidTransitionError(self.id, str(_value(self.status)), new_status.value)
        self.status = new_status
        self.updated_at = datetime.now(UTC)

    def mark_in_progress(self) -> None:
        """Start (or restart) work on the task.

        A retry from failed/blocked is only legal while attempts remain.
        """
        if self.status in (TaskStatus.FAILED, TaskStatus.BLOCKED) and not can_retry(self):
            raise InvalidTransitionError(self.id, str(_value(self.status)), TaskStatus.IN_PROGRESS.value)
        self._transition(
            TaskStatus.IN_PROGRESS,
            (TaskStatus.PENDING, TaskStatus.FAILED, TaskStatus.BLOCKED),
        )

    def mark_completed(self, result: Optional[TaskResult] = None) -> None:
        """Mark task as completed. Completed is absorbing."""
        self._transition(TaskStatus.COMPLETED, (TaskStatus.IN_PROGRESS,))
        if result is not None:
            self.result = result

    def mark_failed(self, result: Optional[TaskResult] = None) -> None:
        """Mark task as failed without touching the attempt counter."""
        self._transition(TaskStatus.FAILED, (TaskStatus.IN_PROGRESS, TaskStatus.PENDING))
        if result is not None:
            self.result = result

    def mark_blocked(self, reason: Optional[str] = None) -> None:
        """Block the task pending outside intervention."""
        self._transition(
            TaskStatus.BLOCKED,
            (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.BLOCKED),
        )
        if reason:
            self.context["blocked_reason"] = reason

    def record_failed_attempt(self, result: TaskResult) -> bool:
        """Record a failed dispatch and return whether another attempt is allowed."""
        self.mark_failed(result)
        self.attempts += 1
        return can_retry(self)

    def prepare_retry(self, feedback: Optional[str] = None) -> None:
        """Attach corrective feedback and move back to in_progress for another attempt."""
        if feedback:
            self.context[FEEDBACK_CONTEXT_KEY] = feedback
        self.mark_in_progress()

    def reset_to_pending(self) -> None:
        """Return a non-completed task to the queue with a fresh attempt budget."""
        self._transition(
            TaskStatus.PENDING,
            (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.BLOCKED),
        )
        self.attempts = 0


def _value(status) -> str:
    return status.value if hasattr(status, "value") else status


def create_task(
    *,
    title: str,
    description: str,
    created_by: str,
    type: TaskType = TaskType.IMPLEMENT,
    priority: TaskPriority = TaskPriority.MEDIUM,
    parent_task_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Task:
    """Create a new pending task with sensible defaults."""
    return Task(
        type=type,
        title=title,
        description=description,
        created_by=created_by,
        priority=priority,
        parent_task_id=parent_task_id,
        assigned_to=assigned_to,
        context=dict(context or {}),
        max_attempts=max_attempts,
    )


def can_retry(task: Task) -> bool:
    """A task can be retried while it has attempts left and is failed or blocked."""
    return task.attempts < task.max_attempts and task.status in (
        TaskStatus.FAILED,
        TaskStatus.BLOCKED,
    )


def is_terminal(task: Task) -> bool:
    """Completed tasks and tasks that exhausted their attempts never run again."""
    if task.status == TaskStatus.COMPLETED:
        return True
    return task.attempts >= task.max_attempts
