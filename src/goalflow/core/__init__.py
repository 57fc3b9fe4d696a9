"""Core models, contracts and configuration."""

from .task import Task, TaskPriority, TaskResult, TaskStatus, TaskType, create_task
from .breakdown import Breakdown, OrderEntry, Subtask
from .config import GoalflowConfig, load_config
from .contracts import (
    CoordinatorAuthority,
    CoordinatorDecision,
    FeedbackProvider,
    HumanNotifier,
    NoteStore,
    Planner,
    Worker,
    WorkflowListener,
)
from .metrics import WorkflowMetrics

__all__ = [
    "Task",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "TaskType",
    "create_task",
    "Breakdown",
    "OrderEntry",
    "Subtask",
    "GoalflowConfig",
    "load_config",
    "CoordinatorAuthority",
    "CoordinatorDecision",
    "FeedbackProvider",
    "HumanNotifier",
    "NoteStore",
    "Planner",
    "Worker",
    "WorkflowListener",
    "WorkflowMetrics",
]
