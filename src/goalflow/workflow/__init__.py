"""Goal execution: engine, results and the multi-project coordinator."""

from .engine import WorkflowEngine, format_audit_entry
from .result import DispatchRecord, WorkflowResult
from .coordinator import CoordinatorReport, GoalCoordinator, Project, ProjectStatus

__all__ = [
    "WorkflowEngine",
    "format_audit_entry",
    "DispatchRecord",
    "WorkflowResult",
    "CoordinatorReport",
    "GoalCoordinator",
    "Project",
    "ProjectStatus",
]
