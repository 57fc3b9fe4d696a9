"""Structured outcome of a goal run."""

from datetime import UTC, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.breakdown import Breakdown
from ..core.task import Task, TaskResult


class DispatchRecord(BaseModel):
    """One worker dispatch: the task as sent, what came back, and which attempt it was."""

    task: Task
    result: TaskResult
    role: str
    attempt: int  # 1-based
    sequence: int  # 1-based position across the whole run
    fault: bool = False  # Worker raised instead of returning


class WorkflowResult(BaseModel):
    """Everything a caller needs to audit a goal run."""

    success: bool
    task: Task
    breakdown: Optional[Breakdown] = None
    results: Dict[str, List[DispatchRecord]] = Field(default_factory=dict)
    iterations: int = 0
    escalated: bool = False
    escalation_reason: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    elapsed_seconds: float = 0.0

    def add_record(self, record: DispatchRecord) -> None:
        self.results.setdefault(record.role, []).append(record)

    def results_for(self, role: str) -> List[DispatchRecord]:
        return list(self.results.get(role, []))

    @property
    def all_records(self) -> List[DispatchRecord]:
        """Every dispatch across roles, in the order it happened."""
        records = [r for role_records in self.results.values() for r in role_records]
        return sorted(records, key=lambda r: r.sequence)

    @property
    def dispatch_count(self) -> int:
        return sum(len(v) for v in self.results.values())
