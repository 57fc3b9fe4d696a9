"""Per-run workflow metrics.

Each engine gets its own collector (or shares one the caller passes in), so
there is no process-wide registry to reset between runs or tests.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict


@dataclass
class DispatchMetrics:
    """Worker dispatch statistics for one role."""
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    fault_count: int = 0  # Subset of failures where the worker raised
    total_latency_ms: float = 0.0

    @property
    def average_latency_ms(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.total_latency_ms / self.execution_count


@dataclass
class WorkflowMetrics:
    """Counters for goals, dispatches, retries and escalations."""
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    goals_started: int = 0
    goals_succeeded: int = 0
    goals_escalated: int = 0
    retries: int = 0
    planning_fallbacks: int = 0
    roles: Dict[str, DispatchMetrics] = field(default_factory=dict)

    def record_dispatch(self, role: str, success: bool, latency_ms: float, fault: bool = False) -> None:
        stats = self.roles.setdefault(role, DispatchMetrics())
        stats.execution_count += 1
        stats.total_latency_ms += latency_ms
        if success:
            stats.success_count += 1
        else:
            stats.failure_count += 1
            if fault:
                stats.fault_count += 1

    def record_goal(self, success: bool, escalated: bool) -> None:
        if success:
            self.goals_succeeded += 1
        if escalated:
            self.goals_escalated += 1

    @property
    def total_dispatches(self) -> int:
        return sum(s.execution_count for s in self.roles.values())

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view suitable for JSON output."""
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime_seconds": (datetime.now(UTC) - self.started_at).total_seconds(),
            "goals_started": self.goals_started,
            "goals_succeeded": self.goals_succeeded,
            "goals_escalated": self.goals_escalated,
            "retries": self.retries,
            "planning_fallbacks": self.planning_fallbacks,
            "total_dispatches": self.total_dispatches,
            "roles": {
                role: {**asdict(stats), "average_latency_ms": stats.average_latency_ms}
                for role, stats in self.roles.items()
            },
        }

    def reset(self) -> None:
        fresh = WorkflowMetrics()
        self.__dict__.update(fresh.__dict__)
