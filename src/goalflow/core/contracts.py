"""Collaborator interfaces the engine and escalation chain are written against.

Planning and execution back-ends (model-driven or otherwise) live outside the
core and plug in through these ABCs. Any free-text handling belongs in the
implementation, never in the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, runtime_checkable

from .breakdown import Breakdown
from .task import Task, TaskResult


class Planner(ABC):
    """Turns a goal into an ordered breakdown of role-tagged subtasks."""

    @abstractmethod
    async def plan(self, goal: Task, roles: List[str]) -> Breakdown:
        """
        Plan the goal.

        Args:
            goal: The goal-level task (title/description hold the goal text).
            roles: Worker roles available to execute subtasks.

        Returns:
            A Breakdown. An empty one is allowed; the engine fills the gap.
        """
        pass


class Worker(ABC):
    """Executes a single subtask.

    Implementations receive a copy of the engine's task and must report the
    outcome through the returned TaskResult. Raising is treated as a transport
    fault and counted like a logical failure. Timeouts are the worker's
    concern; a worker that gives up should raise or return a failure.
    """

    role: str = "dev"

    @abstractmethod
    async def execute(self, task: Task) -> TaskResult:
        pass


class FeedbackProvider(ABC):
    """Produces short corrective guidance for the next attempt of a failed subtask."""

    @abstractmethod
    async def feedback(self, task: Task, result: TaskResult, attempt: int) -> Optional[str]:
        pass


@dataclass
class CoordinatorDecision:
    """A coordinator's answer to an escalation."""
    guidance: Optional[str] = None
    escalate_to_human: bool = False
    reason: Optional[str] = None


class CoordinatorAuthority(ABC):
    """First stop of the escalation chain: may unblock a unit with a decision."""

    @abstractmethod
    async def decide(self, unit: Any, reason: str) -> CoordinatorDecision:
        pass


@runtime_checkable
class HumanNotifier(Protocol):
    """Receives escalations that need human judgement. Must return promptly."""

    def notify(self, reason: str, unit: Any) -> None:
        ...


class WorkflowListener:
    """Observer for engine progress. Override the hooks you care about."""

    def on_progress(self, message: str, task: Optional[Task] = None) -> None:
        pass

    def on_escalation(self, reason: str, task: Task) -> None:
        pass


class NoteStore(ABC):
    """Hierarchical page store used for audit logs and design notes."""

    @abstractmethod
    def read_page(self, path: str) -> Optional[str]:
        pass

    @abstractmethod
    def append_page(self, path: str, content: str) -> None:
        pass
