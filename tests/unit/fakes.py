"""Fake collaborators shared by the unit tests."""

import asyncio
from typing import Any, List, Optional, Sequence, Union

from goalflow.core.breakdown import Breakdown, Subtask
from goalflow.core.contracts import (
    CoordinatorAuthority,
    CoordinatorDecision,
    FeedbackProvider,
    NoteStore,
    Planner,
    Worker,
    WorkflowListener,
)
from goalflow.core.task import Task, TaskResult, create_task

Outcome = Union[TaskResult, Exception]


def make_subtask(role: str, title: str, **kwargs) -> Subtask:
    task = create_task(title=title, description=kwargs.pop("description", title), created_by="test", **kwargs)
    return Subtask(role=role, task=task)


def make_breakdown(*specs, order: Optional[List[str]] = None) -> Breakdown:
    """Build a breakdown from (role, title) pairs."""
    return Breakdown(subtasks=[make_subtask(role, title) for role, title in specs], order=order)


def ok(output: str = "done") -> TaskResult:
    return TaskResult(success=True, output=output)


def fail(error: str) -> TaskResult:
    return TaskResult(success=False, error=error)


class StaticPlanner(Planner):
    """Returns a fixed breakdown (or raises) and records the goals it saw."""

    def __init__(self, breakdown: Any = None, error: Optional[Exception] = None):
        self.breakdown = breakdown
        self.error = error
        self.goals: List[Task] = []
        self.roles_seen: List[List[str]] = []

    async def plan(self, goal: Task, roles: List[str]) -> Breakdown:
        self.goals.append(goal)
        self.roles_seen.append(roles)
        if self.error is not None:
            raise self.error
        return self.breakdown if self.breakdown is not None else Breakdown()


class ScriptedWorker(Worker):
    """Plays back outcomes in order; the last one repeats once the script runs out."""

    def __init__(self, outcomes: Sequence[Outcome] = (), role: str = "dev", delay: float = 0.0):
        self.outcomes = list(outcomes) or [ok()]
        self.role = role
        self.delay = delay
        self.received: List[Task] = []

    @property
    def calls(self) -> int:
        return len(self.received)

    async def execute(self, task: Task) -> TaskResult:
        self.received.append(task)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes[min(len(self.received), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SequenceLog:
    """Shared log so several workers can record a global dispatch order."""

    def __init__(self):
        self.entries: List[str] = []


class LoggingWorker(Worker):
    def __init__(self, role: str, log: SequenceLog):
        self.role = role
        self.log = log

    async def execute(self, task: Task) -> TaskResult:
        self.log.entries.append(f"{self.role}:{task.title}")
        return ok()


class RecordingListener(WorkflowListener):
    def __init__(self):
        self.progress: List[str] = []
        self.escalations: List[str] = []

    def on_progress(self, message: str, task: Optional[Task] = None) -> None:
        self.progress.append(message)

    def on_escalation(self, reason: str, task: Task) -> None:
        self.escalations.append(reason)


class RecordingNotifier:
    def __init__(self):
        self.calls: List[tuple] = []

    def notify(self, reason: str, unit: Any) -> None:
        self.calls.append((reason, unit))


class AsyncRecordingNotifier:
    def __init__(self):
        self.calls: List[tuple] = []

    async def notify(self, reason: str, unit: Any) -> None:
        await asyncio.sleep(0)
        self.calls.append((reason, unit))


class FaultyNotifier:
    def notify(self, reason: str, unit: Any) -> None:
        raise RuntimeError("pager offline")


class FakeCoordinator(CoordinatorAuthority):
    def __init__(self, decision: Optional[CoordinatorDecision] = None, error: Optional[Exception] = None):
        self.decision = decision
        self.error = error
        self.calls: List[tuple] = []

    async def decide(self, unit: Any, reason: str) -> CoordinatorDecision:
        self.calls.append((unit, reason))
        if self.error is not None:
            raise self.error
        return self.decision or CoordinatorDecision(escalate_to_human=True)


class StaticFeedback(FeedbackProvider):
    def __init__(self, text: Optional[str] = "try again", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: List[int] = []

    async def feedback(self, task: Task, result: TaskResult, attempt: int) -> Optional[str]:
        self.calls.append(attempt)
        if self.error is not None:
            raise self.error
        return self.text


class InMemoryNoteStore(NoteStore):
    def __init__(self, fail_writes: bool = False):
        self.pages = {}
        self.fail_writes = fail_writes

    def read_page(self, path: str) -> Optional[str]:
        return self.pages.get(path)

    def append_page(self, path: str, content: str) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        existing = self.pages.get(path)
        self.pages[path] = content if existing is None else existing.rstrip() + "\n\n" + content
