"""Planner output: role-tagged subtasks plus an explicit execution order."""

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from .task import Task

logger = logging.getLogger(__name__)


class OrderEntry(BaseModel):
    """Reference to the index-th subtask declared for a role."""

    role: str
    index: int = Field(ge=0)

    @classmethod
    def parse(cls, ref: str) -> "OrderEntry":
        """Parse a ``role:index`` reference."""
        role, sep, index = ref.partition(":")
        if not sep or not role.strip():
            raise ValueError(f"Order reference must look like 'role:index', got '{ref}'")
        try:
            return cls(role=role.strip(), index=int(index))
        except ValueError as e:
            raise ValueError(f"Invalid order reference '{ref}': {e}") from e

    def __str__(self) -> str:
        return f"{self.role}:{self.index}"


class Subtask(BaseModel):
    """A subtask bound to the worker role that should execute it."""

    role: str
    task: Task


class Breakdown(BaseModel):
    """Ordered subtasks and the order they must run in.

    Later subtasks may consume artifacts of earlier ones, so the engine follows
    ``order`` rather than declaration order.
    """

    subtasks: List[Subtask] = Field(default_factory=list)
    order: Optional[List[OrderEntry]] = None

    @field_validator("order", mode="before")
    @classmethod
    def coerce_order_refs(cls, value: Any) -> Any:
        """Accept ``"dev:0"`` strings alongside dicts and OrderEntry objects."""
        if value is None:
            return None
        return [OrderEntry.parse(v) if isinstance(v, str) else v for v in value]

    @property
    def is_empty(self) -> bool:
        return not self.subtasks

    def tasks_for_role(self, role: str) -> List[Task]:
        """Tasks declared for a role, in declaration order."""
        return [s.task for s in self.subtasks if s.role == role]

    def roles(self) -> List[str]:
        seen: List[str] = []
        for subtask in self.subtasks:
            if subtask.role not in seen:
                seen.append(subtask.role)
        return seen

    def declaration_order(self) -> List[OrderEntry]:
        counters: dict[str, int] = {}
        entries = []
        for subtask in self.subtasks:
            index = counters.get(subtask.role, 0)
            entries.append(OrderEntry(role=subtask.role, index=index))
            counters[subtask.role] = index + 1
        return entries

    def resolve(self, entry: OrderEntry) -> Optional[Task]:
        tasks = self.tasks_for_role(entry.role)
        if entry.index >= len(tasks):
            return None
        return tasks[entry.index]

    def execution_plan(self) -> List[Subtask]:
        """Resolve the execution order into concrete subtasks.

        Missing order defaults to declaration order. References that point at
        nothing are dropped with a warning; if none survive, declaration order
        is used so every declared subtask still runs.
        """
        if not self.order:
            return list(self.subtasks)

        plan: List[Subtask] = []
        seen_ids: set[str] = set()
        for entry in self.order:
            task = self.resolve(entry)
            if task is None:
                logger.warning(f"Ignoring order entry {entry}: no such subtask in breakdown")
                continue
            if task.id in seen_ids:
                logger.warning(f"Ignoring duplicate order entry {entry}")
                continue
            seen_ids.add(task.id)
            plan.append(Subtask(role=entry.role, task=task))

        if not plan:
            logger.warning("Breakdown order had no usable entries, falling back to declaration order")
            return list(self.subtasks)
        return plan

    def add_subtask(self, role: str, task: Task) -> OrderEntry:
        """Append a subtask and, when an explicit order exists, schedule it last."""
        index = len(self.tasks_for_role(role))
        self.subtasks.append(Subtask(role=role, task=task))
        entry = OrderEntry(role=role, index=index)
        if self.order is not None:
            self.order.append(entry)
        return entry
