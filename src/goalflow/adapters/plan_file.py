"""Planner that reads a prepared breakdown from a YAML plan file.

Plan file layout::

    subtasks:
      - role: dev
        title: Build the API
        description: Implement the endpoints
        context:
          command: make api
      - role: qa
        title: Test the API
        context:
          command: make test
    order: ["dev:0", "qa:0"]   # optional
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from ..core.breakdown import Breakdown, Subtask
from ..core.contracts import Planner
from ..core.task import DEFAULT_MAX_ATTEMPTS, Task, TaskPriority, TaskType, create_task
from ..errors import PlanFileError

logger = logging.getLogger(__name__)

PLANNER_NAME = "PlanFilePlanner"


def load_plan(
    path: Path,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    priority: TaskPriority = TaskPriority.MEDIUM,
    parent_task_id: Optional[str] = None,
) -> Breakdown:
    """Parse a plan file into a Breakdown. Raises PlanFileError on bad input."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise PlanFileError("plan file not found", str(path)) from e
    except yaml.YAMLError as e:
        raise PlanFileError(f"YAML parse error: {e}", str(path)) from e

    if not isinstance(data, dict):
        raise PlanFileError("top level must be a mapping", str(path))

    entries = data.get("subtasks") or []
    if not isinstance(entries, list):
        raise PlanFileError("'subtasks' must be a list", str(path))

    subtasks: List[Subtask] = []
    for i, entry in enumerate(entries):
        subtasks.append(Subtask(
            role=_require(entry, "role", i, path),
            task=_build_task(entry, i, path, max_attempts, priority, parent_task_id),
        ))

    try:
        return Breakdown(subtasks=subtasks, order=data.get("order"))
    except (ValidationError, ValueError) as e:
        raise PlanFileError(f"invalid order: {e}", str(path)) from e


def _require(entry: Any, key: str, index: int, path: Path) -> str:
    if not isinstance(entry, dict):
        raise PlanFileError(f"subtask {index} must be a mapping", str(path))
    value = entry.get(key)
    if not value or not isinstance(value, str):
        raise PlanFileError(f"subtask {index} is missing '{key}'", str(path))
    return value


def _build_task(
    entry: Dict[str, Any],
    index: int,
    path: Path,
    max_attempts: int,
    priority: TaskPriority,
    parent_task_id: Optional[str],
) -> Task:
    title = _require(entry, "title", index, path)
    try:
        return create_task(
            type=TaskType(entry.get("type", TaskType.IMPLEMENT.value)),
            title=title,
            description=entry.get("description") or title,
            created_by=PLANNER_NAME,
            priority=priority,
            parent_task_id=parent_task_id,
            assigned_to=entry["role"],
            context=entry.get("context") or {},
            max_attempts=int(entry.get("max_attempts", max_attempts)),
        )
    except (ValidationError, ValueError, TypeError) as e:
        raise PlanFileError(f"subtask {index} ({title}): {e}", str(path)) from e


class PlanFilePlanner(Planner):
    """Serves the breakdown stored in a plan file, whatever the goal text says."""

    def __init__(self, path: Path, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.path = Path(path)
        self.max_attempts = max_attempts

    async def plan(self, goal: Task, roles: List[str]) -> Breakdown:
        breakdown = load_plan(
            self.path,
            max_attempts=self.max_attempts,
            priority=goal.priority,
            parent_task_id=goal.id,
        )
        unknown = [r for r in breakdown.roles() if r not in roles]
        if unknown:
            logger.warning(f"Plan {self.path} uses roles outside the catalogue: {unknown}")
        logger.info(f"Loaded {len(breakdown.subtasks)} subtasks from {self.path}")
        return breakdown
