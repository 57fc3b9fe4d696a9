"""Goal coordinator: run several projects through engines and route their escalations."""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.config import CountingPolicy
from ..core.task import TaskPriority, generate_task_id
from ..safeguards.escalation import EscalationChain, EscalationRecord
from .engine import WorkflowEngine
from .result import WorkflowResult

logger = logging.getLogger(__name__)


class ProjectStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class Project(BaseModel):
    """One goal handed to an engine, plus what became of it."""

    id: str = Field(default_factory=lambda: generate_task_id().replace("task_", "project_", 1))
    title: str
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    status: ProjectStatus = ProjectStatus.PENDING
    result: Optional[WorkflowResult] = None
    escalation: Optional[EscalationRecord] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None

    def on_escalation_outcome(self, record: EscalationRecord) -> None:
        self.escalation = record
        if record.resolved:
            # Handled by a decision; closed out, but not counted as a success here
            self.status = ProjectStatus.COMPLETED
            self.completed_at = datetime.now(UTC)
        else:
            self.status = ProjectStatus.BLOCKED


class CoordinatorReport(BaseModel):
    """Aggregate outcome of a coordinator run.

    ``completed`` and ``failed`` already reflect the counting policy;
    ``resolved_with_decision`` is always reported on its own as well.
    """

    projects: List[Project] = Field(default_factory=list)
    completed: int = 0
    failed: int = 0
    resolved_with_decision: int = 0
    escalated_to_human: int = 0
    counting_policy: CountingPolicy = CountingPolicy.SEPARATE
    human_escalation_reason: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.projects)

    @property
    def success(self) -> bool:
        return self.total > 0 and self.completed == self.total


EngineFactory = Callable[[Project], WorkflowEngine]


class GoalCoordinator:
    """Runs projects one after another and settles each escalated one.

    Args:
        engine_factory: Builds a fresh engine per project.
        escalation_chain: Receives every escalated project.
        counting_policy: How resolved-with-decision projects are tallied.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        escalation_chain: Optional[EscalationChain] = None,
        counting_policy: CountingPolicy = CountingPolicy.SEPARATE,
    ):
        self.engine_factory = engine_factory
        self.escalation_chain = escalation_chain or EscalationChain()
        self.counting_policy = CountingPolicy(counting_policy)
        self._projects: Dict[str, Project] = {}

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._projects.get(project_id)

    def projects(self) -> List[Project]:
        return list(self._projects.values())

    async def run(self, projects: List[Project]) -> CoordinatorReport:
        report = CoordinatorReport(counting_policy=self.counting_policy)

        for project in projects:
            self._projects[project.id] = project
            report.projects.append(project)
            project.status = ProjectStatus.IN_PROGRESS
            logger.info(f"Starting project {project.id}: {project.title}")

            try:
                engine = self.engine_factory(project)
                result = await engine.execute_goal(project.description, project.priority)
            except Exception as e:
                reason = f'Project "{project.title}" failed with error: {e}'
                logger.error(reason)
                record = await self.escalation_chain.escalate(project, reason)
                self._tally(report, record)
                continue

            project.result = result
            if result.success:
                project.status = ProjectStatus.COMPLETED
                project.completed_at = datetime.now(UTC)
                report.completed += 1
                continue

            reason = result.escalation_reason or f'Project "{project.title}" did not complete'
            errors = [r.result.failure_reason or "" for r in result.all_records if not r.result.success]
            record = await self.escalation_chain.escalate(project, reason, errors)
            self._tally(report, record)

        logger.info(
            f"Coordinator finished: {report.completed} completed, {report.failed} failed, "
            f"{report.resolved_with_decision} resolved with decision, "
            f"{report.escalated_to_human} escalated to human"
        )
        return report

    def _tally(self, report: CoordinatorReport, record: EscalationRecord) -> None:
        if record.forwarded_to_human:
            report.escalated_to_human += 1
            report.failed += 1
            if report.human_escalation_reason is None:
                report.human_escalation_reason = record.human_reason
            return

        report.resolved_with_decision += 1
        if self.counting_policy == CountingPolicy.COUNT_AS_FAILURE:
            report.failed += 1
        elif self.counting_policy == CountingPolicy.COUNT_AS_SUCCESS:
            report.completed += 1
