"""Workflow engine: plan a goal, dispatch subtasks in order, retry, escalate.

One engine instance owns the tasks it creates. The run is a single coroutine
that awaits one worker dispatch at a time; the declared execution order
encodes producer/consumer dependencies, so nothing is dispatched speculatively.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Mapping, Optional

from ..core.breakdown import Breakdown, Subtask
from ..core.config import EngineConfig
from ..core.contracts import FeedbackProvider, NoteStore, Planner, Worker, WorkflowListener
from ..core.metrics import WorkflowMetrics
from ..core.task import (
    Task,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
    create_task,
    is_terminal,
)
from ..safeguards.retry_ladder import ESCALATE, AttemptOutcome, RetryLadder
from ..tools.permissions import AGENT_ROLES
from ..utils.error_handling import ErrorContext, log_and_ignore
from ..utils.rich_logging import ContextLogger
from .result import DispatchRecord, WorkflowResult

logger = logging.getLogger(__name__)

# Ladder kind used for plain subtask re-dispatch
DISPATCH_ACTION = "dispatch"

GOAL_CREATOR = "User"
ENGINE_CREATOR = "WorkflowEngine"


class _Escalation(Exception):
    """Internal signal: stop the run and escalate the goal with this reason."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class WorkflowEngine:
    """Drives a goal from planner output to a WorkflowResult.

    Args:
        planner: Produces the breakdown for a goal.
        workers: Worker per role. The default role's worker also handles
            subtasks tagged with a role nobody registered.
        config: Engine limits (iteration budget, attempts, default role, timeout).
        roles: Role catalogue passed to the planner.
        feedback_provider: Optional source of corrective guidance between attempts.
        listeners: Progress/escalation observers.
        note_store: Optional audit-log sink; failures there are logged and ignored.
        metrics: Collector to update; a fresh one is created when omitted.
        engine_logger: Logger adapter carrying goal/task context.
    """

    def __init__(
        self,
        planner: Planner,
        workers: Mapping[str, Worker],
        *,
        config: Optional[EngineConfig] = None,
        roles: Optional[Iterable[str]] = None,
        feedback_provider: Optional[FeedbackProvider] = None,
        listeners: Optional[Iterable[WorkflowListener]] = None,
        note_store: Optional[NoteStore] = None,
        metrics: Optional[WorkflowMetrics] = None,
        engine_logger: Optional[ContextLogger] = None,
    ):
        self.planner = planner
        self.workers: Dict[str, Worker] = dict(workers)
        self.config = config or EngineConfig()
        self.roles: List[str] = list(roles) if roles is not None else list(AGENT_ROLES)
        self.feedback_provider = feedback_provider
        self.listeners: List[WorkflowListener] = list(listeners or [])
        self.note_store = note_store
        self.metrics = metrics or WorkflowMetrics()
        self.logger = engine_logger or ContextLogger(logger, "goalflow")

        # Private to this engine; never shared across goals or instances
        self._active_tasks: Dict[str, Task] = {}
        self._sequence = 0

    # -- Registration and lookup --

    def register_worker(self, role: str, worker: Worker) -> None:
        self.workers[role] = worker

    def add_listener(self, listener: WorkflowListener) -> None:
        self.listeners.append(listener)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._active_tasks.get(task_id)

    def active_tasks(self) -> List[Task]:
        return list(self._active_tasks.values())

    def _track(self, task: Task) -> None:
        self._active_tasks[task.id] = task

    # -- Public operation --

    async def execute_goal(
        self,
        description: str,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> WorkflowResult:
        """Run a goal to completion or escalation. Never raises for worker or planner faults."""
        started = time.monotonic()
        goal = create_task(
            title=description,
            description=description,
            created_by=GOAL_CREATOR,
            priority=priority,
            max_attempts=self.config.max_attempts,
        )
        self._track(goal)
        goal.mark_in_progress()
        self.metrics.goals_started += 1
        self.logger.set_context(goal_id=goal.id)

        result = WorkflowResult(success=False, task=goal, started_at=datetime.now(UTC))

        try:
            breakdown = await self._plan(goal)
            result.breakdown = breakdown
            for subtask in breakdown.execution_plan():
                await self._run_subtask(subtask, result)
        except _Escalation as esc:
            self._finish_escalated(result, esc.reason)
        except Exception as e:
            # Last-resort guard: a caller always gets a structured result
            self.logger.exception(f"Unexpected engine error while running goal: {e}")
            self._finish_escalated(result, f"Internal engine error: {e}")
        else:
            self._finish_succeeded(result)
        finally:
            result.elapsed_seconds = time.monotonic() - started
            self.logger.clear_context()

        self.metrics.record_goal(result.success, result.escalated)
        self._persist_outcome(result)
        return result

    # -- Planning --

    async def _plan(self, goal: Task) -> Breakdown:
        self._emit_progress("Planning task...", goal)
        self.logger.set_context(phase="planning")

        breakdown: Optional[Breakdown] = None
        try:
            breakdown = await self.planner.plan(goal.model_copy(deep=True), list(self.roles))
        except Exception as e:
            self.logger.warning(f"Planner failed, falling back to a single default subtask: {e}")

        if not isinstance(breakdown, Breakdown):
            if breakdown is not None:
                self.logger.warning(
                    f"Planner returned {type(breakdown).__name__} instead of a Breakdown; ignoring it"
                )
            breakdown = Breakdown()
        else:
            # The planner keeps its own objects; this goal runs on private copies
            breakdown = breakdown.model_copy(deep=True)

        if breakdown.is_empty:
            self.metrics.planning_fallbacks += 1
            breakdown = Breakdown(subtasks=[Subtask(
                role=self.config.default_role,
                task=self._default_subtask(goal),
            )])
            self.logger.info("Breakdown was empty; synthesized one subtask from the goal text")

        for subtask in breakdown.subtasks:
            task = subtask.task
            if task.parent_task_id is None:
                task.parent_task_id = goal.id
            if task.assigned_to is None:
                task.assigned_to = subtask.role
            if task.status == TaskStatus.IN_PROGRESS:
                # Nothing is in flight yet; keep the attempts already spent
                task.status = TaskStatus.PENDING
            if task.id not in goal.subtask_ids:
                goal.subtask_ids.append(task.id)
            self._track(task)

        counts = ", ".join(
            f"{len(breakdown.tasks_for_role(role))} {role}" for role in breakdown.roles()
        )
        self._emit_progress(f"Planned {len(breakdown.subtasks)} subtasks ({counts})", goal)
        self.logger.set_context(phase=None)
        return breakdown

    def _default_subtask(self, goal: Task) -> Task:
        return create_task(
            type=TaskType.IMPLEMENT,
            title=goal.title,
            description=goal.description,
            created_by=ENGINE_CREATOR,
            priority=goal.priority,
            parent_task_id=goal.id,
            assigned_to=self.config.default_role,
            max_attempts=self.config.max_attempts,
        )

    # -- Dispatch loop --

    async def _run_subtask(self, subtask: Subtask, result: WorkflowResult) -> None:
        """Dispatch one order entry until it succeeds, or raise _Escalation."""
        task = subtask.task
        role = subtask.role

        if task.status == TaskStatus.COMPLETED:
            self.logger.debug(f"Skipping already completed subtask: {task.title}")
            return

        if is_terminal(task):
            raise _Escalation(
                task.last_error or f'Task "{task.title}" has no attempts left'
            )

        ladder = RetryLadder.single(DISPATCH_ACTION, task.max_attempts)
        # Seed with failures the task already carries so the cap is shared
        history: List[AttemptOutcome] = [
            AttemptOutcome(DISPATCH_ACTION, success=False) for _ in range(task.attempts)
        ]

        task.mark_in_progress()
        while True:
            if result.iterations >= self.config.max_iterations:
                raise _Escalation(
                    f"Max iterations ({self.config.max_iterations}) reached without completing all tasks"
                )

            record = await self._dispatch(role, task, result)
            history.append(AttemptOutcome(DISPATCH_ACTION, record.result.success))

            if record.result.success:
                task.mark_completed(record.result)
                return

            task.record_failed_attempt(record.result)
            reason = self._failure_reason(task, record)
            self.logger.task_failed(reason, task.attempts, task.max_attempts)

            if ladder.next_action(history) == ESCALATE:
                self.logger.warning(
                    f'Subtask "{task.title}" exhausted {task.max_attempts} attempts; escalating goal'
                )
                raise _Escalation(reason)

            feedback = await self._request_feedback(task, record.result)
            self.metrics.retries += 1
            task.prepare_retry(feedback)
            self._emit_progress(f"{role} retrying: {task.title}", task)

    async def _dispatch(self, role: str, task: Task, result: WorkflowResult) -> DispatchRecord:
        """Send one attempt to a worker and record it. Worker faults become failed results."""
        result.iterations += 1
        self._sequence += 1
        attempt = task.attempts + 1

        self._emit_progress(f"{role} working on: {task.title}", task)
        self.logger.task_started(task.id, task.title, role)

        worker = self.workers.get(role) or self.workers.get(self.config.default_role)
        fault = False
        started = time.monotonic()
        try:
            if worker is None:
                raise LookupError(f"No worker registered for role '{role}'")
            # Workers get a copy: lifecycle state belongs to the engine
            call = worker.execute(task.model_copy(deep=True))
            if self.config.dispatch_timeout_seconds is not None:
                outcome = await asyncio.wait_for(call, timeout=self.config.dispatch_timeout_seconds)
            else:
                outcome = await call
            if not isinstance(outcome, TaskResult):
                raise TypeError(
                    f"Worker for role '{role}' returned {type(outcome).__name__}, expected TaskResult"
                )
        except asyncio.TimeoutError as e:
            fault = True
            message = str(e)
            if not message:
                timeout = self.config.dispatch_timeout_seconds
                message = f"Dispatch timed out after {timeout}s" if timeout else "TimeoutError"
            outcome = TaskResult(success=False, error=message)
        except Exception as e:
            fault = True
            outcome = TaskResult(success=False, error=str(e) or type(e).__name__)
        latency_ms = (time.monotonic() - started) * 1000

        self.metrics.record_dispatch(role, outcome.success, latency_ms, fault=fault)
        if outcome.success:
            self.logger.task_completed(latency_ms / 1000)

        record = DispatchRecord(
            task=task.model_copy(deep=True),
            result=outcome,
            role=role,
            attempt=attempt,
            sequence=self._sequence,
            fault=fault,
        )
        result.add_record(record)
        return record

    @staticmethod
    def _failure_reason(task: Task, record: DispatchRecord) -> str:
        if record.fault:
            return record.result.error
        return record.result.failure_reason or (
            f'Task "{task.title}" failed after {task.attempts} attempts'
        )

    async def _request_feedback(self, task: Task, outcome: TaskResult) -> Optional[str]:
        if self.feedback_provider is None:
            return None
        try:
            guidance = await self.feedback_provider.feedback(
                task.model_copy(deep=True), outcome, task.attempts
            )
        except Exception as e:
            log_and_ignore(e, f"Feedback provider failed for {task.id}", logger_instance=logger)
            return None
        return guidance.strip() if isinstance(guidance, str) and guidance.strip() else None

    # -- Completion --

    def _finish_succeeded(self, result: WorkflowResult) -> None:
        goal = result.task
        goal.mark_completed(TaskResult(
            success=True,
            output=f"Completed {len(goal.subtask_ids)} subtasks in {result.iterations} dispatches",
        ))
        result.success = True
        result.escalated = False
        self._emit_progress("All tasks completed successfully", goal)

    def _finish_escalated(self, result: WorkflowResult, reason: str) -> None:
        goal = result.task
        if goal.status != TaskStatus.COMPLETED:
            goal.mark_failed(TaskResult(success=False, error=reason))
        result.success = False
        result.escalated = True
        result.escalation_reason = reason
        self.logger.error(f"Goal escalated: {reason}")
        self._emit_escalation(reason, goal)

    def _persist_outcome(self, result: WorkflowResult) -> None:
        if self.note_store is None:
            return
        with ErrorContext(
            "appending goal outcome to audit log",
            raise_on_error=False,
            logger_instance=logger,
            log_level=logging.WARNING,
        ):
            self.note_store.append_page(self.config.audit_log_path, format_audit_entry(result))

    # -- Listener fan-out --

    def _emit_progress(self, message: str, task: Optional[Task] = None) -> None:
        for listener in self.listeners:
            try:
                listener.on_progress(message, task)
            except Exception as e:
                log_and_ignore(e, "Progress listener failed", logger_instance=logger)

    def _emit_escalation(self, reason: str, task: Task) -> None:
        for listener in self.listeners:
            try:
                listener.on_escalation(reason, task)
            except Exception as e:
                log_and_ignore(e, "Escalation listener failed", logger_instance=logger)


def format_audit_entry(result: WorkflowResult) -> str:
    """Markdown summary of a goal run for the audit log."""
    lines = [
        f"## {result.task.title}",
        "",
        f"**Status**: {'Success' if result.success else 'Failed'}",
        f"**Completed**: {datetime.now(UTC).isoformat()}",
        f"**Iterations**: {result.iterations}",
        f"**Escalated**: {str(result.escalated).lower()}",
    ]
    if result.escalation_reason:
        lines.append(f"**Escalation Reason**: {result.escalation_reason}")

    for role, records in result.results.items():
        lines.append("")
        lines.append(f"### {role} dispatches")
        for record in records:
            mark = "✅" if record.result.success else "❌"
            lines.append(f"- {record.task.title} (attempt {record.attempt}): {mark}")

    lines.extend(["", "---", ""])
    return "\n".join(lines)
