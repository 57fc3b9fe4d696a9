"""Escalation chain: coordinator decision first, human notification second.

Every escalated unit (a goal task, an incident, a project) gets its own
EscalationRecord. The coordinator is always asked before anyone is paged;
when it cannot decide, wants a human, or blows up, every registered notifier
receives the reason and the unit is blocked. Nothing is dropped silently.
"""

import asyncio
import inspect
import logging
import re
import time
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..core.contracts import CoordinatorAuthority, CoordinatorDecision, HumanNotifier
from ..core.task import Task, TaskStatus
from ..utils.error_handling import log_and_ignore

logger = logging.getLogger(__name__)


class EscalationOutcome(str, Enum):
    RESOLVED_WITH_DECISION = "resolved_with_decision"
    FORWARDED_TO_HUMAN = "forwarded_to_human"


class EscalationReport(BaseModel):
    """Diagnostics attached to an escalation for whoever picks it up."""

    total_attempts: int
    error_category: Optional[str] = None
    failure_pattern: str
    root_cause_hypothesis: str
    suggested_interventions: List[str] = Field(default_factory=list)


class EscalationRecord(BaseModel):
    """Outcome of one escalation.

    ``resolved`` and ``success`` are kept apart on purpose: a coordinator
    decision handles the failure but never turns it into a success.
    """

    id: str
    unit_id: str
    unit_title: Optional[str] = None
    reason: str
    outcome: EscalationOutcome
    decision: Optional[str] = None
    human_reason: Optional[str] = None
    coordinator_fault: Optional[str] = None
    notified: int = 0
    notify_failures: List[str] = Field(default_factory=list)
    acknowledged: bool = False
    human_guidance: Optional[str] = None
    report: Optional[EscalationReport] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def resolved(self) -> bool:
        return self.outcome == EscalationOutcome.RESOLVED_WITH_DECISION

    @property
    def success(self) -> bool:
        return False

    @property
    def forwarded_to_human(self) -> bool:
        return self.outcome == EscalationOutcome.FORWARDED_TO_HUMAN


# Error pattern categorization
_ERROR_PATTERNS = {
    "network": [
        r"connection.*refused",
        r"timeout",
        r"timed out",
        r"network.*unreachable",
        r"dns.*fail",
        r"could not resolve host",
    ],
    "authentication": [
        r"unauthorized",
        r"authentication.*fail",
        r"invalid.*credential",
        r"permission.*denied",
        r"403|401",
    ],
    "validation": [
        r"validation.*error",
        r"invalid.*input",
        r"schema.*mismatch",
        r"type.*error",
        r"missing required",
    ],
    "resource": [
        r"out of memory",
        r"disk.*full",
        r"too many.*open files",
        r"resource.*exhausted",
    ],
    "logic": [
        r"null.*reference",
        r"index.*out of.*range",
        r"assertion.*fail",
        r"unexpected.*state",
    ],
    "budget": [
        r"budget.*exceed",
        r"max iterations",
        r"quota.*exceed",
        r"insufficient.*credits",
        r"usage.*limit.*exceed",
    ],
}

_HYPOTHESES = {
    "consistent": "Consistent {category} errors across all attempts suggest a fundamental issue that won't resolve with retries.",
    "intermittent_network": "Intermittent network failures suggest infrastructure or connectivity issues rather than code problems.",
    "varied": "Different error types across attempts suggest environmental instability or race conditions.",
    "single_failure": "Single failure suggests an immediate blocker or invalid configuration.",
}

_INTERVENTIONS = {
    "network": [
        "Check network connectivity and firewall rules",
        "Verify endpoints the worker depends on are reachable",
        "Consider increasing the dispatch timeout",
    ],
    "authentication": [
        "Verify credentials are valid and not expired",
        "Review permission levels for required operations",
    ],
    "validation": [
        "Review input data format and schema",
        "Check for recent contract changes between planner and workers",
    ],
    "resource": [
        "Check available system resources (memory, disk, file descriptors)",
        "Look for resource leaks or cleanup issues",
    ],
    "logic": [
        "Review recent code changes for regressions",
        "Check assumptions about data state",
    ],
    "budget": [
        "Split the goal into smaller goals",
        "Raise engine.max_iterations if the breakdown is legitimately large",
    ],
}


def categorize_error(error_message: Optional[str]) -> Optional[str]:
    """Categorize an error message by pattern matching.

    Returns one of: network, authentication, validation, resource, logic,
    budget, unknown. Returns None for empty input.
    """
    if not error_message:
        return None
    error_lower = error_message.lower()
    for category, patterns in _ERROR_PATTERNS.items():
        for pattern in patterns:
            if re.search(pattern, error_lower):
                return category
    return "unknown"


def analyze_failure_pattern(categories: List[Optional[str]]) -> str:
    """Classify a sequence of error categories."""
    known = [c for c in categories if c]
    if len(known) <= 1:
        return "single_failure"
    if len(set(known)) == 1:
        return "consistent"
    if known.count("network") > len(known) / 2:
        return "intermittent_network"
    return "varied"


def build_report(reason: str, attempt_errors: Optional[Iterable[str]] = None) -> EscalationReport:
    """Build a diagnostic report from the escalation reason and per-attempt errors."""
    errors = [e for e in (attempt_errors or []) if e] or [reason]
    categories = [categorize_error(e) for e in errors]
    pattern = analyze_failure_pattern(categories)
    known = [c for c in categories if c]
    most_common = max(set(known), key=known.count) if known else "unknown"

    hypothesis = _HYPOTHESES.get(pattern, "Unable to determine a clear pattern from the attempt history.")
    suggestions = list(_INTERVENTIONS.get(most_common, [
        "Review error messages and worker logs",
        "Consider manual reproduction in an isolated environment",
    ]))
    if len(errors) > 1:
        suggestions.append(f"Failed {len(errors)} times - consider whether retries are appropriate")

    return EscalationReport(
        total_attempts=len(errors),
        error_category=categorize_error(reason),
        failure_pattern=pattern,
        root_cause_hypothesis=hypothesis.format(category=most_common),
        suggested_interventions=suggestions[:5],
    )


class EscalationChain:
    """Coordinator-then-human escalation with any number of notifiers.

    Args:
        coordinator: Authority asked first. Without one every escalation goes
            straight to the notifiers.
        notifiers: Human-notification listeners.
    """

    def __init__(
        self,
        coordinator: Optional[CoordinatorAuthority] = None,
        notifiers: Optional[Iterable[HumanNotifier]] = None,
    ):
        self.coordinator = coordinator
        self.notifiers: List[HumanNotifier] = list(notifiers or [])
        self._records: Dict[str, EscalationRecord] = {}
        self._pending_notifications: set = set()
        self._counter = 0

    def subscribe(self, notifier: HumanNotifier) -> None:
        self.notifiers.append(notifier)

    def unsubscribe(self, notifier: HumanNotifier) -> None:
        if notifier in self.notifiers:
            self.notifiers.remove(notifier)

    @property
    def records(self) -> List[EscalationRecord]:
        return list(self._records.values())

    def get_record(self, record_id: str) -> Optional[EscalationRecord]:
        return self._records.get(record_id)

    def records_for(self, unit_id: str) -> List[EscalationRecord]:
        return [r for r in self._records.values() if r.unit_id == unit_id]

    def pending_human(self) -> List[EscalationRecord]:
        """Escalations waiting on a human that nobody has acknowledged yet."""
        return [r for r in self._records.values() if r.forwarded_to_human and not r.acknowledged]

    def acknowledge(self, record_id: str, guidance: Optional[str] = None) -> EscalationRecord:
        record = self._records.get(record_id)
        if record is None:
            raise KeyError(f"Unknown escalation: {record_id}")
        record.acknowledged = True
        record.human_guidance = guidance
        return record

    def _next_id(self, unit_id: str) -> str:
        self._counter += 1
        return f"escalation-{int(time.time())}-{self._counter}-{unit_id}"

    async def escalate(
        self,
        unit: Any,
        reason: str,
        attempt_errors: Optional[Iterable[str]] = None,
    ) -> EscalationRecord:
        """Escalate a unit of work. Never raises for coordinator or notifier faults."""
        unit_id = str(getattr(unit, "id", id(unit)))
        unit_title = getattr(unit, "title", None)
        record_id = self._next_id(unit_id)
        logger.info(f"Escalating {unit_id}: {reason}")

        decision: Optional[CoordinatorDecision] = None
        coordinator_fault: Optional[str] = None
        if self.coordinator is not None:
            try:
                decision = await self.coordinator.decide(unit, reason)
                if not isinstance(decision, CoordinatorDecision):
                    raise TypeError(
                        f"Coordinator returned {type(decision).__name__}, expected CoordinatorDecision"
                    )
                if decision.guidance is not None and not isinstance(decision.guidance, str):
                    raise TypeError(
                        f"Coordinator guidance must be a string, got {type(decision.guidance).__name__}"
                    )
            except Exception as e:
                decision = None
                coordinator_fault = str(e) or type(e).__name__
                logger.error(f"Coordinator failed while deciding on {unit_id}: {coordinator_fault}")

        record = EscalationRecord(
            id=record_id,
            unit_id=unit_id,
            unit_title=unit_title,
            reason=reason,
            outcome=EscalationOutcome.FORWARDED_TO_HUMAN,
            coordinator_fault=coordinator_fault,
            report=build_report(reason, attempt_errors),
        )
        self._records[record_id] = record

        guidance = (decision.guidance or "").strip() if decision else ""
        if decision is not None and guidance and not decision.escalate_to_human:
            record.outcome = EscalationOutcome.RESOLVED_WITH_DECISION
            record.decision = guidance
            self._apply_outcome(unit, record)
            logger.info(f"Coordinator resolved {unit_id} with a decision")
            return record

        if coordinator_fault is not None:
            human_reason = coordinator_fault
        elif decision is not None and decision.reason:
            human_reason = decision.reason
        else:
            human_reason = reason
        record.human_reason = human_reason
        if guidance:
            record.decision = guidance

        self._apply_outcome(unit, record)
        self._notify(record, unit)
        return record

    def _notify(self, record: EscalationRecord, unit: Any) -> None:
        for notifier in list(self.notifiers):
            try:
                pending = notifier.notify(record.human_reason, unit)
                if inspect.isawaitable(pending):
                    # Async notifiers run in the background; the chain does not wait
                    task = asyncio.ensure_future(pending)
                    self._pending_notifications.add(task)
                    task.add_done_callback(self._on_notification_done)
                record.notified += 1
            except Exception as e:
                record.notify_failures.append(str(e) or type(e).__name__)
                log_and_ignore(e, f"Human notifier failed for {record.unit_id}", logger_instance=logger)

    def _on_notification_done(self, task: "asyncio.Future") -> None:
        self._pending_notifications.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log_and_ignore(task.exception(), "Async human notifier failed", logger_instance=logger)

    async def drain(self) -> None:
        """Wait for background notifier coroutines. Useful before shutdown."""
        if self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)

    @staticmethod
    def _apply_outcome(unit: Any, record: EscalationRecord) -> None:
        """Stamp the outcome on the unit: blocked when forwarded, decision attached when resolved."""
        try:
            hook = getattr(unit, "on_escalation_outcome", None)
            if callable(hook):
                hook(record)
            elif isinstance(unit, Task):
                if record.resolved:
                    unit.context["escalation_decision"] = record.decision
                elif unit.status != TaskStatus.COMPLETED:
                    unit.mark_blocked(record.human_reason)
        except Exception as e:
            log_and_ignore(e, f"Could not record escalation outcome on {record.unit_id}", logger_instance=logger)
