"""Incident response: recovery ladder (restart, rollback, escalate) per incident."""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.task import TaskPriority
from ..safeguards.escalation import EscalationChain, EscalationRecord
from ..safeguards.retry_ladder import ESCALATE, RESOLVED, AttemptOutcome, LadderRung, RetryLadder

logger = logging.getLogger(__name__)

DEFAULT_LADDER = RetryLadder(
    [LadderRung("restart", 2), LadderRung("rollback", 1)],
    max_total_attempts=3,
)


class IncidentState(str, Enum):
    DETECTED = "detected"
    ACKNOWLEDGED = "acknowledged"
    INVESTIGATING = "investigating"
    RECOVERING = "recovering"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class IncidentEvent(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: str
    actor: str
    details: Optional[str] = None


class RecoveryAction(BaseModel):
    kind: str
    target: str
    success: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    details: Optional[str] = None


class Incident(BaseModel):
    """An operational incident and everything done about it, in order."""

    id: str
    title: str
    severity: TaskPriority = TaskPriority.MEDIUM
    state: IncidentState = IncidentState.DETECTED
    affected_services: List[str] = Field(default_factory=list)
    timeline: List[IncidentEvent] = Field(default_factory=list)
    recovery_actions: List[RecoveryAction] = Field(default_factory=list)
    decision: Optional[str] = None  # Coordinator decision after escalation
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    resolved_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None

    @property
    def history(self) -> List[AttemptOutcome]:
        return [AttemptOutcome(a.kind, a.success) for a in self.recovery_actions]

    def on_escalation_outcome(self, record: EscalationRecord) -> None:
        """Called by the escalation chain once the incident has been handled upstream."""
        if record.resolved:
            self.decision = record.decision
            details = f"coordinator decision: {record.decision}"
        else:
            details = f"forwarded to human: {record.human_reason}"
        self.timeline.append(IncidentEvent(action="escalation_outcome", actor="EscalationChain", details=details))


class RunbookStep(BaseModel):
    name: str
    action: str
    params: Dict[str, Any] = Field(default_factory=dict)
    continue_on_failure: bool = False


class Runbook(BaseModel):
    name: str
    description: str
    triggers: List[str] = Field(default_factory=list)
    steps: List[RunbookStep] = Field(default_factory=list)


class RecoveryResult(BaseModel):
    success: bool
    details: Optional[str] = None


class RecoveryExecutor(ABC):
    """Carries out one recovery action (restart, rollback, ...) against an incident."""

    @abstractmethod
    async def execute(self, kind: str, incident: Incident) -> RecoveryResult:
        pass


class IncidentCoordinator:
    """Owns a set of incidents and walks each one up its recovery ladder.

    Args:
        ladder: Recovery policy; defaults to restart x2, rollback x1, ceiling 3.
        escalation_chain: Where incidents go once the ladder says escalate.
        name: Actor name written into incident timelines.
        runbooks: Runbooks to register up front.
    """

    def __init__(
        self,
        ladder: Optional[RetryLadder] = None,
        escalation_chain: Optional[EscalationChain] = None,
        name: str = "IncidentCoordinator",
        runbooks: Optional[List[Runbook]] = None,
    ):
        self.ladder = ladder or DEFAULT_LADDER
        self.escalation_chain = escalation_chain
        self.name = name
        self._incidents: Dict[str, Incident] = {}
        self._runbooks: Dict[str, Runbook] = {}
        self._counter = 0
        for runbook in runbooks or []:
            self.register_runbook(runbook)

    # -- Incident records --

    def create_incident(
        self,
        title: str,
        severity: TaskPriority = TaskPriority.MEDIUM,
        affected_services: Optional[List[str]] = None,
    ) -> Incident:
        self._counter += 1
        incident_id = f"INC-{self._counter:05d}"
        incident = Incident(
            id=incident_id,
            title=title,
            severity=severity,
            affected_services=list(affected_services or []),
            timeline=[IncidentEvent(action="created", actor=self.name, details=f"Incident created: {title}")],
        )
        self._incidents[incident_id] = incident
        logger.info(f"Created incident {incident_id}: {title}")
        return incident

    def update_state(self, incident_id: str, new_state: IncidentState, details: Optional[str] = None) -> bool:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return False

        old_state = IncidentState(incident.state)
        incident.state = new_state
        suffix = f": {details}" if details else ""
        incident.timeline.append(IncidentEvent(
            action="state_change",
            actor=self.name,
            details=f"{old_state.value} -> {IncidentState(new_state).value}{suffix}",
        ))
        if new_state == IncidentState.RESOLVED:
            incident.resolved_at = datetime.now(UTC)
        elif new_state == IncidentState.ESCALATED:
            incident.escalated_at = datetime.now(UTC)
        return True

    def record_recovery_action(
        self,
        incident_id: str,
        kind: str,
        target: str,
        success: bool,
        details: Optional[str] = None,
    ) -> None:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return

        incident.recovery_actions.append(RecoveryAction(kind=kind, target=target, success=success, details=details))
        outcome = "success" if success else "failed"
        suffix = f" - {details}" if details else ""
        incident.timeline.append(IncidentEvent(
            action=f"recovery_{kind}",
            actor=self.name,
            details=f"{kind} on {target}: {outcome}{suffix}",
        ))

    def next_recovery_action(self, incident_id: str) -> Optional[str]:
        """Next ladder step for the incident, or None if it is unknown."""
        incident = self._incidents.get(incident_id)
        if incident is None:
            return None
        return self.ladder.next_action(incident.history)

    def should_escalate(self, incident_id: str) -> bool:
        incident = self._incidents.get(incident_id)
        if incident is None:
            return False
        return self.ladder.should_escalate(incident.history)

    # -- Recovery loop --

    async def recover(self, incident_id: str, executor: RecoveryExecutor) -> Incident:
        """Run recovery actions until the incident resolves or must be escalated."""
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise KeyError(f"Unknown incident: {incident_id}")
        if incident.state in (IncidentState.RESOLVED, IncidentState.ESCALATED):
            return incident

        if incident.state == IncidentState.DETECTED:
            self.update_state(incident_id, IncidentState.ACKNOWLEDGED)
        self.update_state(incident_id, IncidentState.RECOVERING)
        target = ", ".join(incident.affected_services) or incident.title

        while True:
            action = self.ladder.next_action(incident.history)
            if action == RESOLVED:
                self.update_state(incident_id, IncidentState.RESOLVED)
                logger.info(f"Incident {incident_id} resolved after {len(incident.recovery_actions)} actions")
                return incident
            if action == ESCALATE:
                await self._escalate(incident)
                return incident

            try:
                outcome = await executor.execute(action, incident)
            except Exception as e:
                outcome = RecoveryResult(success=False, details=str(e) or type(e).__name__)
            self.record_recovery_action(incident_id, action, target, outcome.success, outcome.details)

    async def _escalate(self, incident: Incident) -> None:
        reason = self.ladder.escalation_reason(incident.history) or "Automated recovery failed"
        self.update_state(incident.id, IncidentState.ESCALATED, reason)
        logger.warning(f"Incident {incident.id} escalated: {reason}")
        if self.escalation_chain is None:
            return
        errors = [a.details or f"{a.kind} failed" for a in incident.recovery_actions if not a.success]
        await self.escalation_chain.escalate(incident, f"Incident {incident.id} ({incident.title}): {reason}", errors)

    # -- Runbooks --

    def register_runbook(self, runbook: Runbook) -> None:
        self._runbooks[runbook.name] = runbook

    def get_runbook(self, name: str) -> Optional[Runbook]:
        return self._runbooks.get(name)

    def find_runbook_for_trigger(self, trigger: str) -> Optional[Runbook]:
        for runbook in self._runbooks.values():
            if trigger in runbook.triggers:
                return runbook
        return None

    # -- Queries --

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def all_incidents(self) -> List[Incident]:
        return list(self._incidents.values())

    def active_incidents(self) -> List[Incident]:
        return [i for i in self._incidents.values() if i.state != IncidentState.RESOLVED]

    def incident_duration(self, incident_id: str) -> int:
        """Seconds from creation to resolution (or now, while unresolved)."""
        incident = self._incidents.get(incident_id)
        if incident is None:
            return 0
        end = incident.resolved_at or datetime.now(UTC)
        return int((end - incident.created_at).total_seconds())
