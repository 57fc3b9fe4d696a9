"""Operational incident handling."""

from .incident import (
    Incident,
    IncidentCoordinator,
    IncidentState,
    RecoveryExecutor,
    RecoveryResult,
    Runbook,
    RunbookStep,
)

__all__ = [
    "Incident",
    "IncidentCoordinator",
    "IncidentState",
    "RecoveryExecutor",
    "RecoveryResult",
    "Runbook",
    "RunbookStep",
]
