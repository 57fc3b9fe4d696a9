"""Bounded retry ladder shared by workflow retries and incident recovery.

A ladder is an ordered list of action kinds, each with a cap on failing
attempts. Given the history of attempts it answers one question: what to do
next. It holds no state and never looks at the clock, so any decision can be
replayed from the recorded history alone.

Rules:
- Kinds are exhausted strictly in declared order. A later kind is never chosen
  while an earlier kind has failing attempts left under its cap.
- Escalate once every kind has hit its cap, or once the optional global
  ceiling on total attempts is reached, whichever comes first.
- A successful attempt satisfies the ladder; nothing further is needed.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

ESCALATE = "escalate"
RESOLVED = "resolved"


@dataclass(frozen=True)
class LadderRung:
    """One action kind and how many failing attempts it may absorb."""
    kind: str
    max_attempts: int

    @classmethod
    def parse(cls, spec: str) -> "LadderRung":
        """Parse ``kind:cap`` (cap defaults to 1)."""
        kind, sep, cap = spec.partition(":")
        kind = kind.strip()
        if not kind:
            raise ValueError(f"Ladder rung needs a kind, got '{spec}'")
        return cls(kind=kind, max_attempts=int(cap) if sep else 1)


@dataclass(frozen=True)
class AttemptOutcome:
    """A recorded attempt of some action kind."""
    kind: str
    success: bool


class RetryLadder:
    """Pure next-action policy over an ordered list of rungs."""

    def __init__(self, rungs: Sequence[LadderRung], max_total_attempts: Optional[int] = None):
        if not rungs:
            raise ValueError("A retry ladder needs at least one rung")
        kinds = [r.kind for r in rungs]
        if len(set(kinds)) != len(kinds):
            raise ValueError(f"Duplicate kinds in ladder: {kinds}")
        if ESCALATE in kinds or RESOLVED in kinds:
            raise ValueError(f"'{ESCALATE}' and '{RESOLVED}' are reserved and cannot be rung kinds")
        for rung in rungs:
            if rung.max_attempts < 1:
                raise ValueError(f"Rung '{rung.kind}' must allow at least one attempt")
        if max_total_attempts is not None and max_total_attempts < 1:
            raise ValueError("max_total_attempts must be >= 1 when set")

        self.rungs: tuple = tuple(rungs)
        self.max_total_attempts = max_total_attempts

    @classmethod
    def single(cls, kind: str, max_attempts: int) -> "RetryLadder":
        """One-rung ladder: retry the same action up to max_attempts failures."""
        return cls([LadderRung(kind, max_attempts)])

    @classmethod
    def from_specs(cls, specs: Iterable[str], max_total_attempts: Optional[int] = None) -> "RetryLadder":
        return cls([LadderRung.parse(s) for s in specs], max_total_attempts)

    @property
    def kinds(self) -> List[str]:
        return [r.kind for r in self.rungs]

    def failures_by_kind(self, history: Iterable[AttemptOutcome]) -> Dict[str, int]:
        counts = {rung.kind: 0 for rung in self.rungs}
        for attempt in history:
            if not attempt.success and attempt.kind in counts:
                counts[attempt.kind] += 1
        return counts

    def remaining(self, history: Iterable[AttemptOutcome]) -> Dict[str, int]:
        """Failing attempts each kind may still absorb."""
        failures = self.failures_by_kind(history)
        return {
            rung.kind: max(rung.max_attempts - failures[rung.kind], 0)
            for rung in self.rungs
        }

    def next_action(self, history: Sequence[AttemptOutcome]) -> str:
        """Return the next kind to attempt, RESOLVED, or ESCALATE."""
        if any(a.success for a in history):
            return RESOLVED

        if self.max_total_attempts is not None and len(history) >= self.max_total_attempts:
            return ESCALATE

        remaining = self.remaining(history)
        for rung in self.rungs:
            if remaining[rung.kind] > 0:
                return rung.kind
        return ESCALATE

    def should_escalate(self, history: Sequence[AttemptOutcome]) -> bool:
        return self.next_action(history) == ESCALATE

    def escalation_reason(self, history: Sequence[AttemptOutcome]) -> Optional[str]:
        """Human-readable cause when the ladder says escalate, else None."""
        if not self.should_escalate(history):
            return None
        if self.max_total_attempts is not None and len(history) >= self.max_total_attempts:
            return f"Attempt ceiling reached ({len(history)}/{self.max_total_attempts} attempts)"
        exhausted = ", ".join(f"{r.kind} x{r.max_attempts}" for r in self.rungs)
        return f"All recovery actions exhausted ({exhausted})"

    def __repr__(self) -> str:
        rungs = ", ".join(f"{r.kind}:{r.max_attempts}" for r in self.rungs)
        return f"RetryLadder([{rungs}], max_total_attempts={self.max_total_attempts})"
