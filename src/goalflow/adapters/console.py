"""Terminal-facing collaborators built on rich."""

from typing import Any, List, Optional

from rich.console import Console
from rich.markup import escape

from ..core.contracts import CoordinatorAuthority, CoordinatorDecision, WorkflowListener
from ..core.task import Task


class ConsoleListener(WorkflowListener):
    """Prints engine progress and escalations."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)

    def on_progress(self, message: str, task: Optional[Task] = None) -> None:
        self.console.print(f"[dim]⏳ {escape(message)}[/]")

    def on_escalation(self, reason: str, task: Task) -> None:
        self.console.print(f"[yellow]⚠ Escalating \"{escape(task.title)}\": {escape(reason)}[/]")


class ConsoleNotifier:
    """Human notifier that writes the escalation to the terminal and remembers it."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self.received: List[str] = []

    def notify(self, reason: str, unit: Any) -> None:
        self.received.append(reason)
        title = getattr(unit, "title", None) or getattr(unit, "id", "unit")
        self.console.print(f"[bold red]🚨 Human attention needed for {escape(str(title))}:[/] {escape(reason)}")


class StaticCoordinator(CoordinatorAuthority):
    """Answers every escalation with the same decision.

    With no guidance configured it always defers to a human.
    """

    def __init__(self, guidance: Optional[str] = None):
        self.guidance = guidance

    async def decide(self, unit: Any, reason: str) -> CoordinatorDecision:
        if self.guidance:
            return CoordinatorDecision(guidance=self.guidance)
        return CoordinatorDecision(escalate_to_human=True, reason=reason)
