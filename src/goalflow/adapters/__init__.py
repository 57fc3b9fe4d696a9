"""Concrete planners, workers, notifiers and stores."""

from .command_worker import CommandWorker
from .console import ConsoleListener, ConsoleNotifier, StaticCoordinator
from .note_store import MarkdownNoteStore, NoteSearchHit
from .plan_file import PlanFilePlanner, load_plan

__all__ = [
    "CommandWorker",
    "ConsoleListener",
    "ConsoleNotifier",
    "MarkdownNoteStore",
    "NoteSearchHit",
    "PlanFilePlanner",
    "StaticCoordinator",
    "load_plan",
]
