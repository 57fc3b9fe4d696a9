"""Worker that runs a subtask's ``context.command`` as a shell command."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..core.contracts import Worker
from ..core.task import Task, TaskResult
from ..utils.subprocess_utils import run_command

logger = logging.getLogger(__name__)

COMMAND_CONTEXT_KEY = "command"


class CommandWorker(Worker):
    """Executes ``task.context["command"]`` in the workspace.

    Exit code 0 is success. A non-zero exit is a logical failure whose error is
    the command's stderr (or stdout when stderr is empty). A command that
    outlives ``timeout_seconds`` is a failure too.
    """

    def __init__(self, role: str = "dev", cwd: Optional[Path] = None, timeout_seconds: Optional[float] = None):
        self.role = role
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds

    async def execute(self, task: Task) -> TaskResult:
        command = task.context.get(COMMAND_CONTEXT_KEY)
        if not command:
            return TaskResult(success=False, error=f'Task "{task.title}" has no command to run')

        logger.debug(f"[{self.role}] running: {command}")
        outcome = await asyncio.to_thread(run_command, command, cwd=self.cwd, timeout=self.timeout_seconds)

        if outcome.timed_out:
            return TaskResult(
                success=False,
                output=outcome.stdout or None,
                error=f"Command timed out after {self.timeout_seconds}s: {outcome.command}",
            )
        if not outcome.ok:
            return TaskResult(
                success=False,
                output=outcome.stdout or None,
                error=outcome.stderr or outcome.stdout or f"Command exited with code {outcome.returncode}",
            )
        return TaskResult(success=True, output=outcome.stdout or None)
