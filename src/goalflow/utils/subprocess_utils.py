"""Run worker commands and report how they ended."""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

Command = Union[str, List[str]]


def format_command(cmd: Command) -> str:
    return cmd if isinstance(cmd, str) else " ".join(cmd)


class CommandFailedError(Exception):
    """A command exited non-zero or timed out and the caller asked for that to raise."""

    def __init__(self, outcome: "CommandOutcome"):
        self.outcome = outcome
        if outcome.timed_out:
            message = f"Command timed out after {outcome.timeout}s: {outcome.command}"
        else:
            message = f"Command failed with exit code {outcome.returncode}: {outcome.command}"
        if outcome.stderr:
            message += f"\nstderr: {outcome.stderr}"
        super().__init__(message)


@dataclass
class CommandOutcome:
    command: str
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    timeout: Optional[float] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    def check(self) -> "CommandOutcome":
        if not self.ok:
            raise CommandFailedError(self)
        return self


def run_command(
    cmd: Command,
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    env: Optional[dict] = None,
) -> CommandOutcome:
    """Run ``cmd`` with captured text output.

    A string is run through the shell, a list is executed directly. Neither a
    non-zero exit nor a timeout raises here; both show up on the outcome.
    Call ``.check()`` to turn them into ``CommandFailedError``.
    """
    command = format_command(cmd)
    started = time.monotonic()
    try:
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            shell=isinstance(cmd, str),
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning(f"Command timed out after {timeout}s: {command}")
        return CommandOutcome(
            command=command,
            returncode=None,
            stdout=_as_text(e.stdout),
            stderr=_as_text(e.stderr),
            timed_out=True,
            timeout=timeout,
            duration_seconds=time.monotonic() - started,
        )

    outcome = CommandOutcome(
        command=command,
        returncode=completed.returncode,
        stdout=(completed.stdout or "").strip(),
        stderr=(completed.stderr or "").strip(),
        timeout=timeout,
        duration_seconds=time.monotonic() - started,
    )
    if not outcome.ok:
        logger.debug(f"Command exited with code {outcome.returncode}: {command}")
    return outcome


def _as_text(data) -> str:
    # TimeoutExpired carries bytes even when text=True was requested
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace").strip()
    return data.strip()
