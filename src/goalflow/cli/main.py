"""Main CLI for goalflow."""

import asyncio
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..adapters import (
    CommandWorker,
    ConsoleListener,
    ConsoleNotifier,
    MarkdownNoteStore,
    PlanFilePlanner,
    StaticCoordinator,
    load_plan,
)
from ..core.config import GoalflowConfig, load_config
from ..core.task import TaskPriority
from ..errors import ConfigError, PlanFileError
from ..safeguards.escalation import EscalationChain, EscalationRecord
from ..safeguards.retry_ladder import ESCALATE, AttemptOutcome, RetryLadder
from ..tools.permissions import filter_tools_by_role, load_tool_catalogue
from ..utils.rich_logging import setup_rich_logging
from ..workflow.engine import WorkflowEngine
from ..workflow.result import WorkflowResult


console = Console()


@click.group()
@click.option("--workspace", "-w", default=".", help="Workspace directory")
@click.option("--config", "-c", "config_path", default=None, help="Config file (default: <workspace>/goalflow.yaml)")
@click.pass_context
def cli(ctx, workspace, config_path):
    """goalflow - plan goals, dispatch subtasks, escalate what cannot be fixed."""
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = Path(workspace)
    ctx.obj["config_path"] = Path(config_path) if config_path else Path(workspace) / "goalflow.yaml"


def _load_config_or_exit(ctx) -> GoalflowConfig:
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        ctx.exit(2)
    return config.model_copy(update={"workspace": ctx.obj["workspace"]})


@cli.command()
@click.argument("goal")
@click.option("--plan", "plan_path", required=True, type=click.Path(dir_okay=False, path_type=Path),
              help="YAML plan file with the breakdown")
@click.option("--priority", "-p", default=TaskPriority.MEDIUM.value,
              type=click.Choice([p.value for p in TaskPriority]), help="Goal priority")
@click.option("--decision", default=None, help="Coordinator guidance applied to escalations instead of paging a human")
@click.pass_context
def run(ctx, goal, plan_path, priority, decision):
    """Run GOAL using the subtasks in a plan file."""
    config = _load_config_or_exit(ctx)
    workspace = config.workspace

    # Fail early on a broken plan; at run time the engine would fall back to one default subtask
    try:
        load_plan(plan_path)
    except PlanFileError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        ctx.exit(2)

    engine_logger = setup_rich_logging(
        "goalflow",
        workspace,
        log_level=config.logging.level,
        use_file=config.logging.use_file,
        use_json=config.logging.use_json,
    )
    timeout = config.engine.dispatch_timeout_seconds
    workers = {role: CommandWorker(role, cwd=workspace, timeout_seconds=timeout) for role in config.roles}
    engine = WorkflowEngine(
        PlanFilePlanner(plan_path, max_attempts=config.engine.max_attempts),
        workers,
        config=config.engine,
        roles=config.roles,
        listeners=[ConsoleListener()],
        note_store=MarkdownNoteStore(workspace / config.notes_dir),
        engine_logger=engine_logger,
    )
    chain = EscalationChain(StaticCoordinator(decision), [ConsoleNotifier()])

    console.print(f"[bold]Running goal:[/] {escape(goal)}")
    result, record = asyncio.run(_run_goal(engine, chain, goal, TaskPriority(priority)))
    _print_result(result, record)

    if not result.success:
        ctx.exit(1)


async def _run_goal(
    engine: WorkflowEngine,
    chain: EscalationChain,
    goal: str,
    priority: TaskPriority,
) -> Tuple[WorkflowResult, Optional[EscalationRecord]]:
    result = await engine.execute_goal(goal, priority)
    record = None
    if result.escalated:
        errors = [r.result.failure_reason or "" for r in result.all_records if not r.result.success]
        record = await chain.escalate(result.task, result.escalation_reason, errors)
        await chain.drain()
    return result, record


def _print_result(result: WorkflowResult, record: Optional[EscalationRecord]) -> None:
    status = "[green]✓ Success[/]" if result.success else "[red]✗ Failed[/]"
    console.print(f"\n{status} after {result.iterations} dispatches in {result.elapsed_seconds:.1f}s")
    console.print(f"Escalated: {str(result.escalated).lower()}")
    if result.escalation_reason:
        console.print(f"Reason: {escape(result.escalation_reason)}")
    if record is not None:
        if record.resolved:
            console.print(f"[yellow]Resolved with coordinator decision:[/] {escape(record.decision)}")
        else:
            console.print(f"[red]Forwarded to human:[/] {escape(record.human_reason)}")

    table = Table(title="Dispatches")
    table.add_column("#", justify="right")
    table.add_column("Role")
    table.add_column("Subtask")
    table.add_column("Attempt", justify="right")
    table.add_column("Result")
    table.add_column("Detail")
    for rec in result.all_records:
        mark = "✅" if rec.result.success else "❌"
        detail = rec.result.failure_reason or ""
        table.add_row(str(rec.sequence), rec.role, escape(rec.task.title), str(rec.attempt), mark, escape(detail[:80]))
    console.print(table)


def _parse_outcome(spec: str) -> AttemptOutcome:
    kind, sep, status = spec.partition(":")
    if not sep or status not in ("ok", "fail"):
        raise ValueError(f"History entries must look like 'kind:ok' or 'kind:fail', got '{spec}'")
    return AttemptOutcome(kind=kind.strip(), success=status == "ok")


@cli.command()
@click.option("--rung", "rungs", multiple=True, required=True, help="Ladder rung as kind:cap, in order")
@click.option("--history", "history", multiple=True, help="Past attempt as kind:ok or kind:fail, oldest first")
@click.option("--ceiling", type=int, default=None, help="Global cap on total attempts")
def ladder(rungs, history, ceiling):
    """Show the next recovery action for a ladder and attempt history."""
    try:
        retry_ladder = RetryLadder.from_specs(rungs, max_total_attempts=ceiling)
        outcomes: List[AttemptOutcome] = [_parse_outcome(h) for h in history]
    except ValueError as e:
        raise click.BadParameter(str(e))

    action = retry_ladder.next_action(outcomes)
    console.print(f"Next action: [bold]{action}[/]")
    if action == ESCALATE:
        console.print(f"Reason: {retry_ladder.escalation_reason(outcomes)}")
    else:
        remaining = ", ".join(f"{k}={v}" for k, v in retry_ladder.remaining(outcomes).items())
        console.print(f"[dim]Remaining: {remaining}[/]")


@cli.command()
@click.option("--role", "-r", required=True, help="Worker role")
@click.option("--catalogue", required=True, type=click.Path(dir_okay=False, path_type=Path),
              help="YAML tool catalogue")
@click.pass_context
def tools(ctx, role, catalogue):
    """List the tools a role may use."""
    try:
        specs = load_tool_catalogue(catalogue)
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]")
        ctx.exit(2)

    permitted = filter_tools_by_role(specs, role)
    table = Table(title=f"Tools for {role}")
    table.add_column("Name")
    table.add_column("Description")
    for spec in permitted:
        table.add_row(spec.name, escape(spec.description))
    console.print(table)
    console.print(f"{len(permitted)} of {len(specs)} tools permitted")


if __name__ == "__main__":
    cli()
