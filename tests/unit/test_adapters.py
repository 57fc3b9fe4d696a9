"""Tests for the plan-file planner, command worker and console collaborators."""

import pytest
from rich.console import Console

from goalflow.adapters import (
    CommandWorker,
    ConsoleListener,
    ConsoleNotifier,
    PlanFilePlanner,
    StaticCoordinator,
    load_plan,
)
from goalflow.core.task import TaskPriority, TaskType, create_task
from goalflow.errors import PlanFileError

PLAN = """
subtasks:
  - role: dev
    title: Build the API
    description: Implement the endpoints
    context:
      command: make api
  - role: qa
    title: Test the API
    type: test
    max_attempts: 1
order: ["qa:0", "dev:0"]
"""


def _write(tmp_path, body, name="plan.yaml"):
    path = tmp_path / name
    path.write_text(body)
    return path


def _task(command=None, title="run"):
    context = {"command": command} if command is not None else {}
    return create_task(title=title, description=title, created_by="test", context=context)


class TestLoadPlan:
    def test_load(self, tmp_path):
        breakdown = load_plan(_write(tmp_path, PLAN))

        assert [s.role for s in breakdown.subtasks] == ["dev", "qa"]
        dev, qa = breakdown.subtasks[0].task, breakdown.subtasks[1].task
        assert dev.context["command"] == "make api"
        assert dev.max_attempts == 3
        assert qa.type == TaskType.TEST
        assert qa.max_attempts == 1
        assert qa.description == "Test the API"
        assert [s.task.title for s in breakdown.execution_plan()] == ["Test the API", "Build the API"]

    def test_empty_file_is_empty_breakdown(self, tmp_path):
        assert load_plan(_write(tmp_path, "")).is_empty

    @pytest.mark.parametrize("body,fragment", [
        ("subtasks: [unclosed", "YAML parse error"),
        ("subtasks: oops\n", "must be a list"),
        ("subtasks:\n  - title: no role\n", "missing 'role'"),
        ("subtasks:\n  - role: dev\n", "missing 'title'"),
        ("subtasks:\n  - {role: dev, title: x, type: dance}\n", "subtask 0"),
        ("subtasks:\n  - {role: dev, title: x}\norder: ['dev']\n", "invalid order"),
    ])
    def test_invalid_plans(self, tmp_path, body, fragment):
        with pytest.raises(PlanFileError, match=fragment):
            load_plan(_write(tmp_path, body))

    def test_missing_file(self, tmp_path):
        with pytest.raises(PlanFileError, match="not found"):
            load_plan(tmp_path / "absent.yaml")


class TestPlanFilePlanner:
    @pytest.mark.asyncio
    async def test_plan_links_subtasks_to_goal(self, tmp_path):
        planner = PlanFilePlanner(_write(tmp_path, PLAN), max_attempts=2)
        goal = create_task(title="ship", description="ship", created_by="User", priority=TaskPriority.HIGH)

        breakdown = await planner.plan(goal, ["dev", "qa"])

        dev = breakdown.subtasks[0].task
        assert dev.parent_task_id == goal.id
        assert dev.priority == TaskPriority.HIGH
        assert dev.max_attempts == 2


class TestCommandWorker:
    @pytest.mark.asyncio
    async def test_success_captures_stdout(self, tmp_path):
        result = await CommandWorker(cwd=tmp_path).execute(_task("echo hello"))

        assert result.success is True
        assert result.output == "hello"

    @pytest.mark.asyncio
    async def test_non_zero_exit_reports_stderr(self, tmp_path):
        result = await CommandWorker(cwd=tmp_path).execute(_task("echo partial; echo broken >&2; exit 3"))

        assert result.success is False
        assert result.error == "broken"
        assert result.output == "partial"

    @pytest.mark.asyncio
    async def test_non_zero_exit_without_output(self, tmp_path):
        result = await CommandWorker(cwd=tmp_path).execute(_task("exit 4"))

        assert result.error == "Command exited with code 4"

    @pytest.mark.asyncio
    async def test_missing_command(self):
        result = await CommandWorker().execute(_task(title="mystery"))

        assert result.success is False
        assert result.error == 'Task "mystery" has no command to run'

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        result = await CommandWorker(cwd=tmp_path, timeout_seconds=0.2).execute(_task("sleep 5"))

        assert result.success is False
        assert "timed out after 0.2s" in result.error

    @pytest.mark.asyncio
    async def test_runs_in_workspace(self, tmp_path):
        (tmp_path / "marker.txt").write_text("x")

        result = await CommandWorker(cwd=tmp_path).execute(_task("ls"))

        assert "marker.txt" in result.output


class TestConsoleCollaborators:
    def test_notifier_prints_and_remembers(self):
        console = Console(record=True, width=200)
        notifier = ConsoleNotifier(console)

        notifier.notify("disk full", create_task(title="deploy", description="d", created_by="t"))

        assert notifier.received == ["disk full"]
        assert "Human attention needed for deploy" in console.export_text()

    def test_listener_prints_progress(self):
        console = Console(record=True, width=200)
        listener = ConsoleListener(console)

        listener.on_progress("Planning task...")
        listener.on_escalation("broken", create_task(title="deploy", description="d", created_by="t"))

        text = console.export_text()
        assert "Planning task..." in text
        assert 'Escalating "deploy": broken' in text

    @pytest.mark.asyncio
    async def test_static_coordinator(self):
        decision = await StaticCoordinator("Ship it").decide(object(), "why")
        assert decision.guidance == "Ship it"
        assert decision.escalate_to_human is False

        deferred = await StaticCoordinator().decide(object(), "why")
        assert deferred.escalate_to_human is True
        assert deferred.reason == "why"
