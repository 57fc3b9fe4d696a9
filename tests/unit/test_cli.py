"""Tests for the goalflow CLI."""

import pytest
from click.testing import CliRunner

from goalflow.cli.main import cli

GOOD_PLAN = """
subtasks:
  - role: dev
    title: Build
    context: {command: "echo built > artifact.txt"}
  - role: qa
    title: Verify
    context: {command: "test -f artifact.txt"}
order: ["dev:0", "qa:0"]
"""

FAILING_PLAN = """
subtasks:
  - role: dev
    title: Build
    context: {command: "echo compiler exploded >&2; exit 1"}
"""


@pytest.fixture
def runner():
    return CliRunner()


def _plan(tmp_path, body):
    path = tmp_path / "plan.yaml"
    path.write_text(body)
    return str(path)


class TestRunCommand:
    def test_successful_goal(self, runner, tmp_path):
        result = runner.invoke(cli, ["-w", str(tmp_path), "run", "Ship v1", "--plan", _plan(tmp_path, GOOD_PLAN)])

        assert result.exit_code == 0, result.output
        assert "Success" in result.output
        assert "Escalated: false" in result.output
        assert (tmp_path / "artifact.txt").exists()
        log = tmp_path / ".goalflow-notes" / "tasks" / "completed" / "log.md"
        assert "## Ship v1" in log.read_text()

    def test_failing_goal_is_forwarded_to_human(self, runner, tmp_path):
        result = runner.invoke(cli, ["-w", str(tmp_path), "run", "Ship v1", "--plan", _plan(tmp_path, FAILING_PLAN)])

        assert result.exit_code == 1
        assert "Escalated: true" in result.output
        assert "Forwarded to human: compiler exploded" in result.output

    def test_coordinator_decision(self, runner, tmp_path):
        result = runner.invoke(cli, [
            "-w", str(tmp_path), "run", "Ship v1",
            "--plan", _plan(tmp_path, FAILING_PLAN),
            "--decision", "Ship without the optimizer",
        ])

        assert result.exit_code == 1
        assert "Resolved with coordinator decision: Ship without the optimizer" in result.output

    def test_config_limits_attempts(self, runner, tmp_path):
        (tmp_path / "goalflow.yaml").write_text("engine:\n  max_attempts: 1\n")

        result = runner.invoke(cli, ["-w", str(tmp_path), "run", "Ship v1", "--plan", _plan(tmp_path, FAILING_PLAN)])

        assert result.exit_code == 1
        assert "after 1 dispatches" in result.output

    def test_bad_plan(self, runner, tmp_path):
        result = runner.invoke(cli, ["-w", str(tmp_path), "run", "x", "--plan", _plan(tmp_path, "subtasks: 3\n")])

        assert result.exit_code == 2
        assert "must be a list" in " ".join(result.output.split())

    def test_bad_config(self, runner, tmp_path):
        config = tmp_path / "custom.yaml"
        config.write_text("engine:\n  max_iterations: -1\n")

        result = runner.invoke(cli, ["-c", str(config), "run", "x", "--plan", _plan(tmp_path, GOOD_PLAN)])

        assert result.exit_code == 2
        assert "Invalid configuration" in result.output


class TestLadderCommand:
    def test_escalate(self, runner):
        result = runner.invoke(cli, [
            "ladder",
            "--rung", "restart:2", "--rung", "rollback:1",
            "--history", "restart:fail", "--history", "restart:fail", "--history", "rollback:fail",
        ])

        assert result.exit_code == 0
        assert "Next action: escalate" in result.output
        assert "All recovery actions exhausted" in result.output

    def test_next_rung(self, runner):
        result = runner.invoke(cli, ["ladder", "--rung", "restart:2", "--rung", "rollback:1", "--history", "restart:fail"])

        assert "Next action: restart" in result.output
        assert "restart=1" in result.output

    def test_ceiling(self, runner):
        result = runner.invoke(cli, ["ladder", "--rung", "restart:5", "--ceiling", "1", "--history", "restart:fail"])

        assert "Next action: escalate" in result.output

    def test_bad_history(self, runner):
        result = runner.invoke(cli, ["ladder", "--rung", "restart:2", "--history", "restart:maybe"])

        assert result.exit_code == 2


class TestToolsCommand:
    def test_lists_permitted_tools(self, runner, tmp_path):
        catalogue = tmp_path / "tools.yaml"
        catalogue.write_text(
            "tools:\n"
            "  - {name: read_file, description: Read a file}\n"
            "  - {name: deploy, description: Deploy a service, roles: [devops]}\n"
        )

        result = runner.invoke(cli, ["tools", "--role", "qa", "--catalogue", str(catalogue)])

        assert result.exit_code == 0
        assert "read_file" in result.output
        assert "deploy" not in result.output
        assert "1 of 2 tools permitted" in result.output
