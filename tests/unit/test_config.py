"""Tests for configuration loading."""

import pytest

from goalflow.core.config import (
    CountingPolicy,
    EngineConfig,
    GoalflowConfig,
    load_config,
)
from goalflow.errors import ConfigError
from goalflow.safeguards.retry_ladder import ESCALATE, AttemptOutcome


class TestDefaults:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "goalflow.yaml")

        assert config.engine.max_iterations == 20
        assert config.engine.max_attempts == 3
        assert config.engine.default_role == "dev"
        assert config.engine.audit_log_path == "tasks/completed/log.md"
        assert config.escalation.counting_policy == CountingPolicy.SEPARATE
        assert "dev" in config.roles

    def test_default_recovery_ladder(self):
        ladder = GoalflowConfig().recovery.to_ladder()

        assert ladder.kinds == ["restart", "rollback"]
        history = [AttemptOutcome("restart", False), AttemptOutcome("restart", False), AttemptOutcome("rollback", False)]
        assert ladder.next_action(history) == ESCALATE


class TestLoading:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "goalflow.yaml"
        path.write_text(
            "engine:\n"
            "  max_iterations: 5\n"
            "  dispatch_timeout_seconds: 30\n"
            "recovery:\n"
            "  rungs:\n"
            "    - {kind: restart, max_attempts: 1}\n"
            "    - {kind: failover, max_attempts: 2}\n"
            "  max_total_attempts: null\n"
            "escalation:\n"
            "  counting_policy: count_as_failure\n"
            "logging:\n"
            "  level: debug\n"
        )

        config = load_config(path)

        assert config.engine.max_iterations == 5
        assert config.engine.dispatch_timeout_seconds == 30
        assert config.recovery.to_ladder().kinds == ["restart", "failover"]
        assert config.escalation.counting_policy == CountingPolicy.COUNT_AS_FAILURE
        assert config.logging.level == "DEBUG"

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOALFLOW_TEST_ROLE", "ops")
        path = tmp_path / "goalflow.yaml"
        path.write_text("engine:\n  default_role: ${GOALFLOW_TEST_ROLE}\nroles: [dev, ops]\n")

        assert load_config(path).engine.default_role == "ops"

    def test_cached_until_file_changes(self, tmp_path):
        path = tmp_path / "goalflow.yaml"
        path.write_text("engine:\n  max_iterations: 5\n")

        first = load_config(path)
        assert load_config(path) is first

    @pytest.mark.parametrize("body,fragment", [
        ("engine: [unclosed", "YAML parse error"),
        ("- just\n- a list\n", "top level must be a mapping"),
        ("engine:\n  max_iterations: 0\n", "max_iterations"),
        ("engine:\n  default_role: designer\n", "default_role"),
        ("recovery:\n  rungs: []\n", "recovery"),
        ("escalation:\n  counting_policy: sometimes\n", "counting_policy"),
        ("logging:\n  level: chatty\n", "log level"),
    ])
    def test_invalid_config(self, tmp_path, body, fragment):
        path = tmp_path / "goalflow.yaml"
        path.write_text(body)

        with pytest.raises(ConfigError, match=fragment):
            load_config(path)


class TestEngineConfig:
    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            EngineConfig(dispatch_timeout_seconds=0)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            EngineConfig(max_attempts=0)
