"""Shared fixtures for unit tests."""

import pytest

from goalflow.core.config import EngineConfig, clear_config_cache
from goalflow.core.metrics import WorkflowMetrics


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def engine_config():
    return EngineConfig(max_iterations=20, max_attempts=3, default_role="dev")


@pytest.fixture
def metrics():
    return WorkflowMetrics()
