"""Configuration loading and validation."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from ..errors import ConfigError
from ..safeguards.retry_ladder import LadderRung, RetryLadder
from ..tools.permissions import AGENT_ROLES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("goalflow.yaml")


class EngineConfig(BaseModel):
    """Workflow engine settings."""
    max_iterations: int = 20  # Budget of worker dispatches per goal
    max_attempts: int = 3  # Failing dispatches a subtask may absorb
    default_role: str = "dev"  # Role for synthesized subtasks and unknown roles
    dispatch_timeout_seconds: Optional[float] = None
    audit_log_path: str = "tasks/completed/log.md"

    @field_validator("max_iterations", "max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator("dispatch_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"dispatch_timeout_seconds must be positive, got {v}")
        return v


class RungConfig(BaseModel):
    kind: str
    max_attempts: int = 1


class RecoveryConfig(BaseModel):
    """Incident recovery ladder: restart twice, roll back once, then escalate."""
    rungs: List[RungConfig] = Field(default_factory=lambda: [
        RungConfig(kind="restart", max_attempts=2),
        RungConfig(kind="rollback", max_attempts=1),
    ])
    max_total_attempts: Optional[int] = 3

    def to_ladder(self) -> RetryLadder:
        return RetryLadder(
            [LadderRung(r.kind, r.max_attempts) for r in self.rungs],
            max_total_attempts=self.max_total_attempts,
        )


class CountingPolicy(str, Enum):
    """How resolved-with-decision escalations are tallied in aggregate reports."""
    SEPARATE = "separate"  # Own bucket; neither success nor failure
    COUNT_AS_FAILURE = "count_as_failure"
    COUNT_AS_SUCCESS = "count_as_success"


class EscalationConfig(BaseModel):
    counting_policy: CountingPolicy = CountingPolicy.SEPARATE


class LoggingConfig(BaseModel):
    level: str = "INFO"
    use_file: bool = False
    use_json: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return v.upper()


class GoalflowConfig(BaseSettings):
    """Main configuration."""
    workspace: Path = Field(default=Path("."))
    notes_dir: str = ".goalflow-notes"

    engine: EngineConfig = Field(default_factory=EngineConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    roles: List[str] = Field(default_factory=lambda: list(AGENT_ROLES))

    class Config:
        env_prefix = "GOALFLOW_"
        extra = "allow"


# Module-level cache: resolved path -> (parsed object, mtime)
_config_cache: Dict[str, tuple] = {}


def _get_cached_or_load(resolved_path: Path, loader):
    """Return cached config if file mtime unchanged, else reload."""
    key = str(resolved_path)
    try:
        current_mtime = resolved_path.stat().st_mtime
    except FileNotFoundError:
        _config_cache.pop(key, None)
        return None

    cached = _config_cache.get(key)
    if cached is not None:
        cached_result, cached_mtime = cached
        if cached_mtime == current_mtime:
            return cached_result

    result = loader(resolved_path)
    _config_cache[key] = (result, current_mtime)
    return result


def _load_config_from_file(config_path: Path) -> GoalflowConfig:
    """Internal loader (no caching)."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(str(config_path), f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(str(config_path), "top level must be a mapping")

    data = _expand_env_vars(data)
    try:
        config = GoalflowConfig(**data)
    except ValidationError as e:
        raise ConfigError(str(config_path), str(e)) from e

    if config.engine.default_role not in config.roles:
        raise ConfigError(
            str(config_path),
            f"engine.default_role '{config.engine.default_role}' is not in roles {config.roles}",
        )
    # Build once so a bad ladder fails at load time, not mid-incident
    try:
        config.recovery.to_ladder()
    except ValueError as e:
        raise ConfigError(str(config_path), f"recovery: {e}") from e
    return config


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> GoalflowConfig:
    """Load configuration from YAML file.

    Uses mtime-based caching. A missing file yields the defaults.
    """
    if not config_path.exists():
        logger.info(f"Config file not found: {config_path}. Using default configuration.")
        return GoalflowConfig()

    resolved = config_path.resolve()
    result = _get_cached_or_load(resolved, _load_config_from_file)
    return result if result is not None else GoalflowConfig()


def clear_config_cache() -> None:
    """Clear the module-level config cache. Useful for tests."""
    _config_cache.clear()


def _expand_env_vars(data: Any, _path: str = "") -> Any:
    """Recursively expand ``${VAR}`` values from the environment."""
    if isinstance(data, dict):
        return {k: _expand_env_vars(v, f"{_path}.{k}" if _path else k) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item, f"{_path}[{i}]") for i, item in enumerate(data)]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        env_var = data[2:-1]
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(
                f"Environment variable '{env_var}' not set (referenced at config path: {_path or 'root'}). "
                f"The literal string '{data}' will be used."
            )
            return data
        return value
    return data
