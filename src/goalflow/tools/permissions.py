"""Role-based tool access control.

A tool with no ``roles`` annotation is open to every role, which keeps older
tool definitions working. An empty list disables the tool for everyone.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Literal, Optional, TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigError


class AgentRole(str, Enum):
    """Worker roles known to the default catalogue."""
    PM = "pm"
    DEV = "dev"
    QA = "qa"
    DEVOPS = "devops"
    OPS = "ops"
    CONTENT = "content"
    MONITORING = "monitoring"
    INCIDENT = "incident"


AGENT_ROLES: List[str] = [role.value for role in AgentRole]


class ToolParameter(BaseModel):
    name: str
    type: Literal["string", "number", "boolean"] = "string"
    description: str = ""
    required: bool = False


class ToolSpec(BaseModel):
    """Declarative description of a tool a worker may call."""

    name: str
    description: str = ""
    parameters: List[ToolParameter] = Field(default_factory=list)
    roles: Optional[List[str]] = None  # None = all roles, [] = disabled


T = TypeVar("T")


def _role_value(role: Any) -> str:
    return role.value if hasattr(role, "value") else str(role)


def filter_tools_by_role(tools: Iterable[T], role: Any) -> List[T]:
    """Return the tools usable by ``role``, preserving catalogue order.

    Works on ToolSpec or any object exposing an optional ``roles`` attribute.
    """
    wanted = _role_value(role)
    permitted = []
    for tool in tools:
        roles = getattr(tool, "roles", None)
        if roles is None:
            permitted.append(tool)
            continue
        if wanted in {_role_value(r) for r in roles}:
            permitted.append(tool)
    return permitted


def load_tool_catalogue(path: Path) -> List[ToolSpec]:
    """Load a YAML catalogue of the form ``tools: [{name, roles?, ...}]``."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(str(path), "file not found") from e
    except yaml.YAMLError as e:
        raise ConfigError(str(path), f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(str(path), "top level must be a mapping")
    try:
        return [ToolSpec(**entry) for entry in data.get("tools") or []]
    except (ValidationError, TypeError) as e:
        raise ConfigError(str(path), str(e)) from e
