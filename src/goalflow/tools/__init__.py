"""Tool catalogue and role-based permission filtering."""

from .permissions import AGENT_ROLES, AgentRole, ToolParameter, ToolSpec, filter_tools_by_role, load_tool_catalogue

__all__ = [
    "AGENT_ROLES",
    "AgentRole",
    "ToolParameter",
    "ToolSpec",
    "filter_tools_by_role",
    "load_tool_catalogue",
]
