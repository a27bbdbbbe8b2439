"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_diagnosis_server.core.presenter import DiagnosisEntry, rule_to_dict
from mcp_log_diagnosis_server.core.service import DiagnosisService


def register_resources(mcp: FastMCP, get_service: Callable[[], DiagnosisService]) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-diagnosis/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        service = get_service()
        return (
            "Resources:\n"
            "- app://log-diagnosis/help\n"
            "- app://log-diagnosis/rules\n"
            "- app://log-diagnosis/rules/{rule_id}\n"
            "- app://log-diagnosis/schemas/diagnosis-entry\n"
            f"\nRule source: {service.source or 'not loaded'}\n"
            f"State: {service.state.value}\n"
        )

    @mcp.resource("app://log-diagnosis/rules")
    def all_rules() -> list[dict[str, Any]]:
        """Return every loaded rule."""
        return [rule_to_dict(r) for r in get_service().rules()]

    @mcp.resource("app://log-diagnosis/rules/{rule_id}")
    def one_rule(rule_id: str) -> dict[str, Any]:
        """Return a single rule by id."""
        return rule_to_dict(get_service().get_rule(rule_id))

    @mcp.resource("app://log-diagnosis/schemas/diagnosis-entry")
    def diagnosis_entry_schema() -> dict[str, Any]:
        """Return the JSON schema for diagnosis entries."""
        return DiagnosisEntry.model_json_schema()
