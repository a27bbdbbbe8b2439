"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: callable actions (diagnose a log line or file, reload rules)
- Resources: addressable data blobs (loaded rules, entry schema)
- Prompts: reusable conversation templates that clients can invoke

Run locally (stdio):
    python -m mcp_log_diagnosis_server.server.diagnosis_server
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_diagnosis_server.core.config import log_level_name
from mcp_log_diagnosis_server.core.service import DiagnosisService
from mcp_log_diagnosis_server.prompts.registry import register_prompts
from mcp_log_diagnosis_server.resources.registry import register_resources
from mcp_log_diagnosis_server.tools.diagnose import (
    diagnose_impl,
    diagnose_log_file_impl,
    list_rules_impl,
    reload_rules_impl,
)

LOGGER = logging.getLogger(__name__)

_service: DiagnosisService | None = None
_service_lock = threading.Lock()


def configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level = getattr(logging, log_level_name(), logging.INFO)
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_service() -> DiagnosisService:
    """Return the process-wide service, loading the configured rules on first use."""
    global _service
    with _service_lock:
        if _service is None:
            service = DiagnosisService()
            service.reload()
            _service = service
        return _service


def set_service(service: DiagnosisService | None) -> None:
    """Replace the process-wide service (used by tests and embedding callers)."""
    global _service
    with _service_lock:
        _service = service


mcp = FastMCP("log-diagnosis", json_response=True)

register_resources(mcp, get_service)
register_prompts(mcp)


@mcp.tool()
def diagnose(
    log_text: str,
    context_tags: Sequence[str] | None = None,
    top_k: int | None = None,
) -> dict[str, Any]:
    """Match a log line or short excerpt against the troubleshooting rules.

    Parameters
    ----------
    log_text:
        The observed error text (e.g., "ssl.SSLError: WRONG_VERSION_NUMBER").
    context_tags:
        Optional subsystems to narrow the search (e.g., ["smtp"], ["docker", "postgres"]).
        Rules without tags always apply.
    top_k:
        Maximum number of diagnoses (default 5, hard-capped at 10).

    Returns
    -------
    dict:
        {"count": int, "context_tags": list[str], "entries": list[dict]} where each entry has
        rule_id, cause, remediations, confidence_label, score, severity and title.
        An empty entries list means no known diagnosis.
    """
    return diagnose_impl(get_service(), log_text=log_text, context_tags=context_tags, top_k=top_k)


@mcp.tool()
def diagnose_log_file(
    log_path: str,
    context_tags: Sequence[str] | None = None,
    levels: Sequence[str] | None = None,
    top_k: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Diagnose every warning-or-worse line of a local log file (plain text or .gz).

    levels:
        Which inferred levels to diagnose (default WARNING, ERROR, CRITICAL). Case-insensitive.
    limit:
        Maximum number of diagnosed lines returned (hard-capped in the implementation).
    """
    return diagnose_log_file_impl(
        get_service(),
        log_path=log_path,
        context_tags=context_tags,
        top_k=top_k,
        levels=levels,
        limit=limit,
    )


@mcp.tool()
async def reload_rules(source: str | None = None) -> dict[str, Any]:
    """Reload rules from a YAML/JSON file (default: the configured source).

    All-or-nothing: on error the previous rules keep serving and every issue is reported.
    """
    return await reload_rules_impl(get_service(), source=source)


@mcp.tool()
def list_rules(context_tag: str | None = None) -> dict[str, Any]:
    """List loaded rules, optionally only those tagged with ``context_tag``."""
    return list_rules_impl(get_service(), context_tag=context_tag)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    get_service()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
