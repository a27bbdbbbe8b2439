"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into service calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from mcp_log_diagnosis_server.core.errors import (
    DuplicateRuleError,
    LoadTimeoutError,
    ParseError,
)
from mcp_log_diagnosis_server.core.models import LogLevel, normalize_tags
from mcp_log_diagnosis_server.core.presenter import entries_to_dicts, rule_to_dict
from mcp_log_diagnosis_server.core.scanning import DEFAULT_LEVELS
from mcp_log_diagnosis_server.core.service import DiagnosisService

DEFAULT_LINE_LIMIT = 200
HARD_LINE_LIMIT = 5000
ALL_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _parse_levels(levels: Sequence[str] | None) -> tuple[LogLevel, ...]:
    """Parse user-supplied level names into LogLevel enums."""
    if not levels:
        return DEFAULT_LEVELS
    out: list[LogLevel] = []
    for s in levels:
        name = s.strip().upper()
        if not name:
            continue
        if name == "WARN":
            name = "WARNING"
        try:
            out.append(LogLevel[name])
        except KeyError as e:
            valid = ", ".join(ALL_LEVELS)
            raise ValueError(
                f"Unknown log level '{s}'. Valid values: {valid}. "
                "Tip: levels is case-insensitive (e.g., 'error', 'WARNING')."
            ) from e
    return tuple(out) or DEFAULT_LEVELS


def diagnose_impl(
    service: DiagnosisService,
    *,
    log_text: str,
    context_tags: Sequence[str] | None = None,
    top_k: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `diagnose` MCP tool."""
    entries = service.diagnose(log_text, context_tags=context_tags, top_k=top_k)
    return {
        "count": len(entries),
        "context_tags": sorted(normalize_tags(context_tags)),
        "entries": entries_to_dicts(entries),
    }


def diagnose_log_file_impl(
    service: DiagnosisService,
    *,
    log_path: str,
    context_tags: Sequence[str] | None = None,
    top_k: int | None = None,
    levels: Sequence[str] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `diagnose_log_file` MCP tool.

    ``limit`` caps the number of diagnosed lines returned (hard-capped).
    """
    if limit is None:
        limit = DEFAULT_LINE_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    limit = min(limit, HARD_LINE_LIMIT)

    results = service.diagnose_file(
        log_path,
        context_tags=context_tags,
        top_k=top_k,
        levels=_parse_levels(levels),
        max_lines=limit,
    )
    return {
        "count": len(results),
        "lines": [r.model_dump() for r in results],
    }


def _error(kind: str, exc: Exception, **extra: Any) -> dict[str, Any]:
    return {"status": "error", "error": kind, "message": str(exc), **extra}


async def reload_rules_impl(
    service: DiagnosisService,
    *,
    source: str | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Implementation for the `reload_rules` MCP tool.

    Rule-source problems are returned as ``{"status": "error", ...}`` so the client can show
    every issue; the previously loaded rules keep serving in that case.
    """
    try:
        count = await service.areload(source, timeout=timeout)
    except DuplicateRuleError as e:
        return _error("duplicate_rule", e, issues=[i.to_dict() for i in e.issues])
    except ParseError as e:
        return _error("parse_error", e, issues=[i.to_dict() for i in e.issues])
    except LoadTimeoutError as e:
        return _error("load_timeout", e)
    except FileNotFoundError as e:
        return _error("not_found", e)

    return {"status": "ok", "rule_count": count, "source": service.source}


def list_rules_impl(
    service: DiagnosisService,
    *,
    context_tag: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `list_rules` MCP tool."""
    snapshot = service.snapshot()
    if context_tag:
        ids = snapshot.ids_with_tag(context_tag.strip().lower())
        rules = [r for r in snapshot if r.id in ids]
    else:
        rules = list(snapshot)
    return {
        "count": len(rules),
        "source": service.source,
        "tags": sorted(snapshot.tags()),
        "rules": [rule_to_dict(r) for r in rules],
    }
