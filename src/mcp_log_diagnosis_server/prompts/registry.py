"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP


def _format_tags(tags: Sequence[str] | str | None) -> str:
    """Return tags as a JSON array literal for prompt display."""
    if tags is None:
        return "[]"
    if isinstance(tags, str):
        items = [s.strip().lower() for s in tags.split(",") if s.strip()]
    else:
        items = [str(s).strip().lower() for s in tags if str(s).strip()]
    if not items:
        return "[]"
    quoted = ", ".join(f'"{item}"' for item in items)
    return f"[{quoted}]"


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def explain_failure(
        log_text: str,
        context_tags: Sequence[str] | str | None = None,
        top_k: int = 3,
    ) -> list[dict[str, Any]]:
        """Build a prompt that explains a failure using the rule-based diagnosis."""
        tags_display = _format_tags(context_tags)
        return [
            {
                "role": "system",
                "content": (
                    "You are an operations assistant for data-platform stacks (Docker Compose, "
                    "Prefect/Airflow, Snowflake, Great Expectations, Kafka/Postgres, SMTP). "
                    "Base explanations on the diagnose tool output. "
                    "Do not invent fixes; if no diagnosis is returned, say so."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Explain this failure. Follow this workflow:\n"
                    "- Always call diagnose first with the parameters below.\n"
                    "- If no entries are returned, say 'No known diagnosis' and suggest "
                    "retrying with fewer or different context_tags.\n"
                    "- Prefer entries labelled 'likely'; mention 'possible' ones as alternatives "
                    "and ignore 'weak' ones unless nothing else matched.\n"
                    "- Remediation steps may contain shell snippets; present them, never claim "
                    "they were run.\n\n"
                    "Call diagnose with:\n"
                    f"- log_text: {log_text!r}\n"
                    f"- context_tags: {tags_display}\n"
                    f"- top_k: {top_k}\n\n"
                    "Return this structure:\n"
                    "1) Most likely cause (1-2 sentences, cite rule_id)\n"
                    "2) Fix steps (in the stored order)\n"
                    "3) Alternatives (0-2 bullets)\n"
                ),
            },
        ]

    @mcp.prompt()
    def triage_log_file(
        log_path: str,
        context_tags: Sequence[str] | str | None = None,
        levels: Sequence[str] | str = ("ERROR", "CRITICAL"),
    ) -> list[dict[str, Any]]:
        """Build a prompt for diagnosing every failing line of a log file."""
        if isinstance(levels, str):
            levels = [s for s in levels.split(",") if s.strip()]
        levels_display = ", ".join(f'"{s.strip().upper()}"' for s in levels)
        return [
            {
                "role": "system",
                "content": (
                    "You are a senior incident triage assistant. Provide concise, "
                    "evidence-based summaries. Do not fabricate log lines."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Call diagnose_log_file with:\n"
                    f"- log_path: {log_path}\n"
                    f"- context_tags: {_format_tags(context_tags)}\n"
                    f"- levels: [{levels_display}]\n\n"
                    "Group the returned lines by rule_id, quote one line per group "
                    "(with line_no), and list the remediation steps once per group."
                ),
            },
        ]
