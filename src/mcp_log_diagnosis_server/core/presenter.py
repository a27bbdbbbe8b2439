"""Render match results for callers."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from .models import MatchResult, Rule

ConfidenceLabel = Literal["likely", "possible", "weak"]

LIKELY_ABOVE = 0.8
POSSIBLE_FROM = 0.4


class DiagnosisEntry(BaseModel):
    rule_id: str = Field(description="Identifier of the matched rule.")
    cause: str = Field(description="Short explanation of the suspected cause.")
    remediations: list[str] = Field(
        default_factory=list, description="Remediation steps in their stored order."
    )
    confidence_label: ConfidenceLabel = Field(description="Human-readable score band.")
    score: float = Field(ge=0.0, le=1.0, description="0..1 match score.")
    severity: Literal["info", "warning", "fatal"] = Field(
        default="warning", description="Rule severity."
    )
    title: str | None = Field(default=None, description="Optional short rule title.")


class LineDiagnosis(BaseModel):
    """Diagnoses for one line of a scanned log file."""

    line_no: int
    level: str
    text: str
    entries: list[DiagnosisEntry] = Field(default_factory=list)


def confidence_label(score: float) -> ConfidenceLabel:
    """Map a score to its band: >0.8 likely, 0.4-0.8 possible, <0.4 weak."""
    if score > LIKELY_ABOVE:
        return "likely"
    if score >= POSSIBLE_FROM:
        return "possible"
    return "weak"


def render(result: MatchResult) -> list[DiagnosisEntry]:
    return [
        DiagnosisEntry(
            rule_id=m.rule.id,
            cause=m.rule.cause,
            remediations=list(m.rule.remediations),
            confidence_label=confidence_label(m.score),
            score=m.score,
            severity=m.rule.severity.value,
            title=m.rule.title,
        )
        for m in result
    ]


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    """JSON-serializable view of a stored rule."""
    return {
        "id": rule.id,
        "title": rule.title,
        "pattern": rule.pattern,
        "regex": rule.regex,
        "context_tags": sorted(rule.context_tags),
        "cause": rule.cause,
        "remediations": list(rule.remediations),
        "severity": rule.severity.value,
    }


def entries_to_dicts(entries: Iterable[DiagnosisEntry]) -> list[dict[str, object]]:
    return [e.model_dump() for e in entries]


def format_entries(entries: Sequence[DiagnosisEntry]) -> str:
    """Plain-text rendering used by the CLI."""
    if not entries:
        return "No known diagnosis."

    lines: list[str] = []
    for n, e in enumerate(entries, start=1):
        heading = e.title or e.cause
        lines.append(
            f"{n}. [{e.confidence_label} {e.score:.2f}] {heading} "
            f"(rule={e.rule_id}, severity={e.severity})"
        )
        if e.title:
            lines.append(f"   cause: {e.cause}")
        for step_no, step in enumerate(e.remediations, start=1):
            # Snippets may span lines; keep them indented under their step.
            body = step.rstrip("\n").replace("\n", "\n      ")
            lines.append(f"   {step_no}) {body}")
    return "\n".join(lines)


def format_line_diagnoses(results: Sequence[LineDiagnosis]) -> str:
    if not results:
        return "No known diagnosis for any scanned line."
    blocks = [
        f"line {r.line_no} [{r.level}] {r.text}\n{format_entries(r.entries)}" for r in results
    ]
    return "\n\n".join(blocks)
