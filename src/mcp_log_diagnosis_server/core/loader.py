"""Rule source loading and validation.

A rule source is YAML or JSON. The top level is either a list of entries or a mapping
with a ``rules`` list::

    version: 1
    rules:
      - id: smtp-wrong-version
        pattern: WRONG_VERSION_NUMBER
        context_tags: [smtp]
        cause: TLS/port mismatch
        severity: warning
        remediations:
          - Use port 465 with SSL
          - Use port 587 with STARTTLS

``id``, ``pattern`` and ``cause`` are required. Loading is all-or-nothing: every problem in
the source is collected into a single :class:`ParseError`.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping, Sequence
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import aiofiles
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import LoadTimeoutError, ParseError, RuleIssue, raise_for_issues
from .models import Rule, Severity, normalize_tags
from .rule_store import validate_rule

SourceFormat = Literal["yaml", "json"]

TEXT_ENCODING = "utf-8"
BUNDLED_RULES = "playbook.yaml"
_JSON_SUFFIXES = {".json"}


class RuleDefinition(BaseModel):
    """Schema of one entry in a rule source."""

    # Patterns and remediation steps are stored verbatim.
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    pattern: str = Field(min_length=1)
    cause: str = Field(min_length=1)
    context_tags: list[str] = Field(default_factory=list)
    remediations: list[str] = Field(default_factory=list)
    severity: Severity = Severity.WARNING
    regex: bool = False
    title: str | None = None

    @field_validator("id", "title", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("context_tags", "remediations", mode="before")
    @classmethod
    def _single_string_as_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _severity_lower(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def to_rule(self) -> Rule:
        return Rule(
            id=self.id,
            pattern=self.pattern,
            cause=self.cause,
            context_tags=normalize_tags(self.context_tags),
            remediations=tuple(self.remediations),
            severity=self.severity,
            regex=self.regex,
            title=self.title or None,
        )


def bundled_rules_path() -> Path:
    """Path to the playbook shipped with the package."""
    return Path(str(resources.files("mcp_log_diagnosis_server.rules") / BUNDLED_RULES))


def detect_format(path: Path) -> SourceFormat:
    return "json" if path.suffix.lower() in _JSON_SUFFIXES else "yaml"


def _issues_from_validation(
    err: ValidationError, *, index: int, rule_id: str | None
) -> list[RuleIssue]:
    issues: list[RuleIssue] = []
    for e in err.errors():
        field = ".".join(str(p) for p in e["loc"]) or "entry"
        kind = e["type"]
        if kind == "missing":
            reason = f"missing required field '{field}'"
        elif kind == "extra_forbidden":
            reason = f"unknown field '{field}'"
        elif kind == "enum" and field == "severity":
            allowed = ", ".join(s.value for s in Severity)
            reason = f"unknown severity {e['input']!r} (allowed: {allowed})"
        else:
            reason = f"{field}: {e['msg']}"
        issues.append(RuleIssue(index, rule_id, reason))
    return issues


def _entries_of(data: Any) -> Sequence[Any]:
    if data is None:
        return []
    if isinstance(data, Mapping):
        if "rules" not in data:
            raise ParseError([RuleIssue(None, None, "mapping source must have a 'rules' list")])
        data = data["rules"] or []
    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        raise ParseError([RuleIssue(None, None, "rules must be a list of entries")])
    return data


def rules_from_data(data: Any, *, source: str | None = None) -> tuple[Rule, ...]:
    """Validate decoded rule data and build Rule values."""
    try:
        entries = _entries_of(data)
    except ParseError as e:
        raise ParseError(e.issues, source=source) from None

    rules: list[Rule] = []
    issues: list[RuleIssue] = []
    seen: set[str] = set()

    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            issues.append(RuleIssue(index, None, "entry must be a mapping"))
            continue

        raw_id = entry.get("id")
        rule_id = raw_id.strip() if isinstance(raw_id, str) and raw_id.strip() else None
        # Ids count as seen even when their entry is invalid.
        duplicate = rule_id is not None and rule_id in seen
        if rule_id is not None:
            seen.add(rule_id)

        rule: Rule | None = None
        try:
            definition = RuleDefinition.model_validate(dict(entry))
        except ValidationError as e:
            issues.extend(_issues_from_validation(e, index=index, rule_id=rule_id))
        else:
            rule = definition.to_rule()
            rule_issues = validate_rule(rule, index=index)
            if rule_issues:
                issues.extend(rule_issues)
                rule = None

        if duplicate:
            issues.append(RuleIssue(index, rule_id, "duplicate rule id", duplicate=True))
        elif rule is not None:
            rules.append(rule)

    raise_for_issues(issues, source=source)
    return tuple(rules)


def decode(text: str, *, fmt: SourceFormat = "yaml", source: str | None = None) -> Any:
    """Decode rule source text without validating it."""
    try:
        if fmt == "json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(
            [RuleIssue(None, None, f"malformed {fmt.upper()}: {e}")], source=source
        ) from e


def parse_rules(
    text: str, *, fmt: SourceFormat = "yaml", source: str | None = None
) -> tuple[Rule, ...]:
    return rules_from_data(decode(text, fmt=fmt, source=source), source=source)


def load_rules(source: str | Path) -> tuple[Rule, ...]:
    """Read and validate a rule file.

    Raises FileNotFoundError for a missing file and ParseError for invalid content.
    """
    path = Path(source).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"Rule source not found: {path}")
    try:
        text = path.read_text(encoding=TEXT_ENCODING)
    except UnicodeDecodeError as e:
        raise _not_utf8(e, path) from e
    return parse_rules(text, fmt=detect_format(path), source=str(path))


def _not_utf8(err: UnicodeDecodeError, path: Path) -> ParseError:
    return ParseError(
        [RuleIssue(None, None, f"source is not valid UTF-8: {err}")], source=str(path)
    )


async def read_source_async(path: Path) -> str:
    """Read a rule file without blocking the event loop."""
    try:
        async with aiofiles.open(path, encoding=TEXT_ENCODING) as f:
            return await f.read()
    except UnicodeDecodeError as e:
        raise _not_utf8(e, path) from e


async def _aload(path: Path) -> tuple[Rule, ...]:
    if not await asyncio.to_thread(path.is_file):
        raise FileNotFoundError(f"Rule source not found: {path}")
    text = await read_source_async(path)
    return await asyncio.to_thread(
        parse_rules, text, fmt=detect_format(path), source=str(path)
    )


async def aload_rules(source: str | Path, *, timeout: float | None = None) -> tuple[Rule, ...]:
    """Async variant of :func:`load_rules` with an optional timeout (seconds).

    ``timeout`` covers the whole load, reading and parsing alike; exceeding it raises
    LoadTimeoutError. Cancellation propagates.
    """
    path = Path(source).expanduser()
    try:
        return await asyncio.wait_for(_aload(path), timeout=timeout)
    except TimeoutError as e:
        raise LoadTimeoutError(f"Timed out after {timeout}s loading rule source {path}") from e
