"""Error taxonomy for rule loading and diagnosis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


class DiagnosisError(Exception):
    """Base class for all diagnosis errors."""


@dataclass(frozen=True, slots=True)
class RuleIssue:
    """One problem found in a rule source (entry index, rule id if known, reason)."""

    index: int | None
    rule_id: str | None
    reason: str
    duplicate: bool = False

    def __str__(self) -> str:
        where = f"entry {self.index}" if self.index is not None else "source"
        if self.rule_id:
            where += f" (id={self.rule_id!r})"
        return f"{where}: {self.reason}"

    def to_dict(self) -> dict[str, object]:
        return {"index": self.index, "rule_id": self.rule_id, "reason": self.reason}


class ParseError(DiagnosisError):
    """Malformed rule source. Carries every issue found, never just the first."""

    def __init__(self, issues: Iterable[RuleIssue], *, source: str | None = None) -> None:
        self.issues: tuple[RuleIssue, ...] = tuple(issues)
        self.source = source
        prefix = f"Invalid rule source {source}" if source else "Invalid rule source"
        detail = "; ".join(str(i) for i in self.issues) or "no details"
        super().__init__(f"{prefix}: {detail}")


class DuplicateRuleError(ParseError):
    """Two rules share an id."""


class NotFoundError(DiagnosisError, KeyError):
    """Rule id not present in the store."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class NotReadyError(DiagnosisError):
    """diagnose() called before any rule set was installed."""


class LoadTimeoutError(DiagnosisError, TimeoutError):
    """Rule source could not be read within the configured timeout."""


def raise_for_issues(issues: list[RuleIssue], *, source: str | None = None) -> None:
    """Raise the aggregate error for ``issues`` (no-op when empty).

    DuplicateRuleError is raised only when every issue is a duplicate id.
    """
    if not issues:
        return
    if all(i.duplicate for i in issues):
        raise DuplicateRuleError(issues, source=source)
    raise ParseError(issues, source=source)
