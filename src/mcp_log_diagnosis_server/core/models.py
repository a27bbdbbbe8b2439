"""Core data models for rule-based log diagnosis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class Severity(str, Enum):
    """Rule severity. Informs ranking and display only."""

    INFO = "info"
    WARNING = "warning"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.FATAL: 2,
}


class LogLevel(str, Enum):
    """Normalized log levels recognised by the file scanner."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"
    UNKNOWN = "UNKNOWN"


def normalize_tags(tags: Iterable[str] | str | None) -> frozenset[str]:
    """Lower-case and strip context tags, dropping blanks.

    A bare string is treated as a single tag rather than a sequence of characters.
    """
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        tags = [tags]
    return frozenset(t.strip().lower() for t in tags if t and t.strip())


@dataclass(frozen=True, slots=True)
class Rule:
    """A stored symptom-to-remedy mapping."""

    id: str
    pattern: str
    cause: str
    context_tags: frozenset[str] = frozenset()
    remediations: tuple[str, ...] = ()
    severity: Severity = Severity.WARNING
    regex: bool = False  # literal substring unless set
    title: str | None = None

    def __post_init__(self) -> None:
        # Tags are matched lower-case however the rule was built.
        object.__setattr__(self, "context_tags", normalize_tags(self.context_tags))

    @property
    def is_universal(self) -> bool:
        return not self.context_tags


@dataclass(frozen=True, slots=True)
class DiagnosticQuery:
    """Caller-supplied log text plus optional narrowing context."""

    log_text: str
    context_tags: frozenset[str] = frozenset()
    top_k: int | None = None


@dataclass(frozen=True, slots=True)
class Match:
    """A rule that matched a query, with its score."""

    rule: Rule
    score: float
    exact: bool


MatchResult = tuple[Match, ...]


@dataclass(frozen=True, slots=True)
class LogHit:
    """Scan candidate from a log file (line number + inferred level + decoded text)."""

    line_no: int
    level: LogLevel
    text: str
