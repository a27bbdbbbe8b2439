"""In-memory rule store.

Rules live in an immutable :class:`RuleSnapshot`. Every mutation builds a complete new
snapshot and swaps the store's reference to it, so readers holding a snapshot never observe
a partial update. Writers are serialized with a lock; readers never block.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from .errors import NotFoundError, RuleIssue, raise_for_issues
from .models import Rule


def compile_pattern(rule: Rule, *, ignore_case: bool = True) -> re.Pattern[str]:
    """Compile a rule pattern. Literal patterns are escaped."""
    flags = re.IGNORECASE if ignore_case else 0
    source = rule.pattern if rule.regex else re.escape(rule.pattern)
    return re.compile(source, flags)


def validate_rule(rule: Rule, *, index: int | None = None) -> list[RuleIssue]:
    """Return structural problems with ``rule`` (empty list when valid)."""
    issues: list[RuleIssue] = []
    rule_id = rule.id or None
    if not rule.id or not rule.id.strip():
        issues.append(RuleIssue(index, None, "id must be a non-empty string"))
    if not rule.pattern or not rule.pattern.strip():
        issues.append(RuleIssue(index, rule_id, "pattern must be non-empty"))
    elif rule.regex:
        try:
            re.compile(rule.pattern)
        except re.error as e:
            issues.append(RuleIssue(index, rule_id, f"invalid regular expression: {e}"))
    if not rule.cause or not rule.cause.strip():
        issues.append(RuleIssue(index, rule_id, "cause must be non-empty"))
    return issues


class RuleSnapshot:
    """Immutable point-in-time view of the rule store."""

    __slots__ = ("_rules", "_by_id", "_by_tag", "_universal", "_order", "_compiled")

    def __init__(self, rules: Iterable[Rule] = (), *, ignore_case: bool = True) -> None:
        ordered = tuple(rules)
        by_id: dict[str, Rule] = {}
        by_tag: dict[str, set[str]] = {}
        universal: list[str] = []
        compiled: dict[str, re.Pattern[str]] = {}

        for rule in ordered:
            by_id[rule.id] = rule
            compiled[rule.id] = compile_pattern(rule, ignore_case=ignore_case)
            if rule.is_universal:
                universal.append(rule.id)
            for tag in rule.context_tags:
                by_tag.setdefault(tag, set()).add(rule.id)

        self._rules = ordered
        self._by_id: Mapping[str, Rule] = MappingProxyType(by_id)
        self._by_tag: Mapping[str, frozenset[str]] = MappingProxyType(
            {tag: frozenset(ids) for tag, ids in by_tag.items()}
        )
        self._universal = frozenset(universal)
        self._order: Mapping[str, int] = MappingProxyType(
            {rule.id: i for i, rule in enumerate(ordered)}
        )
        self._compiled: Mapping[str, re.Pattern[str]] = MappingProxyType(compiled)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def universal_ids(self) -> frozenset[str]:
        return self._universal

    def get(self, rule_id: str) -> Rule:
        try:
            return self._by_id[rule_id]
        except KeyError:
            raise NotFoundError(rule_id) from None

    def ids_with_tag(self, tag: str) -> frozenset[str]:
        return self._by_tag.get(tag, frozenset())

    def tags(self) -> frozenset[str]:
        return frozenset(self._by_tag)

    def position(self, rule_id: str) -> int:
        """Insertion index of a rule (stable tie-breaker)."""
        return self._order[rule_id]

    def pattern_for(self, rule_id: str) -> re.Pattern[str]:
        return self._compiled[rule_id]


class RuleStore:
    """Owner of the current :class:`RuleSnapshot`."""

    def __init__(self, *, ignore_case: bool = True) -> None:
        self._ignore_case = ignore_case
        self._lock = threading.Lock()
        self._snapshot = RuleSnapshot(ignore_case=ignore_case)

    def __len__(self) -> int:
        return len(self._snapshot)

    def snapshot(self) -> RuleSnapshot:
        """Return the current snapshot. Safe from any thread."""
        return self._snapshot

    def ids(self) -> tuple[str, ...]:
        return tuple(rule.id for rule in self._snapshot)

    def get(self, rule_id: str) -> Rule:
        return self._snapshot.get(rule_id)

    def all_with_tag(self, tag: str) -> frozenset[str]:
        return self._snapshot.ids_with_tag(tag.strip().lower())

    def insert(self, rule: Rule) -> None:
        """Add one rule. Fails with DuplicateRuleError if the id is taken."""
        with self._lock:
            current = self._snapshot
            issues = validate_rule(rule)
            if rule.id in current:
                issues.append(
                    RuleIssue(None, rule.id, "duplicate rule id", duplicate=True)
                )
            raise_for_issues(issues)
            self._snapshot = RuleSnapshot(
                (*current.rules, rule), ignore_case=self._ignore_case
            )

    def replace_all(self, rules: Iterable[Rule]) -> RuleSnapshot:
        """Atomically replace every rule. All-or-nothing.

        Raises a single aggregate ParseError listing every invalid entry; the previous
        snapshot is left untouched in that case.
        """
        candidate = tuple(rules)
        issues: list[RuleIssue] = []
        seen: set[str] = set()
        for index, rule in enumerate(candidate):
            issues.extend(validate_rule(rule, index=index))
            if rule.id in seen:
                issues.append(
                    RuleIssue(index, rule.id, "duplicate rule id", duplicate=True)
                )
            seen.add(rule.id)
        raise_for_issues(issues)

        snapshot = RuleSnapshot(candidate, ignore_case=self._ignore_case)
        with self._lock:
            self._snapshot = snapshot
        return snapshot
