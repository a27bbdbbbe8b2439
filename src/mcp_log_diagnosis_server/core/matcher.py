"""Rule matching and ranking.

Scoring
-------
- Exact: the rule pattern (literal substring or regular expression) is found in the log
  text. Score is 1.0.
- Fuzzy: no exact hit. Score is ``FUZZY_WEIGHT * jaccard(tokens(log_text),
  tokens(cause + pattern))`` where tokens are lower-cased alphanumeric runs. The weight keeps
  every fuzzy score at or below 0.8, so an exact match always outranks a fuzzy one.

Results are ordered by score (descending), then severity (fatal > warning > info), then rule
insertion order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import DiagnosticQuery, Match, MatchResult, Rule
from .rule_store import RuleSnapshot

EXACT_SCORE = 1.0
FUZZY_WEIGHT = 0.8
DEFAULT_TOP_K = 5
MAX_TOP_K = 10

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


@dataclass(frozen=True, slots=True)
class MatchSettings:
    """Tunables for a single match call."""

    default_top_k: int = DEFAULT_TOP_K
    max_top_k: int = MAX_TOP_K
    min_score: float = 0.0
    fuzzy: bool = True


def tokenize(text: str) -> frozenset[str]:
    return frozenset(_TOKEN_RE.findall(text.lower()))


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def resolve_top_k(top_k: int | None, settings: MatchSettings) -> int:
    """Apply the default and the cap to a caller-supplied top_k."""
    if top_k is None:
        top_k = settings.default_top_k
    if top_k <= 0:
        raise ValueError("top_k must be > 0")
    return min(top_k, settings.max_top_k)


def candidate_rules(query: DiagnosticQuery, snapshot: RuleSnapshot) -> list[Rule]:
    """Rules applicable to the query's context tags, in insertion order."""
    if not query.context_tags:
        return list(snapshot.rules)

    ids = set(snapshot.universal_ids)
    for tag in query.context_tags:
        ids |= snapshot.ids_with_tag(tag)
    return [rule for rule in snapshot.rules if rule.id in ids]


def score_rule(
    rule: Rule,
    log_text: str,
    snapshot: RuleSnapshot,
    *,
    log_tokens: frozenset[str] | None = None,
    fuzzy: bool = True,
) -> tuple[float, bool]:
    """Return ``(score, exact)`` for one rule against ``log_text``."""
    if snapshot.pattern_for(rule.id).search(log_text):
        return EXACT_SCORE, True
    if not fuzzy:
        return 0.0, False

    if log_tokens is None:
        log_tokens = tokenize(log_text)
    rule_tokens = tokenize(f"{rule.cause} {rule.pattern}")
    return round(FUZZY_WEIGHT * jaccard(log_tokens, rule_tokens), 6), False


def _sort_key(m: Match, snapshot: RuleSnapshot) -> tuple[float, int, int]:
    return (-m.score, -m.rule.severity.rank, snapshot.position(m.rule.id))


def match(
    query: DiagnosticQuery,
    snapshot: RuleSnapshot,
    *,
    settings: MatchSettings | None = None,
) -> MatchResult:
    """Rank the snapshot's rules against ``query``.

    Pure function of its arguments. An empty tuple means no known diagnosis.
    """
    settings = settings or MatchSettings()
    top_k = resolve_top_k(query.top_k, settings)

    log_tokens = tokenize(query.log_text)
    matches: list[Match] = []
    for rule in candidate_rules(query, snapshot):
        score, exact = score_rule(
            rule,
            query.log_text,
            snapshot,
            log_tokens=log_tokens,
            fuzzy=settings.fuzzy,
        )
        if score > settings.min_score:
            matches.append(Match(rule=rule, score=score, exact=exact))

    matches.sort(key=lambda m: _sort_key(m, snapshot))
    return tuple(matches[:top_k])
