"""Rule store, matcher, loader and presenter for log diagnosis."""

from __future__ import annotations

from .config import DiagnosisConfig, resolve_config
from .errors import (
    DiagnosisError,
    DuplicateRuleError,
    LoadTimeoutError,
    NotFoundError,
    NotReadyError,
    ParseError,
    RuleIssue,
)
from .loader import aload_rules, bundled_rules_path, load_rules, parse_rules, rules_from_data
from .matcher import MatchSettings, match
from .models import DiagnosticQuery, LogLevel, Match, Rule, Severity
from .presenter import DiagnosisEntry, LineDiagnosis, confidence_label, render
from .rule_store import RuleSnapshot, RuleStore
from .service import DiagnosisService, ServiceState

__all__ = [
    "DiagnosisConfig",
    "DiagnosisEntry",
    "DiagnosisError",
    "DiagnosisService",
    "DiagnosticQuery",
    "DuplicateRuleError",
    "LineDiagnosis",
    "LoadTimeoutError",
    "LogLevel",
    "Match",
    "MatchSettings",
    "NotFoundError",
    "NotReadyError",
    "ParseError",
    "Rule",
    "RuleIssue",
    "RuleSnapshot",
    "RuleStore",
    "ServiceState",
    "Severity",
    "aload_rules",
    "bundled_rules_path",
    "confidence_label",
    "load_rules",
    "match",
    "parse_rules",
    "render",
    "resolve_config",
    "rules_from_data",
]
