"""Runtime configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from .matcher import DEFAULT_TOP_K, MAX_TOP_K, MatchSettings

RULES_PATH_ENV = "LOG_DIAGNOSIS_RULES_PATH"
LOAD_TIMEOUT_ENV = "LOG_DIAGNOSIS_LOAD_TIMEOUT"
TOP_K_ENV = "LOG_DIAGNOSIS_TOP_K"
MIN_SCORE_ENV = "LOG_DIAGNOSIS_MIN_SCORE"
LOG_LEVEL_ENV = "LOG_DIAGNOSIS_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class DiagnosisConfig:
    # None means the bundled playbook.
    rules_path: Path | None = None
    load_timeout_s: float = 10.0
    default_top_k: int = DEFAULT_TOP_K
    max_top_k: int = MAX_TOP_K
    min_score: float = 0.0
    fuzzy: bool = True
    ignore_case: bool = True

    def match_settings(self) -> MatchSettings:
        return MatchSettings(
            default_top_k=self.default_top_k,
            max_top_k=self.max_top_k,
            min_score=self.min_score,
            fuzzy=self.fuzzy,
        )


def _env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _float_env(name: str) -> float | None:
    raw = _env(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


def resolve_config(cfg: DiagnosisConfig | None = None) -> DiagnosisConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = DiagnosisConfig()

    changes: dict[str, object] = {}

    rules_path = _env(RULES_PATH_ENV)
    if rules_path is not None:
        changes["rules_path"] = Path(rules_path).expanduser()

    timeout = _float_env(LOAD_TIMEOUT_ENV)
    if timeout is not None:
        if timeout <= 0:
            raise ValueError(f"{LOAD_TIMEOUT_ENV} must be > 0")
        changes["load_timeout_s"] = timeout

    top_k_raw = _env(TOP_K_ENV)
    if top_k_raw is not None:
        try:
            top_k = int(top_k_raw)
        except ValueError as exc:
            raise ValueError(f"{TOP_K_ENV} must be an integer") from exc
        if not 1 <= top_k <= cfg.max_top_k:
            raise ValueError(f"{TOP_K_ENV} must be between 1 and {cfg.max_top_k}")
        changes["default_top_k"] = top_k

    min_score = _float_env(MIN_SCORE_ENV)
    if min_score is not None:
        if not 0.0 <= min_score < 1.0:
            raise ValueError(f"{MIN_SCORE_ENV} must be in [0, 1)")
        changes["min_score"] = min_score

    if not changes:
        return cfg
    return replace(cfg, **changes)


def log_level_name() -> str:
    return (os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
