"""Diagnosis service: rule lifecycle plus the caller-facing diagnose API.

Lifecycle::

    UNINITIALIZED -> LOADING -> READY
                     LOADING -> FAILED   (first load failed, nothing to serve)
    READY         -> LOADING -> READY    (reload; a failed reload keeps the last good rules)

Only a service that has installed at least one rule set accepts ``diagnose`` calls.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Collection, Iterable
from enum import Enum
from pathlib import Path

from .config import DiagnosisConfig, resolve_config
from .errors import NotReadyError
from .loader import aload_rules, bundled_rules_path, load_rules
from .matcher import match
from .models import DiagnosticQuery, LogLevel, Rule, normalize_tags
from .presenter import DiagnosisEntry, LineDiagnosis, render
from .rule_store import RuleSnapshot, RuleStore
from .scanning import DEFAULT_LEVELS, iter_hits

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class DiagnosisService:
    """Owns a :class:`RuleStore` and serves diagnoses from its current snapshot."""

    def __init__(self, config: DiagnosisConfig | None = None) -> None:
        self._config = config or resolve_config()
        self._settings = self._config.match_settings()
        self._store = RuleStore(ignore_case=self._config.ignore_case)
        self._state_lock = threading.Lock()
        self._state = ServiceState.UNINITIALIZED
        self._has_rules = False
        self._source: str | None = None
        self._last_error: Exception | None = None

    @property
    def config(self) -> DiagnosisConfig:
        return self._config

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def source(self) -> str | None:
        """Where the currently served rules came from."""
        return self._source

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def is_ready(self) -> bool:
        return self._has_rules

    def default_source(self) -> Path:
        return self._config.rules_path or bundled_rules_path()

    # -- lifecycle -------------------------------------------------------------

    def _begin_load(self) -> None:
        with self._state_lock:
            self._state = ServiceState.LOADING

    def _load_failed(self, error: BaseException, source: str) -> None:
        with self._state_lock:
            if isinstance(error, Exception):
                self._last_error = error
            self._state = ServiceState.READY if self._has_rules else ServiceState.FAILED
        if isinstance(error, asyncio.CancelledError):
            logger.info("Rule load from %s cancelled", source)
        elif self._has_rules:
            logger.warning("Rule reload from %s failed, keeping previous rules: %s", source, error)
        else:
            logger.error("Rule load from %s failed: %s", source, error)

    def install(self, rules: Iterable[Rule], *, source: str = "<memory>") -> int:
        """Atomically replace the served rules. Returns the number installed."""
        self._begin_load()
        try:
            snapshot = self._store.replace_all(rules)
        except BaseException as e:
            self._load_failed(e, source)
            raise
        with self._state_lock:
            self._has_rules = True
            self._source = source
            self._last_error = None
            self._state = ServiceState.READY
        logger.info("Loaded %d rules from %s", len(snapshot), source)
        return len(snapshot)

    def reload(self, source: str | Path | None = None) -> int:
        """Load rules from ``source`` (default: configured path or bundled playbook).

        Raises ParseError or OSError; the previously served rules stay in place on failure.
        """
        path = Path(source) if source is not None else self.default_source()
        self._begin_load()
        try:
            rules = load_rules(path)
        except BaseException as e:
            self._load_failed(e, str(path))
            raise
        return self.install(rules, source=str(path))

    async def areload(
        self, source: str | Path | None = None, *, timeout: float | None = None
    ) -> int:
        """Async reload with a timeout (default: configured ``load_timeout_s``).

        Raises LoadTimeoutError on timeout. Cancellation leaves prior state intact.
        """
        path = Path(source) if source is not None else self.default_source()
        timeout = self._config.load_timeout_s if timeout is None else timeout
        self._begin_load()
        try:
            rules = await aload_rules(path, timeout=timeout)
        except BaseException as e:
            self._load_failed(e, str(path))
            raise
        return self.install(rules, source=str(path))

    # -- queries ---------------------------------------------------------------

    def snapshot(self) -> RuleSnapshot:
        if not self._has_rules:
            raise NotReadyError("No rule set loaded; call reload() first.")
        return self._store.snapshot()

    def rules(self) -> tuple[Rule, ...]:
        return self.snapshot().rules

    def get_rule(self, rule_id: str) -> Rule:
        return self.snapshot().get(rule_id)

    def diagnose(
        self,
        log_text: str,
        context_tags: Iterable[str] | str | None = None,
        top_k: int | None = None,
    ) -> list[DiagnosisEntry]:
        """Return ranked diagnoses for ``log_text``. Empty list means no known diagnosis."""
        snapshot = self.snapshot()
        query = DiagnosticQuery(
            log_text=log_text,
            context_tags=normalize_tags(context_tags),
            top_k=top_k,
        )
        return render(match(query, snapshot, settings=self._settings))

    def diagnose_file(
        self,
        log_path: str | Path,
        *,
        context_tags: Iterable[str] | str | None = None,
        top_k: int | None = None,
        levels: Collection[LogLevel] = DEFAULT_LEVELS,
        max_lines: int | None = None,
    ) -> list[LineDiagnosis]:
        """Diagnose every warning-or-worse line of a log file.

        Lines without any diagnosis are omitted. ``max_lines`` caps the number of returned
        lines, not the number scanned.
        """
        if max_lines is not None and max_lines <= 0:
            raise ValueError("max_lines must be > 0")

        # One snapshot for the whole file so a concurrent reload cannot split the report.
        snapshot = self.snapshot()
        tags = normalize_tags(context_tags)
        out: list[LineDiagnosis] = []
        for hit in iter_hits(log_path, levels=levels):
            query = DiagnosticQuery(log_text=hit.text, context_tags=tags, top_k=top_k)
            entries = render(match(query, snapshot, settings=self._settings))
            if not entries:
                continue
            out.append(
                LineDiagnosis(
                    line_no=hit.line_no,
                    level=hit.level.value,
                    text=hit.text,
                    entries=entries,
                )
            )
            if max_lines is not None and len(out) >= max_lines:
                break
        return out
