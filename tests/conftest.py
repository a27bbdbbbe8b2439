from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from mcp_log_diagnosis_server.core.config import DiagnosisConfig
from mcp_log_diagnosis_server.core.models import Rule, Severity
from mcp_log_diagnosis_server.core.service import DiagnosisService

SMTP_RULES_YAML = """\
rules:
  - id: r1
    pattern: WRONG_VERSION_NUMBER
    context_tags: [smtp]
    cause: TLS/port mismatch
    severity: warning
    remediations:
      - Use port 465 with SSL
      - Use port 587 with STARTTLS
"""


@pytest.fixture
def write_rules(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write(text: str, name: str = "rules.yaml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def smtp_rules_path(write_rules: Callable[[str, str], Path]) -> Path:
    return write_rules(SMTP_RULES_YAML, "smtp.yaml")


@pytest.fixture
def make_service() -> Callable[..., DiagnosisService]:
    def _make(**overrides: object) -> DiagnosisService:
        return DiagnosisService(DiagnosisConfig(**overrides))

    return _make


@pytest.fixture
def make_rule() -> Callable[..., Rule]:
    def _make(
        rule_id: str,
        pattern: str = "boom",
        *,
        cause: str | None = None,
        tags: tuple[str, ...] = (),
        severity: Severity = Severity.WARNING,
        regex: bool = False,
        remediations: tuple[str, ...] = (),
    ) -> Rule:
        return Rule(
            id=rule_id,
            pattern=pattern,
            cause=cause or f"cause of {rule_id}",
            context_tags=frozenset(tags),
            remediations=remediations,
            severity=severity,
            regex=regex,
        )

    return _make


@pytest.fixture
def write_log() -> Callable[[Path], None]:
    def _write(path: Path) -> None:
        path.write_text(
            "\n".join(
                [
                    "2025-12-30T08:12:01Z [INFO] mailer started",
                    "2025-12-30T08:12:03Z [WARNING] retrying send id=abc123",
                    "2025-12-30T08:12:04Z [ERROR] ssl.SSLError: [SSL: WRONG_VERSION_NUMBER] wrong version number",
                    "2025-12-30T08:12:05Z [CRITICAL] mailer giving up",
                ]
            )
            + "\n",
            encoding="utf-8",
        )

    return _write
