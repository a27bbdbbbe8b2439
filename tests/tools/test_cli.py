from __future__ import annotations

import json
from pathlib import Path

from mcp_log_diagnosis_server.cli import main


def test_cli_diagnose_text(smtp_rules_path: Path, capsys) -> None:
    code = main(
        ["diagnose", "ssl.SSLError: WRONG_VERSION_NUMBER", "--rules", str(smtp_rules_path), "--tag", "smtp"]
    )
    out = capsys.readouterr().out
    assert code == 0
    assert "[likely 1.00] TLS/port mismatch (rule=r1" in out
    assert "1) Use port 465 with SSL" in out


def test_cli_diagnose_json(smtp_rules_path: Path, capsys) -> None:
    code = main(
        ["diagnose", "WRONG_VERSION_NUMBER", "--rules", str(smtp_rules_path), "--tag", "smtp", "--json"]
    )
    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data[0]["rule_id"] == "r1"


def test_cli_diagnose_no_match_exit_code(smtp_rules_path: Path, capsys) -> None:
    code = main(["diagnose", "WRONG_VERSION_NUMBER", "--rules", str(smtp_rules_path), "--tag", "kafka"])
    assert code == 1
    assert "No known diagnosis." in capsys.readouterr().out


def test_cli_scan(smtp_rules_path: Path, tmp_path: Path, write_log, capsys) -> None:
    log = tmp_path / "mailer.log"
    write_log(log)

    code = main(["scan", str(log), "--rules", str(smtp_rules_path), "--tag", "smtp"])

    out = capsys.readouterr().out
    assert code == 0
    assert "line 3 [ERROR]" in out
    assert "Diagnosed 1 lines." in out


def test_cli_validate_reports_issues(write_rules, capsys) -> None:
    path = write_rules("- {id: a, pattern: p, cause: c}\n- {id: a, pattern: q, cause: c}\n")

    code = main(["validate", str(path)])

    err = capsys.readouterr().err
    assert code == 2
    assert "duplicate rule id" in err


def test_cli_validate_ok(smtp_rules_path: Path, capsys) -> None:
    assert main(["validate", str(smtp_rules_path)]) == 0
    assert "OK: 1 rules; tags: smtp" in capsys.readouterr().out


def test_cli_missing_rules_file(tmp_path: Path, capsys) -> None:
    code = main(["diagnose", "x", "--rules", str(tmp_path / "none.yaml")])
    assert code == 2
    assert "not found" in capsys.readouterr().err
