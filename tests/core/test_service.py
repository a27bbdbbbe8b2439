from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from mcp_log_diagnosis_server.core import loader
from mcp_log_diagnosis_server.core.errors import (
    LoadTimeoutError,
    NotFoundError,
    NotReadyError,
    ParseError,
)
from mcp_log_diagnosis_server.core.models import LogLevel
from mcp_log_diagnosis_server.core.service import DiagnosisService, ServiceState

BAD_RULES = "- id: x\n  pattern: p\n"


def test_diagnose_before_load_raises_not_ready(make_service) -> None:
    service = make_service()
    assert service.state is ServiceState.UNINITIALIZED
    with pytest.raises(NotReadyError):
        service.diagnose("anything")


def test_example_scenario(make_service, smtp_rules_path: Path) -> None:
    service = make_service()
    assert service.reload(smtp_rules_path) == 1
    assert service.state is ServiceState.READY

    (entry,) = service.diagnose("ssl.SSLError: WRONG_VERSION_NUMBER", context_tags={"smtp"})
    assert entry.rule_id == "r1"
    assert entry.confidence_label == "likely"
    assert entry.score == 1.0
    assert entry.remediations == ["Use port 465 with SSL", "Use port 587 with STARTTLS"]

    assert service.diagnose("ssl.SSLError: WRONG_VERSION_NUMBER", context_tags={"snowflake"}) == []


def test_diagnose_is_idempotent(make_service, smtp_rules_path: Path) -> None:
    service = make_service()
    service.reload(smtp_rules_path)
    first = service.diagnose("ssl.SSLError: WRONG_VERSION_NUMBER", ["smtp"], 3)
    second = service.diagnose("ssl.SSLError: WRONG_VERSION_NUMBER", ["smtp"], 3)
    assert first == second


def test_every_loaded_rule_is_retrievable(make_service) -> None:
    service = make_service()
    count = service.reload()
    assert count == len(service.rules())
    for rule in service.rules():
        assert service.get_rule(rule.id) is rule
    with pytest.raises(NotFoundError):
        service.get_rule("does-not-exist")


def test_first_load_failure_moves_to_failed(make_service, write_rules) -> None:
    service = make_service()
    with pytest.raises(ParseError):
        service.reload(write_rules(BAD_RULES))
    assert service.state is ServiceState.FAILED
    assert isinstance(service.last_error, ParseError)
    with pytest.raises(NotReadyError):
        service.diagnose("p")


def test_failed_reload_keeps_previous_rules(make_service, smtp_rules_path, write_rules) -> None:
    service = make_service()
    service.reload(smtp_rules_path)

    dup = write_rules(
        "- {id: a, pattern: p, cause: c}\n- {id: a, pattern: q, cause: c}\n", "dup.yaml"
    )
    with pytest.raises(ParseError):
        service.reload(dup)

    assert service.state is ServiceState.READY
    assert service.source == str(smtp_rules_path)
    assert [r.id for r in service.rules()] == ["r1"]


def test_reload_missing_file_keeps_state(make_service, smtp_rules_path, tmp_path) -> None:
    service = make_service()
    service.reload(smtp_rules_path)
    with pytest.raises(FileNotFoundError):
        service.reload(tmp_path / "gone.yaml")
    assert service.state is ServiceState.READY


def test_reload_non_utf8_source_keeps_previous_rules(
    make_service, smtp_rules_path, tmp_path
) -> None:
    service = make_service()
    service.reload(smtp_rules_path)
    bad = tmp_path / "latin.yaml"
    bad.write_bytes(b"- {id: a, pattern: \xff\xfe, cause: c}\n")

    with pytest.raises(ParseError):
        service.reload(bad)

    assert service.state is ServiceState.READY
    assert isinstance(service.last_error, ParseError)
    assert [r.id for r in service.rules()] == ["r1"]


def test_first_load_non_utf8_source_moves_to_failed(make_service, tmp_path) -> None:
    service = make_service()
    bad = tmp_path / "latin.yaml"
    bad.write_bytes(b"\xff\xfe")

    with pytest.raises(ParseError):
        service.reload(bad)
    assert service.state is ServiceState.FAILED


def test_unexpected_load_error_never_leaves_loading(
    make_service, smtp_rules_path, monkeypatch
) -> None:
    service = make_service()
    service.reload(smtp_rules_path)

    def broken(path):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr("mcp_log_diagnosis_server.core.service.load_rules", broken)

    with pytest.raises(RuntimeError):
        service.reload(smtp_rules_path)
    assert service.state is ServiceState.READY
    assert isinstance(service.last_error, RuntimeError)


def test_install_normalizes_rule_tags(make_service, make_rule) -> None:
    service = make_service()
    service.install([make_rule("r1", "WRONG_VERSION_NUMBER", tags=("SMTP",))])

    (entry,) = service.diagnose("ssl.SSLError: WRONG_VERSION_NUMBER", context_tags=["smtp"])
    assert entry.rule_id == "r1"


def test_configured_rules_path_is_default(make_service, smtp_rules_path) -> None:
    service = make_service(rules_path=smtp_rules_path)
    service.reload()
    assert service.source == str(smtp_rules_path)


def test_concurrent_diagnose_never_sees_mixed_snapshots(make_service, make_rule) -> None:
    service = make_service()
    set_a = [make_rule(f"a{i}") for i in range(5)]
    set_b = [make_rule(f"b{i}") for i in range(5)]
    service.install(set_a)

    stop = threading.Event()

    def reloader() -> None:
        flip = False
        while not stop.is_set():
            service.install(set_b if flip else set_a)
            flip = not flip

    def reader() -> list[set[str]]:
        seen: list[set[str]] = []
        for _ in range(300):
            entries = service.diagnose("boom", top_k=10)
            assert len(entries) == 5
            seen.append({e.rule_id[0] for e in entries})
        return seen

    t = threading.Thread(target=reloader)
    t.start()
    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = [f.result() for f in [pool.submit(reader) for _ in range(8)]]
    finally:
        stop.set()
        t.join()

    for seen in results:
        assert all(len(prefixes) == 1 for prefixes in seen)


@pytest.mark.asyncio
async def test_areload_loads_rules(make_service, smtp_rules_path) -> None:
    service = make_service()
    assert await service.areload(smtp_rules_path) == 1
    assert service.state is ServiceState.READY


@pytest.mark.asyncio
async def test_areload_timeout_keeps_last_good_snapshot(
    make_service, smtp_rules_path, write_rules, monkeypatch
) -> None:
    service = make_service(load_timeout_s=0.05)
    service.reload(smtp_rules_path)

    async def slow_read(path: Path) -> str:
        await asyncio.sleep(5)
        return ""

    monkeypatch.setattr(loader, "read_source_async", slow_read)

    with pytest.raises(LoadTimeoutError):
        await service.areload(write_rules("rules: []", "other.yaml"))

    assert service.state is ServiceState.READY
    assert isinstance(service.last_error, LoadTimeoutError)
    assert service.diagnose("WRONG_VERSION_NUMBER", ["smtp"])[0].rule_id == "r1"


@pytest.mark.asyncio
async def test_areload_cancellation_leaves_state_intact(
    make_service, smtp_rules_path, monkeypatch
) -> None:
    service = make_service()
    await service.areload(smtp_rules_path)

    started = asyncio.Event()

    async def slow_read(path: Path) -> str:
        started.set()
        await asyncio.sleep(5)
        return ""

    monkeypatch.setattr(loader, "read_source_async", slow_read)

    task = asyncio.create_task(service.areload(smtp_rules_path, timeout=10))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert service.state is ServiceState.READY
    assert [r.id for r in service.rules()] == ["r1"]


def test_diagnose_file_reports_matching_lines(
    make_service, smtp_rules_path, tmp_path, write_log
) -> None:
    service = make_service()
    service.reload(smtp_rules_path)
    log = tmp_path / "mailer.log"
    write_log(log)

    results = service.diagnose_file(log, context_tags=["smtp"])

    assert [r.line_no for r in results] == [3]
    assert results[0].level == LogLevel.ERROR.value
    assert results[0].entries[0].rule_id == "r1"


def test_diagnose_file_max_lines(make_service, make_rule, tmp_path) -> None:
    service = make_service()
    service.install([make_rule("r", "boom")])
    log = tmp_path / "app.log"
    log.write_text("".join(f"[ERROR] boom {i}\n" for i in range(10)), encoding="utf-8")

    assert len(service.diagnose_file(log, max_lines=3)) == 3
    with pytest.raises(ValueError):
        service.diagnose_file(log, max_lines=0)


def test_service_uses_env_config(monkeypatch, smtp_rules_path) -> None:
    monkeypatch.setenv("LOG_DIAGNOSIS_RULES_PATH", str(smtp_rules_path))
    service = DiagnosisService()
    service.reload()
    assert service.source == str(smtp_rules_path)
