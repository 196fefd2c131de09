"""Tests for the sync audit logger."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

from src.audit.logger import AuditLogger, validate_audit_chain
from src.models import AuditEvent, AuditEventType, RiskLevel
from tests.conftest import make_settings


def _make_event(**kwargs: object) -> AuditEvent:
    defaults: dict[str, object] = {
        "event_type": AuditEventType.TAGS_SYNCED,
        "line_uid": "U1",
        "status_code": 200,
        "risk_level": RiskLevel.INFO,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)  # type: ignore[arg-type]


def test_log_appends_json_line(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(_make_event())

    lines = log_file.read_text().strip().split("\n")
    assert len(lines) == 1
    parsed = json.loads(lines[0])
    assert parsed["event_type"] == "tags_synced"
    assert parsed["status_code"] == 200
    assert parsed["prev_hash"] is None


def test_log_creates_parent_directory(tmp_path: Path) -> None:
    log_file = tmp_path / "nested" / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(_make_event())
    assert log_file.exists()


def test_hash_chain_links_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    logger.log(_make_event(line_uid="U1"))
    logger.log(_make_event(line_uid="U2"))

    first, second = log_file.read_text().strip().split("\n")
    assert json.loads(second)["prev_hash"] == hashlib.sha256(first.encode()).hexdigest()
    assert validate_audit_chain(log_file).valid


def test_chain_continues_across_instances(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(_make_event())
    AuditLogger(log_path=str(log_file)).log(_make_event())

    result = validate_audit_chain(log_file)
    assert result.valid
    assert result.entries == 2


def test_tampered_line_detected(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    for uid in ("U1", "U2", "U3"):
        logger.log(_make_event(line_uid=uid))

    lines = log_file.read_text().strip().split("\n")
    lines[1] = lines[1].replace("U2", "U9")
    log_file.write_text("\n".join(lines) + "\n")

    result = validate_audit_chain(log_file)
    assert not result.valid
    assert result.broken_at_line == 3


def test_non_json_line_detected(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    log_file.write_text("garbage\n")
    result = validate_audit_chain(log_file)
    assert not result.valid
    assert result.broken_at_line == 1


def test_empty_log_is_valid(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    log_file.write_text("")
    assert validate_audit_chain(log_file).valid


def test_rotation_starts_fresh_chain(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=1, backup_count=2)
    for uid in ("U1", "U2", "U3"):
        logger.log(_make_event(line_uid=uid))

    assert (tmp_path / "audit.jsonl.1").exists()
    assert (tmp_path / "audit.jsonl.2").exists()
    assert not (tmp_path / "audit.jsonl.3").exists()
    live = json.loads(log_file.read_text().strip())
    assert live["line_uid"] == "U3"
    assert live["prev_hash"] is None
    assert validate_audit_chain(log_file).valid


def test_rotation_without_backups_truncates(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=1, backup_count=0)
    logger.log(_make_event(line_uid="U1"))
    logger.log(_make_event(line_uid="U2"))

    assert len(log_file.read_text().strip().split("\n")) == 1
    assert not (tmp_path / "audit.jsonl.1").exists()


def test_from_settings_disabled_without_path() -> None:
    assert AuditLogger.from_settings(make_settings()) is None


def test_from_settings_uses_rotation_options(tmp_path: Path) -> None:
    settings = make_settings(
        audit_log_path=str(tmp_path / "a.jsonl"),
        audit_log_max_bytes=100,
        audit_log_backup_count=2,
    )
    logger = AuditLogger.from_settings(settings)
    assert logger is not None
    assert logger.log_path == tmp_path / "a.jsonl"


def test_shared_log_across_instances_keeps_chain(tmp_path: Path) -> None:
    """Loggers in separate workers append to one file without breaking the chain."""
    log_file = tmp_path / "audit.jsonl"
    worker_a = AuditLogger(log_path=str(log_file))
    worker_b = AuditLogger(log_path=str(log_file))
    for uid in ("U1", "U2", "U3", "U4"):
        (worker_a if uid in ("U1", "U3") else worker_b).log(_make_event(line_uid=uid))

    result = validate_audit_chain(log_file)
    assert result.valid
    assert result.entries == 4


def test_chain_tail_read_handles_long_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    logger.log(_make_event(details={"note": "x" * 10_000}))
    logger.log(_make_event(details={"note": "名前" * 3_000}))
    logger.log(_make_event())

    result = validate_audit_chain(log_file)
    assert result.valid
    assert result.entries == 3
