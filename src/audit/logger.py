"""Sync audit trail — JSON Lines, size-based rotation, SHA-256 hash chain.

Each processed webhook POST appends one ``AuditEvent``. Every line carries
``prev_hash``, the SHA-256 of the previous line, so a truncated or edited
log is detectable with ``validate_audit_chain``.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from src.config import Settings
from src.models import AuditEvent

_TAIL_CHUNK = 4096


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None
    entries: int = 0


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Walk the log and confirm each prev_hash matches the preceding line."""
    text = log_path.read_text(encoding="utf-8").strip()
    if not text:
        return ChainValidationResult(valid=True)

    lines = text.split("\n")
    prev_line: str | None = None
    for lineno, line in enumerate(lines, start=1):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            return ChainValidationResult(valid=False, broken_at_line=lineno)
        expected = _line_hash(prev_line) if prev_line is not None else None
        if entry.get("prev_hash") != expected:
            return ChainValidationResult(valid=False, broken_at_line=lineno)
        prev_line = line

    return ChainValidationResult(valid=True, entries=len(lines))


class AuditLogger:
    """Append-only audit log of webhook sync outcomes."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    @classmethod
    def from_settings(cls, settings: Settings) -> AuditLogger | None:
        if not settings.audit_log_path:
            return None
        return cls(
            log_path=settings.audit_log_path,
            max_bytes=settings.audit_log_max_bytes,
            backup_count=settings.audit_log_backup_count,
        )

    def _read_last_line(self) -> str | None:
        """Read the final line by scanning backwards from the end of the file."""
        if not self.log_path.exists():
            return None
        with open(self.log_path, "rb") as f:
            pos = f.seek(0, os.SEEK_END)
            tail = b""
            while pos > 0 and b"\n" not in tail.rstrip(b"\n"):
                step = min(_TAIL_CHUNK, pos)
                pos -= step
                f.seek(pos)
                tail = f.read(step) + tail
        last = tail.rstrip(b"\n").rsplit(b"\n", 1)[-1]
        return last.decode("utf-8") if last else None

    def _backup_path(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_needed(self) -> None:
        """Rotate when the live file reached max_bytes."""
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self._max_bytes:
            return
        if self._backup_count == 0:
            self.log_path.unlink()
            return

        self._backup_path(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            src = self._backup_path(index)
            if src.exists():
                src.rename(self._backup_path(index + 1))
        self.log_path.rename(self._backup_path(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        record = json.loads(event.model_dump_json())

        lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")
        with open(lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                # Each file is its own chain; a fresh file starts with prev_hash null.
                # The tail is re-read under the lock so several processes can share a log.
                self._rotate_if_needed()
                prev = self._read_last_line()
                record["prev_hash"] = _line_hash(prev) if prev is not None else None
                line = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)
