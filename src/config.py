"""Environment-sourced settings for the bridge."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_API_BASE = "https://api.firstline.cc"

_FALSE_VALUES = {"0", "false", "no", "off"}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    firstline_api_key: str = Field(min_length=1)
    firstline_api_base: str = DEFAULT_API_BASE
    surveycake_secret: str | None = None
    verify_tls: bool = True
    timeout: float = Field(default=30.0, gt=0)
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=0)

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables.

        FIRSTLINE_API_KEY is required. An empty SURVEYCAKE_SECRET counts as
        unset, which disables signature verification.
        """
        verify_raw = os.environ.get("FIRSTLINE_VERIFY_TLS", "true")
        return cls(
            firstline_api_key=os.environ["FIRSTLINE_API_KEY"],
            firstline_api_base=os.environ.get("FIRSTLINE_API_BASE", DEFAULT_API_BASE),
            surveycake_secret=os.environ.get("SURVEYCAKE_SECRET") or None,
            verify_tls=verify_raw.strip().lower() not in _FALSE_VALUES,
            timeout=float(os.environ.get("FIRSTLINE_TIMEOUT", "30")),
            audit_log_path=os.environ.get("AUDIT_LOG_PATH") or None,
            audit_log_max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            audit_log_backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )
