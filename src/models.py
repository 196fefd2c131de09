"""Shared Pydantic data models for surveycake-firstline-bridge."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# SurveyCake question_id carrying the respondent's LINE UID
LINE_UID_QUESTION_ID = "aka_contactable_user_id"

# --- Enums ---


class AuditEventType(str, Enum):
    SIGNATURE_FAILURE = "signature_failure"
    VALIDATION_FAILURE = "validation_failure"
    CONTACT_NOT_FOUND = "contact_not_found"
    LOOKUP_FAILURE = "lookup_failure"
    UPDATE_FAILURE = "update_failure"
    TAGS_SYNCED = "tags_synced"
    INTERNAL_ERROR = "internal_error"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# --- SurveyCake Models ---


class SurveyAnswer(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    question_id: str
    # Choice questions carry lists; only text answers are ever read
    value: Any = None

    def text(self) -> str | None:
        """Return the answer as text; blank strings count as unanswered."""
        if isinstance(self.value, str):
            return self.value if self.value.strip() else None
        if isinstance(self.value, (int, float)) and not isinstance(self.value, bool):
            return str(self.value)
        return None


class SurveyPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    answers: list[SurveyAnswer] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default_to_empty(cls, v: object) -> object:
        if not isinstance(v, list):
            return []
        return [t for t in v if isinstance(t, str)]

    def line_uid(self) -> str | None:
        """Return the text of the first LINE UID answer, if any."""
        for answer in self.answers:
            if answer.question_id == LINE_UID_QUESTION_ID:
                return answer.text()
        return None


# --- FirstLine Models ---


class Contact(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: int | str


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: int | str
    name: str


class TagUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag_ids: list[int | str]


# --- Sync Result ---


class SyncResult(BaseModel):
    """Outcome of one webhook invocation, ready to render as JSON."""

    status_code: int
    body: dict[str, str]
    line_uid: str | None = None
    contact_id: int | str | None = None
    tag_ids: list[int | str] | None = None

    @classmethod
    def ok(cls, message: str, **kwargs: object) -> SyncResult:
        return cls(status_code=200, body={"message": message}, **kwargs)  # type: ignore[arg-type]

    @classmethod
    def error(cls, status_code: int, message: str, **kwargs: object) -> SyncResult:
        return cls(status_code=status_code, body={"error": message}, **kwargs)  # type: ignore[arg-type]


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    line_uid: str | None = None
    status_code: int
    risk_level: RiskLevel
    details: dict[str, object] | None = None
