"""Shared test fixtures for surveycake-firstline-bridge."""

from __future__ import annotations

import hashlib
import hmac as hmac_mod
import json
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.config import Settings
from src.firstline.client import FirstLineError
from src.models import LINE_UID_QUESTION_ID

TEST_SECRET = "surveycake-secret"
TEST_LINE_UID = "U1234567890abcdef"


class FakeFirstLine:
    """In-memory FirstLineAPI that records every call."""

    def __init__(
        self,
        contacts: Any = None,
        tags: Any = None,
        lookup_error: FirstLineError | None = None,
        tags_error: FirstLineError | None = None,
        update_error: FirstLineError | None = None,
    ) -> None:
        self.contacts = [{"id": 42, "name": "Alice"}] if contacts is None else contacts
        self.tags = [] if tags is None else tags
        self.lookup_error = lookup_error
        self.tags_error = tags_error
        self.update_error = update_error
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def find_contacts(self, line_uid: str) -> Any:
        self.calls.append(("find_contacts", (line_uid,)))
        if self.lookup_error:
            raise self.lookup_error
        return self.contacts

    async def list_tags(self) -> Any:
        self.calls.append(("list_tags", ()))
        if self.tags_error:
            raise self.tags_error
        return self.tags

    async def update_contact_tags(self, contact_id: int | str, tag_ids: list[int | str]) -> None:
        self.calls.append(("update_contact_tags", (contact_id, list(tag_ids))))
        if self.update_error:
            raise self.update_error

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def update_args(self) -> tuple[Any, ...]:
        updates = [args for name, args in self.calls if name == "update_contact_tags"]
        assert len(updates) == 1
        return updates[0]


@pytest.fixture
def fake_firstline() -> FakeFirstLine:
    return FakeFirstLine()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    defaults: dict[str, Any] = {
        "firstline_api_key": "test-api-key",
        "firstline_api_base": "https://firstline.test",
        "surveycake_secret": None,
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_payload(
    line_uid: str | None = TEST_LINE_UID,
    tags: Any = None,
    extra_answers: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a SurveyCake submission. ``tags=None`` omits the field."""
    answers: list[dict[str, Any]] = list(extra_answers or [])
    if line_uid is not None:
        answers.append({"question_id": LINE_UID_QUESTION_ID, "value": line_uid})
    payload: dict[str, Any] = {"answers": answers}
    if tags is not None:
        payload["tags"] = tags
    return payload


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode()


def sign(secret: str, body: bytes) -> str:
    return hmac_mod.new(secret.encode(), body, hashlib.sha256).hexdigest()
