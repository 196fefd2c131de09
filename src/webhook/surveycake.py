"""SurveyCake → FirstLine tag sync pipeline.

Pipeline stages, short-circuiting on the first failure:
1. Signature check (only when a secret is configured)
2. Payload parse and LINE UID extraction
3. Contact lookup by LINE UID
4. Tag catalog fetch and name → id resolution
5. Contact tag replacement
6. Audit log

Only stage 5 mutates FirstLine, so no failure ever needs compensation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from src.firstline.client import FirstLineAPI, FirstLineError
from src.models import (
    AuditEvent,
    AuditEventType,
    Contact,
    RiskLevel,
    SurveyPayload,
    SyncResult,
    Tag,
)
from src.webhook.signature import verify_signature

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

# Used when a FirstLine call failed without producing an HTTP status
_BAD_GATEWAY = 502

_RISK_BY_EVENT = {
    AuditEventType.SIGNATURE_FAILURE: RiskLevel.HIGH,
    AuditEventType.VALIDATION_FAILURE: RiskLevel.LOW,
    AuditEventType.CONTACT_NOT_FOUND: RiskLevel.LOW,
    AuditEventType.LOOKUP_FAILURE: RiskLevel.MEDIUM,
    AuditEventType.UPDATE_FAILURE: RiskLevel.MEDIUM,
    AuditEventType.INTERNAL_ERROR: RiskLevel.HIGH,
    AuditEventType.TAGS_SYNCED: RiskLevel.INFO,
}


class SyncError(Exception):
    """A terminal pipeline failure with a caller-safe message."""

    event_type = AuditEventType.INTERNAL_ERROR

    def __init__(
        self,
        status_code: int,
        public_message: str,
        line_uid: str | None = None,
        contact_id: int | str | None = None,
    ) -> None:
        self.status_code = status_code
        self.public_message = public_message
        self.line_uid = line_uid
        self.contact_id = contact_id
        super().__init__(public_message)

    def to_result(self) -> SyncResult:
        return SyncResult.error(
            self.status_code,
            self.public_message,
            line_uid=self.line_uid,
            contact_id=self.contact_id,
        )


class AuthenticityFailure(SyncError):
    event_type = AuditEventType.SIGNATURE_FAILURE

    def __init__(self) -> None:
        super().__init__(401, "Unauthorized")


class ValidationFailure(SyncError):
    event_type = AuditEventType.VALIDATION_FAILURE

    def __init__(self, public_message: str) -> None:
        super().__init__(400, public_message)


class LookupFailure(SyncError):
    event_type = AuditEventType.LOOKUP_FAILURE


class ContactNotFound(LookupFailure):
    event_type = AuditEventType.CONTACT_NOT_FOUND

    def __init__(self, line_uid: str) -> None:
        super().__init__(404, "Contact not found", line_uid=line_uid)


class UpdateFailure(SyncError):
    event_type = AuditEventType.UPDATE_FAILURE


def _remote_status(exc: FirstLineError) -> int:
    return exc.status_code if exc.status_code is not None else _BAD_GATEWAY


def match_tag_ids(catalog: Any, wanted: list[str]) -> list[int | str]:
    """Return catalog ids, in catalog order, whose name is exactly in ``wanted``.

    Names absent from the catalog are dropped. Malformed catalog entries are
    skipped. A non-list catalog matches nothing.
    """
    if not isinstance(catalog, list):
        return []
    names = set(wanted)
    ids: list[int | str] = []
    for raw in catalog:
        try:
            tag = Tag.model_validate(raw)
        except ValidationError:
            continue
        if tag.name in names:
            ids.append(tag.id)
    return ids


class SurveyCakeSync:
    """Runs one webhook submission through the sync pipeline."""

    def __init__(
        self,
        firstline: FirstLineAPI,
        secret: str | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._firstline = firstline
        self._secret = secret
        self._audit = audit_logger

    async def handle(
        self,
        body: bytes,
        headers: Mapping[str, str],
        source_ip: str | None = None,
    ) -> SyncResult:
        """Process a POSTed submission. Never raises."""
        event_type = AuditEventType.TAGS_SYNCED
        try:
            result = await self._sync(body, headers)
        except SyncError as exc:
            event_type = exc.event_type
            result = exc.to_result()
        except Exception:
            logger.exception("Error handling SurveyCake webhook")
            event_type = AuditEventType.INTERNAL_ERROR
            result = SyncResult.error(500, "Internal Server Error")

        if self._audit:
            self._record(self._audit, event_type, result, source_ip)
        return result

    @staticmethod
    def _record(
        audit: AuditLogger,
        event_type: AuditEventType,
        result: SyncResult,
        source_ip: str | None,
    ) -> None:
        # The FirstLine update may already have happened; keep its result
        try:
            audit.log(AuditEvent(
                event_type=event_type,
                source_ip=source_ip,
                line_uid=result.line_uid,
                status_code=result.status_code,
                risk_level=_RISK_BY_EVENT[event_type],
                details={
                    "contact_id": result.contact_id,
                    "tag_ids": result.tag_ids,
                },
            ))
        except Exception:
            logger.exception("Failed to write audit event %s", event_type.value)

    async def _sync(self, body: bytes, headers: Mapping[str, str]) -> SyncResult:
        # Stage 1: Signature check
        if self._secret and not verify_signature(self._secret, headers, body):
            logger.error("Invalid SurveyCake signature")
            raise AuthenticityFailure()

        # Stage 2: Payload parse
        payload = self._parse_payload(body)
        line_uid = payload.line_uid()
        if line_uid is None:
            logger.error("Missing LINE UID question")
            raise ValidationFailure("Missing LINE UID")

        # Stage 3: Contact lookup
        contact = await self._find_contact(line_uid)

        # Stage 4: Tag catalog and name matching
        tag_ids = await self._resolve_tag_ids(line_uid, payload.tags)

        # Stage 5: Replace the contact's tags
        try:
            await self._firstline.update_contact_tags(contact.id, tag_ids)
        except FirstLineError as exc:
            logger.error(
                "FirstLine update failed for contact %s (status=%s): %s",
                contact.id, exc.status_code, exc.body or exc,
            )
            raise UpdateFailure(
                _remote_status(exc), "Update failed",
                line_uid=line_uid, contact_id=contact.id,
            ) from exc

        logger.info(
            "Synced %d tag(s) to contact %s for LINE UID %s",
            len(tag_ids), contact.id, line_uid,
        )
        return SyncResult.ok(
            "Tags updated successfully",
            line_uid=line_uid,
            contact_id=contact.id,
            tag_ids=tag_ids,
        )

    @staticmethod
    def _parse_payload(body: bytes) -> SurveyPayload:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Malformed SurveyCake payload: %s", exc)
            raise ValidationFailure("Invalid payload") from exc
        if not isinstance(data, dict):
            logger.error("SurveyCake payload is not a JSON object")
            raise ValidationFailure("Invalid payload")
        try:
            return SurveyPayload.model_validate(data)
        except ValidationError as exc:
            logger.error("SurveyCake payload failed validation: %s", exc.errors())
            raise ValidationFailure("Invalid payload") from exc

    async def _find_contact(self, line_uid: str) -> Contact:
        try:
            contacts = await self._firstline.find_contacts(line_uid)
        except FirstLineError as exc:
            logger.error(
                "FirstLine contact lookup failed for %s (status=%s): %s",
                line_uid, exc.status_code, exc.body or exc,
            )
            raise LookupFailure(
                _remote_status(exc), "Contact lookup failed", line_uid=line_uid,
            ) from exc

        if not isinstance(contacts, list) or not contacts:
            logger.error("Contact not found: %s", line_uid)
            raise ContactNotFound(line_uid)

        try:
            return Contact.model_validate(contacts[0])
        except ValidationError as exc:
            logger.error("FirstLine returned a contact without id for %s", line_uid)
            raise LookupFailure(
                _BAD_GATEWAY, "Contact lookup failed", line_uid=line_uid,
            ) from exc

    async def _resolve_tag_ids(self, line_uid: str, wanted: list[str]) -> list[int | str]:
        try:
            catalog = await self._firstline.list_tags()
        except FirstLineError as exc:
            logger.error(
                "FirstLine tag catalog fetch failed (status=%s): %s",
                exc.status_code, exc.body or exc,
            )
            raise LookupFailure(
                _remote_status(exc), "Tag lookup failed", line_uid=line_uid,
            ) from exc

        tag_ids = match_tag_ids(catalog, wanted)
        unknown = set(wanted) - _catalog_names(catalog)
        if unknown:
            logger.info("Ignoring tags absent from FirstLine catalog: %s", sorted(unknown))
        return tag_ids


def _catalog_names(catalog: Any) -> set[str]:
    if not isinstance(catalog, list):
        return set()
    return {
        entry["name"] for entry in catalog
        if isinstance(entry, dict) and isinstance(entry.get("name"), str)
    }
