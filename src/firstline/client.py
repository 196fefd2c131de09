"""FirstLine contact API client.

The webhook handler depends on the ``FirstLineAPI`` protocol only, so tests
can substitute an in-memory fake. ``HttpxFirstLineClient`` is the real
implementation; certificate verification is an explicit constructor
argument scoped to this client.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from src.models import TagUpdate

logger = logging.getLogger(__name__)


class FirstLineError(Exception):
    """Raised when a FirstLine call fails.

    ``status_code`` is the remote HTTP status, or None when the request never
    produced a response (connection error, timeout).
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class FirstLineAPI(Protocol):
    async def find_contacts(self, line_uid: str) -> Any: ...

    async def list_tags(self) -> Any: ...

    async def update_contact_tags(self, contact_id: int | str, tag_ids: list[int | str]) -> None: ...


class HttpxFirstLineClient:
    """FirstLine REST client backed by httpx.AsyncClient."""

    def __init__(
        self,
        api_base: str,
        api_key: str,
        verify_tls: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._verify_tls = verify_tls
        self._timeout = timeout
        self._transport = transport
        if not verify_tls:
            logger.warning("TLS certificate verification disabled for %s", self._api_base)

    async def find_contacts(self, line_uid: str) -> Any:
        """GET /api/v1/contact?line_uid=... and return the decoded JSON."""
        resp = await self._request("GET", "/api/v1/contact", params={"line_uid": line_uid})
        return _decode_json(resp)

    async def list_tags(self) -> Any:
        """GET /api/v1/tag and return the decoded JSON."""
        resp = await self._request("GET", "/api/v1/tag")
        return _decode_json(resp)

    async def update_contact_tags(self, contact_id: int | str, tag_ids: list[int | str]) -> None:
        """PUT /api/v1/contact/{id} replacing the contact's tag set."""
        await self._request(
            "PUT",
            f"/api/v1/contact/{contact_id}",
            json=TagUpdate(tag_ids=tag_ids).model_dump(),
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._api_base}{path}"
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"

        try:
            async with httpx.AsyncClient(
                verify=self._verify_tls,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise FirstLineError(f"{method} {path} failed: {exc!r}") from exc

        if resp.is_error:
            raise FirstLineError(
                f"{method} {path} returned {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return resp


def _decode_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        # A 2xx with an undecodable body is a bad gateway, not a pass-through status
        raise FirstLineError(
            f"Invalid JSON from {resp.request.url.path}",
            body=resp.text,
        ) from exc
