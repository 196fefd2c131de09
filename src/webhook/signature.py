"""SurveyCake webhook signature verification (HMAC-SHA256, hex digest)."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

SIGNATURE_HEADER = "x-surveycake-signature"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, headers: Mapping[str, str], body: bytes) -> bool:
    """Check the signature header against the body.

    Header lookup is case-insensitive. The digest itself must match exactly;
    comparison is constant-time via hmac.compare_digest.
    """
    signature = _get_header(headers, SIGNATURE_HEADER)
    if not signature:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(signature.encode(), expected.encode())


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    for key, val in headers.items():
        if key.lower() == name:
            return val
    return None
