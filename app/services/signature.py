"""
Mercado Pago webhook signature verification.

The x-signature header looks like ``ts=1704908010,v1=<hex hmac>``. The hmac
is SHA-256 over the manifest ``id:<data.id>;request-id:<x-request-id>;ts:<ts>;``
keyed with the webhook secret.
"""

import hmac
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureCheck:
    """Result of verifying one notification."""

    valid: bool
    timestamp: Optional[str] = None
    hash: Optional[str] = None
    # "missing", "malformed", "mismatch", "expired" when not valid
    reason: Optional[str] = None

    @property
    def parsed(self) -> bool:
        return self.reason not in ("missing", "malformed")


def parse_signature_header(raw_header: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Extract (ts, v1) from the comma separated key=value header."""
    ts = None
    v1 = None
    if not raw_header:
        return ts, v1

    for part in raw_header.split(","):
        key, sep, value = part.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep or not key or not value:
            continue
        if key == "ts":
            ts = value
        elif key == "v1":
            v1 = value
    return ts, v1


def build_manifest(resource_id: Optional[str], request_id: Optional[str], ts: str) -> str:
    """Signed manifest; parts the notification did not carry are left out."""
    manifest = ""
    if resource_id:
        manifest += f"id:{resource_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"
    return manifest


def compute_signature(secret: str, manifest: str) -> str:
    return hmac.new(
        secret.encode(),
        manifest.encode(),
        hashlib.sha256,
    ).hexdigest()


def _timestamp_seconds(ts: str) -> Optional[float]:
    try:
        value = float(ts)
    except ValueError:
        return None
    # Mercado Pago has sent both seconds and milliseconds
    return value / 1000 if value > 1e12 else value


def verify_signature(
    raw_header: Optional[str],
    request_id: Optional[str],
    resource_id: Optional[str],
    secret: str,
    tolerance_seconds: int = 0,
    now: Optional[float] = None,
) -> SignatureCheck:
    """
    Verify a webhook signature.

    Never raises: a missing or unparsable header comes back as an invalid
    check so the caller can acknowledge and drop the notification.
    """
    if not raw_header:
        return SignatureCheck(valid=False, reason="missing")

    ts, v1 = parse_signature_header(raw_header)
    if not ts or not v1:
        return SignatureCheck(valid=False, timestamp=ts, hash=v1, reason="malformed")

    if not secret:
        logger.warning("Mercado Pago webhook secret not configured, cannot verify signature")
        return SignatureCheck(valid=False, timestamp=ts, hash=v1, reason="mismatch")

    expected = compute_signature(secret, build_manifest(resource_id, request_id, ts))
    if not hmac.compare_digest(expected, v1):
        return SignatureCheck(valid=False, timestamp=ts, hash=v1, reason="mismatch")

    if tolerance_seconds > 0:
        sent_at = _timestamp_seconds(ts)
        current = time.time() if now is None else now
        if sent_at is None or abs(current - sent_at) > tolerance_seconds:
            return SignatureCheck(valid=False, timestamp=ts, hash=v1, reason="expired")

    return SignatureCheck(valid=True, timestamp=ts, hash=v1)
