"""HMAC-SHA256 signatures for parser webhooks (header: ``sha256=<hex>``)."""
import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


def sign_payload(raw_body: bytes, secret: str) -> str:
    """Signature header value for the exact raw body."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, header: Optional[str], secret: str) -> bool:
    """
    Constant-time check of a signature header against the raw body.

    Without a configured secret every delivery is considered valid.
    """
    if not secret:
        return True
    if not header:
        return False
    expected = sign_payload(raw_body, secret)
    return hmac.compare_digest(header.strip().encode("utf-8"), expected.encode("utf-8"))
