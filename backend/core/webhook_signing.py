"""Webhook HMAC signature generation and verification.

Inbound workflow webhooks may be signed with the workflow's secret:

  X-Webhook-Signature: <hex_digest>          (or X-Signature)
  X-Webhook-Signature: sha256=<hex_digest>   (prefix tolerated)

The digest is HMAC-SHA256 over the exact raw request body, computed
before the body is parsed.

Usage:
    # Signing (senders, tests)
    signature = compute_signature(body_bytes, secret)

    # Verification (inbound)
    is_valid = verify_signature(body_bytes, signature_header, secret)
"""

import hashlib
import hmac
import secrets
from typing import Mapping, Optional

from core.constants import SIGNATURE_HEADERS

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``payload`` keyed by ``secret``."""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """Verify a webhook signature in constant time.

    Args:
        payload: Raw request body bytes
        signature_header: Value of the signature header
        secret: Webhook signing secret

    Returns:
        True if the signature matches the body
    """
    provided = (signature_header or "").strip()
    if provided.lower().startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]
    expected = compute_signature(payload, secret)
    # compare_digest handles length mismatch without leaking timing
    return hmac.compare_digest(expected.encode(), provided.lower().encode())


def get_signature_header(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first signature header present, if any."""
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None


def generate_webhook_secret() -> str:
    """Generate a cryptographically secure webhook signing secret."""
    return f"whsec_{secrets.token_urlsafe(32)}"
