"""HMAC signing of outbound webhook bodies."""

import hashlib
import hmac
import json
import secrets
from typing import Any

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_ALGORITHM = "sha256"


def canonical_json(data: Any) -> bytes:
    """Serialize ``data`` to compact JSON with sorted keys.

    The same input always yields the same bytes, so the signature computed
    over them is reproducible by the receiver from the raw request body.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def generate_webhook_secret() -> str:
    """Return 256 bits of randomness, hex-encoded."""
    return secrets.token_hex(32)


def sign_payload(payload_bytes: bytes, secret: str) -> str:
    """Generate the signature header value for a webhook body.

    Args:
        payload_bytes: The exact bytes sent as the request body.
        secret: The endpoint's shared secret.

    Returns:
        ``sha256=<hex digest>``. The prefix lets receivers support algorithm
        rotation.
    """
    digest = hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_ALGORITHM}={digest}"


def verify_signature(payload_bytes: bytes, secret: str, signature: str | None) -> bool:
    """Check a received signature header in constant time."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(payload_bytes, secret), signature)
