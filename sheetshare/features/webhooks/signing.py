"""Webhook payload signing.

The envelope is serialized exactly once; the signature covers those bytes
and the same bytes are sent as the request body.
"""

import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Dict, Optional

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


def _canonical_json_bytes(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str).encode()


def build_envelope(event: str, data: Dict[str, Any], timestamp: datetime) -> Dict[str, Any]:
    return {
        "event": event,
        "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
        "data": data,
    }


def serialize_envelope(envelope: Dict[str, Any]) -> bytes:
    return _canonical_json_bytes(envelope)


def sign_payload(secret: str, body_bytes: bytes) -> str:
    """HMAC-SHA256 over the raw body, rendered as ``sha256=<hex digest>``."""
    digest = hmac.new(secret.encode(), body_bytes, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body_bytes: bytes, signature_header: Optional[str]) -> bool:
    """Receiver-side check of an X-Webhook-Signature header."""
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        return False
    expected = sign_payload(secret, body_bytes)
    return hmac.compare_digest(signature_header, expected)
