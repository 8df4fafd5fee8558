"""
sheetshare/features/access/tokens.py
Unguessable tokens for invitations and shareable links, plus webhook signing secrets.

Tokens are drawn from the OS CSPRNG. Uniqueness is probabilistic: callers
still treat a lookup miss and a duplicate insert as separate failures.
"""

import secrets
from typing import Optional

from sheetshare.core.config import settings
from sheetshare.core.errors import InvalidArgumentError

# 192 bits
MIN_TOKEN_BYTES = 24
SIGNING_SECRET_BYTES = 32


def issue(byte_strength: Optional[int] = None) -> str:
    """
    Issue a URL-safe token carrying ``byte_strength`` random bytes.

    Args:
        byte_strength: Entropy in bytes (defaults to settings.TOKEN_BYTES)

    Returns:
        Base64url text, no padding (43 chars for 32 bytes)

    Raises:
        InvalidArgumentError: byte_strength below the 192-bit floor
    """
    strength = settings.TOKEN_BYTES if byte_strength is None else byte_strength
    if strength < MIN_TOKEN_BYTES:
        raise InvalidArgumentError(f"Token strength must be at least {MIN_TOKEN_BYTES} bytes")
    return secrets.token_urlsafe(strength)


def issue_signing_secret() -> str:
    """HMAC key for a webhook registration. Hex encoded, never logged."""
    return secrets.token_hex(SIGNING_SECRET_BYTES)
