"""
Utility functions for the portfolio backend.
"""

import hmac
import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
SIGNATURE_RE = re.compile(r"[0-9a-f]{64}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and Z suffix."""
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def parse_ts(value: str) -> datetime:
    """Parse a timestamp produced by format_ts()."""
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def make_preview(message: str, length: int = PREVIEW_LENGTH) -> str:
    """Truncate a message to `length` characters, marking the cut with '...'."""
    if len(message) > length:
        return message[:length] + "..."
    return message


def get_client_ip(request: Request) -> Optional[str]:
    """Client address: first X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def compute_signature(value: str, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of `value` keyed with `secret`."""
    return hmac.new(
        secret.encode("utf-8"),
        value.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def sign_token(token: str, secret: str) -> str:
    """Return the cookie value `<token>.<signature>` for a session token."""
    return f"{token}.{compute_signature(token, secret)}"


def unsign_token(value: Optional[str], secret: str) -> Optional[str]:
    """
    Verify a signed cookie value and return the session token.

    Args:
        value: Cookie value as produced by sign_token()
        secret: SESSION_SECRET

    Returns:
        The token if the signature is valid, None otherwise
    """
    if not value or "." not in value:
        return None

    token, signature = value.rsplit(".", 1)
    if not SIGNATURE_RE.fullmatch(signature):
        logger.warning("Malformed session cookie signature")
        return None

    expected_signature = compute_signature(token, secret)

    # Use constant-time comparison to prevent timing attacks
    if not hmac.compare_digest(expected_signature.encode("ascii"), signature.encode("ascii")):
        logger.warning("Session cookie signature mismatch")
        return None
    return token
