"""
Signatures for time-limited access to a single method + path.

The tag is the hex SHA-256 of method, path, expiry and the shared secret joined
by newlines. Issuers holding the secret compute the same tag to build signed URLs.
"""

import hashlib
import hmac
import re
import time
from typing import Dict, Optional, Union

import config

SIGNATURE_LENGTH = 64  # hex chars of a SHA-256 digest

# At most 20 digits, well inside the int() string conversion limit
_EXPIRES_RE = re.compile(r"[0-9]{1,20}")


def canonical_string(method: str, path: str, expires_at: Union[int, str], secret: str) -> str:
    return f"{method}\n{path}\n{expires_at}\n{secret}"


def sign(method: str, path: str, expires_at: Union[int, str], secret: str) -> str:
    """Compute the signature tag for a method, path and expiry."""
    message = canonical_string(method, path, expires_at, secret)
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def parse_expires(expires_at: Union[int, str]) -> Optional[int]:
    """Return expiry seconds, or None if the value is not a plain decimal integer."""
    if isinstance(expires_at, bool):
        return None
    if isinstance(expires_at, int):
        return expires_at
    if not isinstance(expires_at, str) or not _EXPIRES_RE.fullmatch(expires_at):
        return None
    return int(expires_at)


def verify(
    method: str,
    path: str,
    expires_at: Union[int, str],
    secret: str,
    tag: str,
    now: Optional[float] = None,
) -> bool:
    """Verify a signature tag and check the expiry window.

    The expiry must not be in the past and must not be more than
    MAX_EXPIRES_IN seconds in the future.
    """
    if not isinstance(tag, str) or len(tag) != SIGNATURE_LENGTH:
        return False

    expires_sec = parse_expires(expires_at)
    if expires_sec is None:
        return False

    # Seconds since the Unix epoch, independent of the server timezone
    now_sec = time.time() if now is None else now
    if expires_sec < now_sec:
        return False
    if expires_sec > now_sec + config.MAX_EXPIRES_IN:
        return False

    expected = sign(method, path, expires_at, secret)
    return hmac.compare_digest(tag.encode("utf-8"), expected.encode("utf-8"))


def build_signed_query(
    method: str,
    path: str,
    secret: str,
    ttl_seconds: int = 60,
    now: Optional[float] = None,
) -> Dict[str, str]:
    """Generate the query parameters of a signed URL."""
    now_sec = time.time() if now is None else now
    expires = int(now_sec) + ttl_seconds
    return {
        "signature": sign(method, path, expires, secret),
        "expires": str(expires),
    }
