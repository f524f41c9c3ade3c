"""Helpers for opaque single-use tokens.

Raw tokens only ever leave the service; the database keeps digests.
"""

import hashlib
import hmac
import secrets

from deskauth.config import settings


def generate_token(nbytes: int = 32) -> str:
    """Generate a URL-safe random token."""
    return secrets.token_urlsafe(nbytes)


def sha256_digest(token: str) -> str:
    """Unkeyed digest, used for high-entropy tokens (MFA, SSO, backup codes)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def keyed_digest(purpose: str, token: str) -> str:
    """HMAC-SHA256 digest bound to a purpose and the application secret."""
    key = f"{settings.SECRET_KEY}:{purpose}".encode("utf-8")
    return hmac.new(key, token.encode("utf-8"), hashlib.sha256).hexdigest()
