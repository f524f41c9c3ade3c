"""Utility modules for the application."""

from deskauth.utils.timezone import (
    utcnow,
    to_naive_utc,
    is_expired
)
from deskauth.utils.tokens import (
    generate_token,
    sha256_digest,
    keyed_digest
)

__all__ = [
    "utcnow",
    "to_naive_utc",
    "is_expired",
    "generate_token",
    "sha256_digest",
    "keyed_digest"
]
