"""Security primitives for password hashing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
import re

_PBKDF2_ROUNDS = 120_000
_LEGACY_SHA256_RE = re.compile(r"[0-9a-f]{64}")


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def hash_password(password: str) -> str:
    """Hash password using PBKDF2-HMAC-SHA256 with random salt."""
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS
    )
    return (
        f"pbkdf2_sha256${_PBKDF2_ROUNDS}${_b64url_encode(salt)}${_b64url_encode(derived)}"
    )


def is_legacy_hash(stored_hash: str) -> bool:
    """Return whether stored value is an unsalted hex SHA-256 digest."""
    return bool(_LEGACY_SHA256_RE.fullmatch(stored_hash or ""))


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored PBKDF2 hash or legacy SHA-256 digest.

    Anything else stored in the password column (including plaintext) never
    matches.
    """
    if is_legacy_hash(stored_hash):
        digest = hashlib.sha256(password.encode("utf-8")).hexdigest()
        return hmac.compare_digest(digest, stored_hash)

    try:
        algo, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        if algo != "pbkdf2_sha256":
            return False
        rounds = int(rounds_raw)
        salt = _b64url_decode(salt_b64)
        expected = _b64url_decode(digest_b64)
    except Exception:
        return False

    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(derived, expected)
