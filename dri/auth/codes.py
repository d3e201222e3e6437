"""Verification code and session token generation."""

from __future__ import annotations

import secrets
import string
import time

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    """Format a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("base36 values must be non-negative")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def now_millis() -> int:
    """Return current wall clock time in milliseconds."""
    return int(time.time() * 1000)


def generate_verification_code() -> str:
    """Return a human-typeable code such as ``K-482``."""
    letter = secrets.choice(string.ascii_uppercase)
    number = 100 + secrets.randbelow(900)
    return f"{letter}-{number}"


def generate_session_token(device_id: str | None = None) -> str:
    """Return an opaque bearer token, optionally tagged with the device id prefix."""
    token = (
        "sess_"
        + to_base36(secrets.randbits(64))
        + to_base36(secrets.randbits(64))
        + to_base36(now_millis())
    )
    if device_id:
        token += "_" + device_id[:8]
    return token
