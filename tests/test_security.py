from __future__ import annotations

import hashlib

from dri.core.security import hash_password, is_legacy_hash, verify_password


def test_hash_password_is_salted_pbkdf2() -> None:
    first = hash_password("segredo")
    second = hash_password("segredo")

    assert first.startswith("pbkdf2_sha256$120000$")
    assert first != second
    assert verify_password("segredo", first)
    assert not verify_password("outro", first)


def test_legacy_sha256_digest_still_verifies() -> None:
    digest = hashlib.sha256("segredo".encode("utf-8")).hexdigest()

    assert is_legacy_hash(digest)
    assert verify_password("segredo", digest)
    assert not verify_password("outro", digest)


def test_plaintext_and_malformed_values_never_match() -> None:
    assert not verify_password("segredo", "segredo")
    assert not verify_password("segredo", "")
    assert not verify_password("segredo", "bcrypt$1$x$y")
    assert not is_legacy_hash("A" * 64)


def test_legacy_digest_with_trailing_newline_is_not_legacy() -> None:
    digest = hashlib.sha256("segredo".encode("utf-8")).hexdigest()

    assert not is_legacy_hash(digest + "\n")
    assert not verify_password("segredo", digest + "\n")
