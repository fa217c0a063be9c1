"""Password hashing and strength rules."""

import pytest

from lq.auth.password import (
    PasswordStrengthError,
    hash_password,
    validate_password_strength,
    verify_password,
)


def test_hash_and_verify() -> None:
    hashed = hash_password("SecureP@ss1")
    assert hashed.startswith("$argon2id$")
    assert verify_password("SecureP@ss1", hashed)
    assert not verify_password("SecureP@ss2", hashed)


def test_garbage_hash_does_not_raise() -> None:
    assert not verify_password("SecureP@ss1", "not-a-hash")


@pytest.mark.parametrize(
    ("password", "message"),
    [
        ("", "empty"),
        ("Sh0rt", "at least"),
        ("alllowercase1", "uppercase"),
        ("ALLUPPERCASE1", "lowercase"),
        ("NoDigitsHere", "digit"),
    ],
)
def test_weak_passwords(password: str, message: str) -> None:
    with pytest.raises(PasswordStrengthError, match=message):
        validate_password_strength(password)


def test_strong_password_accepted() -> None:
    validate_password_strength("SecureP@ss1")
