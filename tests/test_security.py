import pytest

from security import (
    detect_device_type,
    hash_password,
    issue_token,
    read_token,
    verify_password,
)


def test_password_hashing() -> None:
    hashed = hash_password("correct horse")

    assert hashed != "correct horse"
    assert verify_password(hashed, "correct horse")
    assert not verify_password(hashed, "wrong horse")
    with pytest.raises(ValueError):
        hash_password("short")


def test_token_round_trip_and_tampering() -> None:
    token = issue_token(7, "abc123")

    assert read_token(token) == {"u": 7, "s": "abc123"}
    assert read_token(token + "x") is None
    assert read_token("") is None


def test_device_type() -> None:
    assert detect_device_type("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)") == "mobile"
    assert detect_device_type("Mozilla/5.0 (iPad; CPU OS 17_0)") == "tablet"
    assert detect_device_type("Mozilla/5.0 (X11; Linux x86_64)") == "desktop"
    assert detect_device_type(None) == "desktop"
