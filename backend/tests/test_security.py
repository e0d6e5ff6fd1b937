"""Tests for password hashing and bearer tokens."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from app.auth.security import (
    ACCESS,
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    subject_of,
    verify_password,
)


@pytest.fixture(autouse=True)
def _mock_settings(monkeypatch):
    """Provide test settings for JWT (secret and algorithm)."""
    from app.auth import security
    mock = MagicMock()
    mock.jwt_secret = "test-secret-at-least-32-characters-long"
    mock.jwt_algorithm = "HS256"
    mock.access_token_expire_minutes = 30
    mock.refresh_token_expire_days = 7
    monkeypatch.setattr(security, "get_settings", lambda: mock)


def test_hash_and_verify_password() -> None:
    hashed = hash_password("mySecret123")
    assert hashed != "mySecret123"
    assert hashed.startswith("$2")  # bcrypt
    assert verify_password("mySecret123", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_password_beyond_72_bytes_ignored() -> None:
    hashed = hash_password("a" * 100)
    assert verify_password("a" * 72, hashed) is True


def test_access_token_claims() -> None:
    payload = decode_token(create_access_token("editor@example.com"))
    assert payload is not None
    assert payload["sub"] == "editor@example.com"
    assert payload["type"] == ACCESS
    assert "exp" in payload


def test_subject_of_checks_token_type() -> None:
    access = create_access_token("a@example.com")
    refresh = create_refresh_token("a@example.com")
    assert subject_of(access, ACCESS) == "a@example.com"
    assert subject_of(refresh, REFRESH) == "a@example.com"
    assert subject_of(access, REFRESH) is None
    assert subject_of(refresh, ACCESS) is None


def test_expired_or_garbage_token_rejected() -> None:
    expired = create_access_token("a@example.com", expires_delta=timedelta(seconds=-5))
    assert decode_token(expired) is None
    assert decode_token("not-a-jwt") is None
    assert subject_of("", ACCESS) is None
