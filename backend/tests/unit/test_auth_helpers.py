"""Tests for auth helper functions.

Session JWT verification, password validation and hashing.
"""

import uuid
from datetime import timedelta

import bcrypt
import pytest
from pydantic import SecretStr

from masar.core.auth import (
    decode_session_token,
    hash_password,
    validate_password_strength,
)
from masar.core.config import settings
from masar.core.errors import UnauthorizedError, ValidationError
from tests.conftest import TEST_AUTH_SECRET, TEST_USER_ID, create_test_jwt


@pytest.fixture
def auth_secret(monkeypatch):
    monkeypatch.setattr(settings, "auth_secret", SecretStr(TEST_AUTH_SECRET))


@pytest.mark.usefixtures("auth_secret")
class TestDecodeSessionToken:
    """Tests for decode_session_token()."""

    def test_returns_subject(self):
        assert decode_session_token(create_test_jwt()) == TEST_USER_ID

    def test_other_user(self):
        other = uuid.uuid4()
        assert decode_session_token(create_test_jwt(other)) == other

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token_raises(self, token):
        with pytest.raises(UnauthorizedError):
            decode_session_token(token)

    def test_expired_token_raises(self):
        token = create_test_jwt(expires_delta=timedelta(seconds=-1))
        with pytest.raises(UnauthorizedError):
            decode_session_token(token)

    def test_wrong_secret_raises(self):
        token = create_test_jwt(secret="different-secret-that-does-not-match-the-real-one")
        with pytest.raises(UnauthorizedError):
            decode_session_token(token)

    def test_wrong_audience_raises(self):
        with pytest.raises(UnauthorizedError):
            decode_session_token(create_test_jwt(audience="another-app"))

    def test_garbage_raises(self):
        with pytest.raises(UnauthorizedError):
            decode_session_token("not-a-jwt")

    def test_error_does_not_say_why(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            decode_session_token(create_test_jwt(expires_delta=timedelta(seconds=-1)))
        assert exc_info.value.message == "Authentication required"


def test_unconfigured_secret_rejects_everything(monkeypatch):
    monkeypatch.setattr(settings, "auth_secret", SecretStr(""))
    with pytest.raises(UnauthorizedError):
        decode_session_token(create_test_jwt())


class TestValidatePasswordStrength:
    """Tests for validate_password_strength()."""

    def test_valid_password_passes(self):
        validate_password_strength("Passw0rd!")

    @pytest.mark.parametrize(
        ("password", "message"),
        [
            ("Pa0!", "at least 8 characters"),
            ("Pa0!" * 33, "at most 128 characters"),
            ("12345678!", "at least one letter"),
            ("Password!", "at least one number"),
            ("Password1", "at least one special character"),
        ],
    )
    def test_rejects_weak_password(self, password, message):
        with pytest.raises(ValidationError, match=message):
            validate_password_strength(password)

    def test_exactly_8_chars_passes(self):
        validate_password_strength("Abcde1!x")

    def test_exactly_128_chars_passes(self):
        validate_password_strength("A1!" + "x" * 125)


class TestHashPassword:
    """Tests for hash_password()."""

    def test_produces_verifiable_bcrypt_hash(self):
        hashed = hash_password("Passw0rd!", rounds=4)
        assert hashed.startswith("$2")
        assert bcrypt.checkpw(b"Passw0rd!", hashed.encode())

    def test_salted(self):
        assert hash_password("Passw0rd!", rounds=4) != hash_password("Passw0rd!", rounds=4)
