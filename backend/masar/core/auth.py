"""Session verification and password helpers.

Sessions are issued by the external session provider as a signed JWT in an
httpOnly cookie. This module only verifies that cookie; it never issues one.

Pipeline:
- decode_session_token: verify signature, exp, aud, iss and return the subject
- validate_password_strength: format rules for password reset
- hash_password: bcrypt hash for storage
"""

import logging
import re
import uuid

import bcrypt
import jwt

from masar.core.config import settings
from masar.core.errors import UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)

# bcrypt cost factor for password hashing
_BCRYPT_ROUNDS = 12

_MIN_PASSWORD_LENGTH = 8
_MAX_PASSWORD_LENGTH = 128


def decode_session_token(token: str | None) -> uuid.UUID:
    """Verify a session JWT and return the user ID it names.

    Security: The error never says why verification failed (expired, bad
    signature, missing claim).

    Args:
        token: Raw cookie value.

    Returns:
        UUID from the ``sub`` claim.

    Raises:
        UnauthorizedError: For a missing, invalid, or expired token.
    """
    secret = settings.auth_secret.get_secret_value()
    if not token or not secret:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        logger.info("Session token rejected: %s", type(exc).__name__)
        raise UnauthorizedError() from exc


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars, letter + number + special character.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")
    if len(password) > _MAX_PASSWORD_LENGTH:
        raise ValidationError("Password must be at most 128 characters")
    if not re.search(r"[a-zA-Z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z\d]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = _BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Plain-text password (already strength-checked).
        rounds: bcrypt cost factor. Tests pass a low value for speed.

    Returns:
        bcrypt hash as a string.
    """
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()
