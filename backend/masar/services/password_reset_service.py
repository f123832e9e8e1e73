"""Password reset via single-use emailed tokens.

The plain token (256-bit, hex) only ever exists in the email link. The
database stores its SHA-256 digest, so a leaked table cannot be replayed.
"""

import hashlib
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

import structlog

from masar.core.auth import hash_password, validate_password_strength
from masar.core.email import EmailSender, build_reset_link, render_password_reset_email
from masar.core.errors import TransportError
from masar.models.user import User
from masar.models.verification_token import VerificationToken

logger = structlog.get_logger()

DEFAULT_TTL = timedelta(hours=1)

INVALID_TOKEN_MSG = "Invalid or expired token"  # nosec B105

# 32 bytes = 256 bits, hex-encoded (64 chars)
_TOKEN_BYTES = 32


class ResetTokenStore(Protocol):
    """Persistence operations for reset tokens.

    Implemented by VerificationTokenRepository (PostgreSQL).
    """

    async def create(self, *, identifier: str, token_hash: str, expires: datetime) -> None: ...

    async def get(self, *, identifier: str, token_hash: str) -> VerificationToken | None: ...

    async def delete(self, *, identifier: str, token_hash: str) -> None: ...

    async def delete_all_for_identifier(self, *, identifier: str) -> None: ...


class PasswordUserStore(Protocol):
    """User operations the reset flow needs.

    Implemented by UserRepository (PostgreSQL).
    """

    async def get_by_email(self, email: str) -> User | None: ...

    async def set_password_hash(self, email: str, password_hash: str) -> None: ...


class ResetOutcome(str, Enum):
    """Outcome of a reset_password() call.

    Every value except RESET is reported to the client as the same
    "invalid or expired" error. Rejections may still have deleted tokens, so
    the caller commits before raising.
    """

    RESET = "reset"
    UNKNOWN_TOKEN = "unknown_token"
    EXPIRED = "expired"
    NO_ACCOUNT = "no_account"


def hash_reset_token(token: str) -> str:
    """SHA-256 hex digest of a plain reset token."""
    return hashlib.sha256(token.encode()).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PasswordResetService:
    """Issue and redeem password reset tokens.

    Args:
        tokens: Reset token persistence.
        users: User persistence.
        mailer: Email transport.
        reset_url_base: Frontend base URL for the reset link.
        ttl: Token lifetime.
        clock: Returns the current UTC time.
        bcrypt_rounds: Optional bcrypt cost override (tests use a low value).
    """

    def __init__(
        self,
        tokens: ResetTokenStore,
        users: PasswordUserStore,
        mailer: EmailSender,
        *,
        reset_url_base: str,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
        bcrypt_rounds: int | None = None,
    ) -> None:
        self._tokens = tokens
        self._users = users
        self._mailer = mailer
        self._reset_url_base = reset_url_base
        self._ttl = ttl
        self._clock = clock
        self._bcrypt_rounds = bcrypt_rounds

    async def request_reset(self, email: str) -> None:
        """Email a reset link if an account exists for this address.

        Returns nothing either way: the caller's response must not depend on
        whether the account exists. A transport failure is logged and no
        token is stored, for the same reason.
        """
        # Token generation runs in all paths so timing does not depend on
        # account existence.
        plain_token = secrets.token_hex(_TOKEN_BYTES)

        user = await self._users.get_by_email(email)
        if user is None:
            logger.info("password_reset_requested", account_found=False)
            return

        reset_link = build_reset_link(
            base_url=self._reset_url_base, token=plain_token, email=email
        )
        subject, html = render_password_reset_email(
            reset_link=reset_link,
            ttl_minutes=int(self._ttl.total_seconds() // 60),
        )
        try:
            await self._mailer.send_mail(to=email, subject=subject, html=html)
        except TransportError:
            logger.error("password_reset_email_failed", identifier=email)
            return

        await self._tokens.create(
            identifier=email,
            token_hash=hash_reset_token(plain_token),
            expires=self._clock() + self._ttl,
        )
        logger.info("password_reset_requested", account_found=True)

    async def reset_password(
        self, email: str, token: str, new_password: str
    ) -> ResetOutcome:
        """Redeem a reset token and set a new password.

        All tokens for the email are deleted on success, so the same link
        cannot be used twice. An expired token is deleted on rejection.

        Returns:
            RESET on success, otherwise the rejection reason.

        Raises:
            ValidationError: The new password is too weak. Nothing has been
                written at that point.
        """
        validate_password_strength(new_password)

        token_hash = hash_reset_token(token)
        record = await self._tokens.get(identifier=email, token_hash=token_hash)
        if record is None:
            logger.warning("password_reset_rejected", reason="unknown_token")
            return ResetOutcome.UNKNOWN_TOKEN

        if record.expires < self._clock():
            await self._tokens.delete(identifier=email, token_hash=token_hash)
            logger.warning("password_reset_rejected", reason="expired")
            return ResetOutcome.EXPIRED

        user = await self._users.get_by_email(email)
        if user is None:
            await self._tokens.delete_all_for_identifier(identifier=email)
            logger.warning("password_reset_rejected", reason="no_account")
            return ResetOutcome.NO_ACCOUNT

        if self._bcrypt_rounds is None:
            password_hash = hash_password(new_password)
        else:
            password_hash = hash_password(new_password, rounds=self._bcrypt_rounds)
        await self._users.set_password_hash(email, password_hash)
        await self._tokens.delete_all_for_identifier(identifier=email)
        logger.info("password_reset_completed", identifier=email)
        return ResetOutcome.RESET
