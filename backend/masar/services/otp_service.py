"""One-time passcode issuance and verification for email confirmation.

State per identifier (email):

    NoCode ──issue──▶ Pending(code, expires) ──verify ok──▶ Verified (row deleted)
                          │  ▲                 ├─expired──▶ Expired (row kept)
                          │  └──issue/resend───┘ (Replaced: upsert)
                          └─wrong code──▶ Pending (failed_attempts + 1)

The service is identifier-agnostic: it does not know about accounts. Callers
check that the email belongs to an existing, unverified account before
issuing or verifying.

Ordering invariant: a code is persisted only after the email carrying it was
accepted by the transport. A send failure (or a cancelled request) leaves the
previous state untouched.
"""

import hmac
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

import structlog

from masar.core.email import EmailSender, render_otp_email
from masar.core.errors import TransportError
from masar.models.verification_code import VerificationCode

logger = structlog.get_logger()

DEFAULT_CODE_LENGTH = 6
DEFAULT_TTL = timedelta(minutes=10)
DEFAULT_MAX_FAILED_ATTEMPTS = 5


class VerificationCodeStore(Protocol):
    """Persistence operations the OTP service needs.

    Implemented by VerificationCodeRepository (PostgreSQL).
    """

    async def upsert(self, *, identifier: str, code: str, expires: datetime) -> None: ...

    async def get(self, identifier: str) -> VerificationCode | None: ...

    async def consume(self, *, identifier: str, code: str) -> bool: ...

    async def record_failed_attempt(self, *, identifier: str, code: str) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...


class VerificationResult(str, Enum):
    """Outcome of a verify() call.

    Only VALID means the code was accepted. Callers map every other value to
    the same client-facing "invalid or expired" message, except LOCKED which
    is reported as a rate limit.
    """

    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    NO_CODE = "no_code"
    LOCKED = "locked"

    @property
    def is_valid(self) -> bool:
        """True only for VALID."""
        return self is VerificationResult.VALID


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OtpService:
    """Generate, deliver, store and verify email one-time passcodes.

    Args:
        store: Code persistence (bound to the current request's session).
        mailer: Email transport.
        ttl: Code lifetime.
        code_length: Number of digits.
        max_failed_attempts: Wrong guesses allowed per code before it locks.
        clock: Returns the current UTC time. Tests inject a fixed clock.
    """

    def __init__(
        self,
        store: VerificationCodeStore,
        mailer: EmailSender,
        *,
        ttl: timedelta = DEFAULT_TTL,
        code_length: int = DEFAULT_CODE_LENGTH,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._ttl = ttl
        self._code_length = code_length
        self._max_failed_attempts = max_failed_attempts
        self._clock = clock

    @property
    def ttl_minutes(self) -> int:
        """Code lifetime in whole minutes (for user-facing text)."""
        return int(self._ttl.total_seconds() // 60)

    def generate(self) -> str:
        """Generate a numeric code from the OS CSPRNG.

        Returns:
            Zero-padded string of exactly ``code_length`` digits.
        """
        upper = 10**self._code_length
        return f"{secrets.randbelow(upper):0{self._code_length}d}"

    async def send(self, email: str, code: str, display_name: str) -> None:
        """Email a code to its recipient.

        Raises:
            TransportError: If the transport rejected the message.
        """
        subject, html = render_otp_email(
            code=code, display_name=display_name, ttl_minutes=self.ttl_minutes
        )
        try:
            await self._mailer.send_mail(to=email, subject=subject, html=html)
        except TransportError:
            logger.error("otp_send_failed", identifier=email)
            raise
        logger.info("otp_sent", identifier=email)

    async def save(self, email: str, code: str) -> datetime:
        """Store a code for an email, replacing any pending code.

        Returns:
            The expiry timestamp that was stored.
        """
        expires = self._clock() + self._ttl
        await self._store.upsert(identifier=email, code=code, expires=expires)
        logger.info("otp_saved", identifier=email, expires=expires.isoformat())
        return expires

    async def issue(self, email: str, display_name: str) -> datetime:
        """Generate, send, then save a new code as one unit.

        The previous code for this email stops working once the new one is
        saved. Nothing is saved if sending fails.

        Returns:
            Expiry timestamp of the new code.

        Raises:
            TransportError: If the email could not be sent.
        """
        code = self.generate()
        await self.send(email, code, display_name)
        return await self.save(email, code)

    async def resend(self, email: str, display_name: str) -> datetime:
        """Replace the pending code with a fresh one and email it.

        Same unit as issue(); always invalidates the prior code on success.
        """
        return await self.issue(email, display_name)

    async def verify(self, email: str, supplied_code: str) -> VerificationResult:
        """Check a supplied code and consume it on success.

        A wrong code leaves the record in place (apart from its failed-attempt
        counter) so the user can retry within the remaining window. Once the
        counter reaches the limit, every attempt returns LOCKED until a new
        code is issued.

        Args:
            email: Identifier the code was issued for.
            supplied_code: Code entered by the user. Only surrounding
                whitespace is removed.

        Returns:
            VerificationResult.
        """
        record = await self._store.get(email)
        result = await self._check(email, supplied_code.strip(), record)

        if result.is_valid:
            logger.info("otp_verified", identifier=email)
        else:
            logger.warning("otp_verify_rejected", identifier=email, result=result.value)
        return result

    async def _check(
        self, email: str, supplied: str, record: VerificationCode | None
    ) -> VerificationResult:
        if record is None:
            return VerificationResult.NO_CODE
        if record.failed_attempts >= self._max_failed_attempts:
            return VerificationResult.LOCKED
        if self._clock() > record.expires:
            return VerificationResult.EXPIRED

        if not hmac.compare_digest(supplied.encode(), record.code.encode()):
            await self._store.record_failed_attempt(identifier=email, code=record.code)
            return VerificationResult.INVALID

        # Conditional delete: if a concurrent verify or resend got there
        # first, this code no longer exists and must not be accepted.
        if not await self._store.consume(identifier=email, code=record.code):
            return VerificationResult.INVALID
        return VerificationResult.VALID

    async def purge_expired(self) -> int:
        """Delete all expired codes.

        Returns:
            Number of codes removed.
        """
        removed = await self._store.delete_expired(self._clock())
        logger.info("otp_purged", count=removed)
        return removed
