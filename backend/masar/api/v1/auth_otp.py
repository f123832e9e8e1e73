"""Registration and email verification endpoints.

Flow: register → code emailed → verify-otp → email marked verified.
send-otp and resend-otp issue a fresh code for an existing, unverified
account; each new code replaces the previous one.

Security considerations:
- Unknown emails get the same response as known ones when
  ENUMERATION_SAFE is on (the default)
- A code is stored only after the email carrying it was accepted
- Wrong guesses are counted per code; the code locks after the limit
"""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from masar.api.deps import DbSession, Otp, Users
from masar.core.auth import hash_password, validate_password_strength
from masar.core.config import settings
from masar.core.errors import (
    AlreadyVerifiedError,
    NotFoundError,
    RateLimitError,
    TransportError,
    ValidationError,
)
from masar.core.rate_limiting import limiter
from masar.core.responses import DataResponse
from masar.core.sanitization import sanitize_for_storage
from masar.repositories.user_repository import UserRepository
from masar.services.otp_service import OtpService, VerificationResult

logger = structlog.get_logger()

_INVALID_CODE_MSG = "Invalid or expired verification code"
_LOCKED_MSG = "Too many failed attempts. Please request a new verification code."
_SENT_MSG = "Verification code sent successfully"
_RESENT_MSG = "Verification code resent successfully"

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)


class EmailRequest(BaseModel):
    """Request body for POST /auth/send-otp and /auth/resend-otp."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    otp: str = Field(min_length=1, max_length=16)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit(lambda: settings.rate_limit_register)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    db: DbSession,
    users: Users,
    otp: Otp,
) -> DataResponse[dict]:
    """Create an unverified account and email its first verification code.

    Names go through sanitize_for_storage, so a name that matches an SQL
    injection signature rejects the whole request with 400.

    The account is committed before the code is sent. If sending fails the
    account still exists and the response says so via ``verification_sent``;
    the client then offers resend-otp.

    Rate limit: 3 per hour per IP (RATE_LIMIT_REGISTER).
    """
    validate_password_strength(body.password)
    names = sanitize_for_storage(
        {"first_name": body.first_name, "last_name": body.last_name}
    )
    if not names["first_name"]:
        raise ValidationError(
            "First name is required", details=[{"field": "first_name"}]
        )

    email = _normalize_email(body.email)
    user = await users.create(
        email=email,
        first_name=names["first_name"],
        last_name=names["last_name"],
        password_hash=hash_password(body.password),
    )
    await db.commit()
    logger.info("user_registered", user_id=str(user.id))

    verification_sent = True
    try:
        await otp.issue(email, user.first_name)
        await db.commit()
    except TransportError:
        verification_sent = False

    return DataResponse(
        data={
            "id": str(user.id),
            "email": user.email,
            "verification_sent": verification_sent,
        }
    )


# ===================================================================
# POST /auth/send-otp, /auth/resend-otp
# ===================================================================


async def _issue_code(
    email: str,
    users: UserRepository,
    otp: OtpService,
    *,
    resend: bool,
) -> bool:
    """Issue a code for an unverified account.

    Returns:
        True if a code was sent, False for an unknown email in
        enumeration-safe mode.

    Raises:
        NotFoundError: Unknown email with ENUMERATION_SAFE off.
        AlreadyVerifiedError: Account is already verified.
        TransportError: The email could not be sent.
    """
    user = await users.get_by_email(email)
    if user is None:
        if settings.enumeration_safe:
            logger.info("otp_requested_for_unknown_email")
            return False
        raise NotFoundError("User")
    if user.is_email_verified:
        raise AlreadyVerifiedError()

    if resend:
        await otp.resend(email, user.first_name)
    else:
        await otp.issue(email, user.first_name)
    return True


@router.post("/send-otp")
@limiter.limit(lambda: settings.rate_limit_otp)
async def send_otp(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    users: Users,
    otp: Otp,
) -> DataResponse[dict]:
    """Email a verification code to an unverified account.

    Rate limit: 5 per hour per IP (RATE_LIMIT_OTP).
    """
    if await _issue_code(_normalize_email(body.email), users, otp, resend=False):
        await db.commit()
    return DataResponse(data={"message": _SENT_MSG})


@router.post("/resend-otp")
@limiter.limit(lambda: settings.rate_limit_otp)
async def resend_otp(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailRequest,
    db: DbSession,
    users: Users,
    otp: Otp,
) -> DataResponse[dict]:
    """Replace the pending code with a fresh one.

    The previous code stops working as soon as the new one is stored.

    Rate limit: 5 per hour per IP (RATE_LIMIT_OTP).
    """
    if await _issue_code(_normalize_email(body.email), users, otp, resend=True):
        await db.commit()
    return DataResponse(data={"message": _RESENT_MSG})


# ===================================================================
# POST /auth/verify-otp
# ===================================================================


@router.post("/verify-otp")
@limiter.limit(lambda: settings.rate_limit_verify)
async def verify_otp(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyOtpRequest,
    db: DbSession,
    users: Users,
    otp: Otp,
) -> DataResponse[dict]:
    """Check a code and mark the account's email as verified.

    Wrong, expired and missing codes all get the same 400 message. The
    failed-attempt counter is committed before the error is raised so the
    request rollback does not undo it.

    Rate limit: 10 per minute per IP (RATE_LIMIT_VERIFY).
    """
    email = _normalize_email(body.email)
    user = await users.get_by_email(email)
    if user is None:
        if settings.enumeration_safe:
            raise ValidationError(_INVALID_CODE_MSG)
        raise NotFoundError("User")
    if user.is_email_verified:
        raise AlreadyVerifiedError()

    result = await otp.verify(email, body.otp)
    if result is VerificationResult.LOCKED:
        raise RateLimitError(_LOCKED_MSG)
    if not result.is_valid:
        await db.commit()
        raise ValidationError(_INVALID_CODE_MSG)

    await users.mark_email_verified(email, datetime.now(UTC))
    await db.commit()
    return DataResponse(data={"message": "Email verified successfully"})
