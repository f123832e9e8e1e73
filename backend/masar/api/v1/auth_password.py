"""Password reset endpoints.

forgot-password always answers with the same message, whether or not an
account exists and whether or not the email could be sent.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from masar.api.deps import DbSession, PasswordReset
from masar.core.config import settings
from masar.core.errors import ValidationError
from masar.core.rate_limiting import limiter
from masar.core.responses import DataResponse
from masar.services.password_reset_service import INVALID_TOKEN_MSG, ResetOutcome

_GENERIC_RESET_MSG = "If an account with that email exists, a reset link has been sent."

router = APIRouter()


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot-password."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    token: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1, max_length=128)


@router.post("/forgot-password")
@limiter.limit(lambda: settings.rate_limit_reset)
async def forgot_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ForgotPasswordRequest,
    db: DbSession,
    reset: PasswordReset,
) -> DataResponse[dict]:
    """Email a reset link if the account exists.

    Rate limit: 5 per hour per IP (RATE_LIMIT_RESET).
    """
    await reset.request_reset(body.email.strip().lower())
    await db.commit()
    return DataResponse(data={"message": _GENERIC_RESET_MSG})


@router.post("/reset-password")
@limiter.limit(lambda: settings.rate_limit_reset)
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    db: DbSession,
    reset: PasswordReset,
) -> DataResponse[dict]:
    """Redeem a reset token and set a new password.

    A rejected token is committed before the 400 is raised, so an expired
    token stays deleted after the request rollback.

    Rate limit: 5 per hour per IP (RATE_LIMIT_RESET).
    """
    outcome = await reset.reset_password(
        body.email.strip().lower(), body.token, body.password
    )
    await db.commit()
    if outcome is not ResetOutcome.RESET:
        raise ValidationError(INVALID_TOKEN_MSG)
    return DataResponse(data={"message": "Password reset successful"})
