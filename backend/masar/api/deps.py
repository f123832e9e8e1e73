"""Shared dependencies for API endpoints.

Repositories are bound to the request's database session; services are
assembled from those repositories plus the process-wide email sender held on
``app.state``. Tests replace any of these through ``app.dependency_overrides``.

WHY DEPENDENCY INJECTION:
- No module-level database or HTTP clients
- Handlers and services are testable with in-memory stores
"""

import uuid
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from masar.core.auth import decode_session_token
from masar.core.config import settings
from masar.core.database import get_db
from masar.core.email import EmailSender
from masar.repositories.user_repository import UserRepository
from masar.repositories.verification_code_repository import VerificationCodeRepository
from masar.repositories.verification_token_repository import (
    VerificationTokenRepository,
)
from masar.services.otp_service import OtpService
from masar.services.password_reset_service import PasswordResetService

DbSession = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Authentication
# =============================================================================


async def get_current_user_id(request: Request) -> uuid.UUID:
    """Get the authenticated user's ID from the session cookie.

    The session JWT is issued by the external session provider; this only
    verifies signature, expiry, audience and issuer.

    Returns:
        UUID of the current authenticated user.

    Raises:
        UnauthorizedError: 401 for any auth failure.
    """
    return decode_session_token(request.cookies.get(settings.auth_cookie_name))


CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]


# =============================================================================
# Repositories
# =============================================================================


def get_user_repository(db: DbSession) -> UserRepository:
    """User repository bound to the request session."""
    return UserRepository(db)


def get_code_repository(db: DbSession) -> VerificationCodeRepository:
    """Verification code repository bound to the request session."""
    return VerificationCodeRepository(db)


def get_token_repository(db: DbSession) -> VerificationTokenRepository:
    """Reset token repository bound to the request session."""
    return VerificationTokenRepository(db)


Users = Annotated[UserRepository, Depends(get_user_repository)]
Codes = Annotated[VerificationCodeRepository, Depends(get_code_repository)]
Tokens = Annotated[VerificationTokenRepository, Depends(get_token_repository)]


# =============================================================================
# Services
# =============================================================================


def get_email_sender(request: Request) -> EmailSender:
    """Process-wide email sender created by the application lifespan."""
    sender: EmailSender = request.app.state.email_sender
    return sender


Mailer = Annotated[EmailSender, Depends(get_email_sender)]


def get_otp_service(codes: Codes, mailer: Mailer) -> OtpService:
    """OTP service configured from settings."""
    return OtpService(
        codes,
        mailer,
        ttl=timedelta(minutes=settings.otp_ttl_minutes),
        code_length=settings.otp_length,
        max_failed_attempts=settings.otp_max_failed_attempts,
    )


def get_password_reset_service(
    tokens: Tokens,
    users: Users,
    mailer: Mailer,
) -> PasswordResetService:
    """Password reset service configured from settings."""
    return PasswordResetService(
        tokens,
        users,
        mailer,
        reset_url_base=settings.frontend_url,
        ttl=timedelta(minutes=settings.reset_token_ttl_minutes),
    )


Otp = Annotated[OtpService, Depends(get_otp_service)]
PasswordReset = Annotated[PasswordResetService, Depends(get_password_reset_service)]
