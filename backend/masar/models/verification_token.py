"""Verification token model - password reset tokens.

Single-use, time-limited. No id column: looked up by the (identifier, token)
composite key and deleted after use.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from masar.models.base import Base


class VerificationToken(Base):
    """Password reset token.

    Attributes:
        identifier: Email address.
        token: SHA-256 hex digest of the emailed token (64 chars). The plain
            token is never stored.
        expires: Token expiry timestamp.
    """

    __tablename__ = "verification_tokens"
    __table_args__ = (
        UniqueConstraint(
            "identifier", "token", name="uq_verification_tokens_identifier_token"
        ),
    )

    # No UUID id; the composite key is the unique constraint
    identifier: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        primary_key=True,
    )
    token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        primary_key=True,
    )
    expires: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
