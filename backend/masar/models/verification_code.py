"""Verification code model - email one-time passcodes.

One row per identifier. Issuing a new code upserts the row, which replaces
any unconsumed code for that email. Deleted on successful verification.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from masar.models.base import Base


class VerificationCode(Base):
    """Pending one-time passcode for an email address.

    Keyed by email rather than a user foreign key so a code can exist before
    (and independently of) any other account state.

    Attributes:
        identifier: Email address (primary key, one slot per email).
        code: Fixed-length numeric code.
        expires: Code expiry timestamp.
        failed_attempts: Wrong guesses against this code. Reset on reissue.
        created_at: When this code was issued.
    """

    __tablename__ = "verification_codes"

    identifier: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )
    expires: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
