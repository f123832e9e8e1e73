"""User model - the account an email verification or password reset targets.

Only the columns the identity layer reads or writes are mapped here. Profile,
roadmap and payment data live in tables owned by other services.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from masar.models.base import Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lower-cased.
        first_name: Given name (sanitized before storage).
        last_name: Family name (sanitized before storage).
        password_hash: bcrypt hash. NULL for accounts without a password.
        email_verified: Timestamp when email was verified. NULL = unverified.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        server_default="",
    )
    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        server_default="",
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    @property
    def is_email_verified(self) -> bool:
        """True once the email address has been confirmed."""
        return self.email_verified is not None
