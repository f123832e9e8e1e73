"""Repository for User operations used by the identity layer.

Lookups are by email because verification codes and reset tokens are keyed
by email, not by user id.
"""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from masar.core.errors import ConflictError
from masar.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'email_verified' or 'password_hash'.
# Those change only through their dedicated flows (verification, reset).
_UPDATABLE_FIELDS: frozenset[str] = frozenset({"first_name", "last_name"})


class UserRepository:
    """User table access bound to one request's session.

    The caller owns the session and the transaction boundaries; methods only
    flush.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key."""
        return await self._db.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.lower())
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        password_hash: str | None = None,
    ) -> User:
        """Create a new, unverified user.

        Email is normalized to lowercase before storage.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            ConflictError: If the email is already registered.
        """
        user = User(
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
        )
        self._db.add(user)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            raise ConflictError("EMAIL_IN_USE", "Email already in use") from exc
        await self._db.refresh(user)
        return user

    async def update(self, user_id: uuid.UUID, **kwargs: str) -> User | None:
        """Update profile fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await self._db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await self._db.flush()
        await self._db.refresh(user)
        return user

    async def mark_email_verified(self, email: str, verified_at: datetime) -> None:
        """Set email_verified for the account with this email.

        Only sets the timestamp if it is still NULL, so the first verification
        time is kept.
        """
        stmt = (
            update(User)
            .where(User.email == email.lower(), User.email_verified.is_(None))
            .values(email_verified=verified_at)
        )
        await self._db.execute(stmt)

    async def set_password_hash(self, email: str, password_hash: str) -> None:
        """Replace the password hash for the account with this email."""
        stmt = (
            update(User)
            .where(User.email == email.lower())
            .values(password_hash=password_hash)
        )
        await self._db.execute(stmt)
