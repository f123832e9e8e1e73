"""Repository for VerificationToken (password reset) operations.

Single-use tokens stored as SHA-256 digests with composite key
(identifier, token) and time-limited expiry.
"""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from masar.models.verification_token import VerificationToken


class VerificationTokenRepository:
    """verification_tokens table access bound to one request's session.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create(
        self,
        *,
        identifier: str,
        token_hash: str,
        expires: datetime,
    ) -> None:
        """Store a new reset token.

        Args:
            identifier: Email address.
            token_hash: SHA-256 hex digest of the plain token.
            expires: Token expiry timestamp.
        """
        self._db.add(
            VerificationToken(
                identifier=identifier,
                token=token_hash,
                expires=expires,
            )
        )
        await self._db.flush()

    async def get(
        self,
        *,
        identifier: str,
        token_hash: str,
    ) -> VerificationToken | None:
        """Look up a token by composite key.

        Returns:
            VerificationToken if found, None otherwise.
        """
        stmt = select(VerificationToken).where(
            VerificationToken.identifier == identifier,
            VerificationToken.token == token_hash,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def delete(
        self,
        *,
        identifier: str,
        token_hash: str,
    ) -> None:
        """Delete one token."""
        stmt = delete(VerificationToken).where(
            VerificationToken.identifier == identifier,
            VerificationToken.token == token_hash,
        )
        await self._db.execute(stmt)

    async def delete_all_for_identifier(self, *, identifier: str) -> None:
        """Delete all tokens for an identifier (cleanup on successful reset)."""
        stmt = delete(VerificationToken).where(
            VerificationToken.identifier == identifier,
        )
        await self._db.execute(stmt)

    async def delete_expired(self, now: datetime) -> int:
        """Delete all expired tokens (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(VerificationToken).where(VerificationToken.expires < now)
        result = await self._db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
