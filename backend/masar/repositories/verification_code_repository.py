"""Repository for VerificationCode (email OTP) operations.

Concurrency: issuance is a single INSERT ... ON CONFLICT DO UPDATE keyed by
identifier, and consumption is a conditional DELETE. Two concurrent resends
therefore leave exactly one code, and two concurrent verifies of the same
code succeed at most once.
"""

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from masar.models.verification_code import VerificationCode


class VerificationCodeRepository:
    """verification_codes table access bound to one request's session.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def upsert(self, *, identifier: str, code: str, expires: datetime) -> None:
        """Store a code, replacing any existing code for the identifier.

        Resets the failed-attempt counter, since it counts guesses against
        the code being replaced.

        Args:
            identifier: Email address.
            code: Newly generated code.
            expires: Code expiry timestamp.
        """
        stmt = insert(VerificationCode).values(
            identifier=identifier,
            code=code,
            expires=expires,
            failed_attempts=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[VerificationCode.identifier],
            set_={
                "code": stmt.excluded.code,
                "expires": stmt.excluded.expires,
                "failed_attempts": 0,
                "created_at": func.now(),
            },
        )
        await self._db.execute(stmt)

    async def get(self, identifier: str) -> VerificationCode | None:
        """Look up the pending code for an identifier.

        Returns:
            VerificationCode if one exists, None otherwise.
        """
        stmt = select(VerificationCode).where(
            VerificationCode.identifier == identifier
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def consume(self, *, identifier: str, code: str) -> bool:
        """Delete the record only if it still holds this code.

        Args:
            identifier: Email address.
            code: The stored code the caller matched against.

        Returns:
            True if this call removed the record, False if it was already
            consumed or replaced.
        """
        stmt = delete(VerificationCode).where(
            VerificationCode.identifier == identifier,
            VerificationCode.code == code,
        )
        result = await self._db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count == 1

    async def record_failed_attempt(self, *, identifier: str, code: str) -> None:
        """Increment the failed-attempt counter of the current code.

        Conditional on the code so a guess against a replaced code does not
        count against its replacement.
        """
        stmt = (
            update(VerificationCode)
            .where(
                VerificationCode.identifier == identifier,
                VerificationCode.code == code,
            )
            .values(failed_attempts=VerificationCode.failed_attempts + 1)
        )
        await self._db.execute(stmt)

    async def delete_expired(self, now: datetime) -> int:
        """Delete all expired codes (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(VerificationCode).where(VerificationCode.expires < now)
        result = await self._db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
