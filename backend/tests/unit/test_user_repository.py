"""Tests for UserRepository (PostgreSQL)."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from masar.core.errors import ConflictError
from masar.repositories.user_repository import UserRepository

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")
_VERIFIED_AT = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


async def _create(repo: UserRepository, email: str = "Sara@Example.com"):
    return await repo.create(email=email, first_name="Sara", last_name="Ali")


class TestCreate:
    """Test UserRepository.create()."""

    async def test_creates_unverified_user_with_lowercased_email(
        self, db_session: AsyncSession
    ):
        user = await _create(UserRepository(db_session))

        assert user.id is not None
        assert user.email == "sara@example.com"
        assert user.email_verified is None
        assert user.is_email_verified is False

    async def test_duplicate_email_raises_conflict(self, db_session: AsyncSession):
        repo = UserRepository(db_session)
        await _create(repo)

        with pytest.raises(ConflictError) as exc_info:
            await _create(repo, "SARA@example.com")

        assert exc_info.value.code == "EMAIL_IN_USE"


class TestLookup:
    """Test get_by_id() and get_by_email()."""

    async def test_get_by_email_is_case_insensitive(self, db_session: AsyncSession):
        repo = UserRepository(db_session)
        user = await _create(repo)

        found = await repo.get_by_email("SARA@EXAMPLE.COM")

        assert found is not None
        assert found.id == user.id

    async def test_get_by_id_missing_returns_none(self, db_session: AsyncSession):
        assert await UserRepository(db_session).get_by_id(_MISSING_UUID) is None


class TestUpdate:
    """Test UserRepository.update()."""

    async def test_updates_names(self, db_session: AsyncSession):
        repo = UserRepository(db_session)
        user = await _create(repo)

        updated = await repo.update(user.id, first_name="Noor")

        assert updated is not None
        assert updated.first_name == "Noor"
        assert updated.last_name == "Ali"

    async def test_missing_user_returns_none(self, db_session: AsyncSession):
        assert await UserRepository(db_session).update(_MISSING_UUID, first_name="x") is None

    async def test_rejects_protected_fields(self, db_session: AsyncSession):
        repo = UserRepository(db_session)
        user = await _create(repo)

        with pytest.raises(ValueError, match="password_hash"):
            await repo.update(user.id, password_hash="x")


class TestVerificationAndPassword:
    """Test mark_email_verified() and set_password_hash()."""

    async def test_mark_email_verified_keeps_first_timestamp(
        self, db_session: AsyncSession
    ):
        repo = UserRepository(db_session)
        user = await _create(repo)

        await repo.mark_email_verified("sara@example.com", _VERIFIED_AT)
        await repo.mark_email_verified("sara@example.com", _VERIFIED_AT + timedelta(days=1))

        await db_session.refresh(user)
        assert user.email_verified == _VERIFIED_AT

    async def test_set_password_hash(self, db_session: AsyncSession):
        repo = UserRepository(db_session)
        user = await _create(repo)

        await repo.set_password_hash("SARA@example.com", "$2b$04$hash")

        await db_session.refresh(user)
        assert user.password_hash == "$2b$04$hash"
