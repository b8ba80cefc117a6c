"""Tests for UserRepository.

Lookups, creation of portal accounts, and the auth-flow writes.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portal_auth.repositories.user_repository import UserRepository
from tests.conftest import TEST_CLIENT_EMAIL

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")


class TestGetById:
    """Test UserRepository.get_by_id()."""

    async def test_returns_user_when_found(self, db_session: AsyncSession, client_user):
        user = await UserRepository.get_by_id(db_session, client_user.id)
        assert user is not None
        assert user.email == TEST_CLIENT_EMAIL

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None


class TestGetByEmail:
    """Test UserRepository.get_by_email()."""

    async def test_lookup_ignores_case_and_whitespace(
        self, db_session: AsyncSession, client_user
    ):
        user = await UserRepository.get_by_email(
            db_session, "  Maria.Rossi@GMAIL.com "
        )
        assert user is not None
        assert user.id == client_user.id

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        user = await UserRepository.get_by_email(db_session, "nobody@example.com")
        assert user is None


class TestCreate:
    """Test UserRepository.create()."""

    async def test_invited_account_has_no_password(self, db_session: AsyncSession):
        user = await UserRepository.create(
            db_session, email="New.Client@Example.com", name="New", is_client=True
        )

        assert user.id is not None
        assert user.email == "new.client@example.com"
        assert user.password_hash is None
        assert user.is_client is True
        assert user.is_admin is False

    async def test_defaults_to_non_client(self, db_session: AsyncSession):
        user = await UserRepository.create(db_session, email="staff@example.com")
        assert user.is_client is False

    async def test_rejects_duplicate_email(
        self,
        db_session: AsyncSession,
        client_user,  # noqa: ARG002
    ):
        with pytest.raises(IntegrityError):
            await UserRepository.create(db_session, email=TEST_CLIENT_EMAIL.upper())

    async def test_timestamps_are_set(self, db_session: AsyncSession):
        user = await UserRepository.create(db_session, email="ts@example.com")
        assert user.created_at is not None
        assert user.updated_at is not None


class TestMarkEmailVerified:
    async def test_sets_first_verification(self, db_session: AsyncSession):
        user = await UserRepository.create(db_session, email="new@example.com")
        now = datetime.now(UTC)

        await UserRepository.mark_email_verified(db_session, user, now)

        assert user.email_verified == now

    async def test_keeps_earlier_verification(
        self, db_session: AsyncSession, client_user
    ):
        first = client_user.email_verified

        await UserRepository.mark_email_verified(
            db_session, client_user, datetime.now(UTC) + timedelta(days=1)
        )

        assert client_user.email_verified == first


class TestSetPassword:
    async def test_stores_hash_and_revokes_older_sessions(
        self, db_session: AsyncSession, client_user
    ):
        now = datetime.now(UTC)

        user = await UserRepository.set_password(
            db_session,
            client_user.id,
            password_hash="$2b$12$newhash",
            sessions_valid_from=now,
        )

        assert user is not None
        assert user.password_hash == "$2b$12$newhash"
        assert user.token_invalidated_before == now

    async def test_missing_account(self, db_session: AsyncSession):
        result = await UserRepository.set_password(
            db_session,
            _MISSING_UUID,
            password_hash="$2b$12$x",
            sessions_valid_from=datetime.now(UTC),
        )
        assert result is None


class TestRevokeSessions:
    async def test_sets_cutoff(
        self, db_session: AsyncSession, session_factory, client_user
    ):
        cutoff = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

        assert await UserRepository.revoke_sessions(
            db_session, client_user.id, before=cutoff
        )
        await db_session.commit()

        async with session_factory() as fresh:
            stored = await UserRepository.get_by_id(fresh, client_user.id)
            assert stored.token_invalidated_before.replace(tzinfo=UTC) == cutoff

    async def test_missing_account(self, db_session: AsyncSession):
        assert not await UserRepository.revoke_sessions(
            db_session, _MISSING_UUID, before=datetime.now(UTC)
        )
