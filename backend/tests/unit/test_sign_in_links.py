"""Tests for the identity platform service (links, codes, sessions)."""

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlsplit

import pytest
from sqlalchemy import select

from portal_auth.core.auth import decode_access_token, hash_link_token
from portal_auth.core.errors import SessionExchangeError
from portal_auth.models import LinkType, User, VerificationToken
from portal_auth.repositories.verification_token_repository import (
    VerificationTokenRepository,
)
from portal_auth.services import sign_in_links
from tests.conftest import TEST_CLIENT_EMAIL, TEST_PASSWORD


def _token_from(link: str) -> str:
    return parse_qs(urlsplit(link).query)["token"][0]


class TestGenerateLink:
    async def test_link_points_at_verify_endpoint(self, db_session, client_user):  # noqa: ARG002
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.RECOVERY
        )

        parts = urlsplit(link)
        assert parts.path == "/api/v1/auth/verify"
        query = parse_qs(parts.query)
        assert query["type"] == ["recovery"]
        assert query["identifier"] == [TEST_CLIENT_EMAIL]
        assert query["redirect_to"] == ["http://portal.test/client-portal"]

    async def test_only_hash_is_stored(self, db_session, client_user):  # noqa: ARG002
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.MAGICLINK
        )
        plain = _token_from(link)

        row = (await db_session.execute(select(VerificationToken))).scalar_one()
        assert row.token == hash_link_token(plain)
        assert row.token != plain

    async def test_invite_lives_a_day(self, db_session, client_user):  # noqa: ARG002
        await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.INVITE
        )
        row = (await db_session.execute(select(VerificationToken))).scalar_one()
        expires = sign_in_links._as_utc(row.expires)
        assert expires - datetime.now(UTC) > timedelta(hours=23)

    async def test_foreign_redirect_replaced_by_portal(self, db_session, client_user):  # noqa: ARG002
        link = await sign_in_links.generate_link(
            db_session,
            email=TEST_CLIENT_EMAIL,
            link_type=LinkType.MAGICLINK,
            redirect_to="https://evil.example.com/steal",
        )
        query = parse_qs(urlsplit(link).query)
        assert query["redirect_to"] == ["http://portal.test/client-portal"]

    async def test_unknown_email_raises(self, db_session):
        with pytest.raises(SessionExchangeError):
            await sign_in_links.generate_link(
                db_session, email="nobody@example.com", link_type=LinkType.MAGICLINK
            )

    async def test_authorization_code_is_not_a_link_type(self, db_session):
        with pytest.raises(ValueError, match="Not a link type"):
            await sign_in_links.generate_link(
                db_session,
                email=TEST_CLIENT_EMAIL,
                link_type=LinkType.AUTHORIZATION_CODE,
            )


class TestVerifyLink:
    async def test_redeems_once(self, db_session, client_user):
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.MAGICLINK
        )
        token = _token_from(link)

        session = await sign_in_links.verify_link(
            db_session, token=token, link_type=LinkType.MAGICLINK
        )
        assert session.user.id == client_user.id

        with pytest.raises(SessionExchangeError):
            await sign_in_links.verify_link(
                db_session, token=token, link_type=LinkType.MAGICLINK
            )

    async def test_link_type_must_match(self, db_session, client_user):  # noqa: ARG002
        """A magic link cannot be replayed as a recovery link."""
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.MAGICLINK
        )

        with pytest.raises(SessionExchangeError):
            await sign_in_links.verify_link(
                db_session, token=_token_from(link), link_type=LinkType.RECOVERY
            )

    async def test_recovery_session_carries_reset_claim(self, db_session, client_user):  # noqa: ARG002
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.RECOVERY
        )
        session = await sign_in_links.verify_link(
            db_session, token=_token_from(link), link_type=LinkType.RECOVERY
        )

        assert session.link_type == LinkType.RECOVERY
        assert "pwr" in decode_access_token(session.tokens.access_token)
        assert session.to_payload()["type"] == "recovery"

    async def test_magiclink_session_has_no_reset_claim(self, db_session, client_user):  # noqa: ARG002
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.MAGICLINK
        )
        session = await sign_in_links.verify_link(
            db_session, token=_token_from(link), link_type=LinkType.MAGICLINK
        )
        assert "pwr" not in decode_access_token(session.tokens.access_token)

    async def test_expired_link_rejected(self, db_session, client_user):  # noqa: ARG002
        await VerificationTokenRepository.create(
            db_session,
            identifier=TEST_CLIENT_EMAIL,
            token_hash=hash_link_token("stale"),
            expires=datetime.now(UTC) - timedelta(minutes=1),
            purpose=LinkType.MAGICLINK,
        )
        with pytest.raises(SessionExchangeError):
            await sign_in_links.verify_link(
                db_session, token="stale", link_type=LinkType.MAGICLINK
            )

    async def test_marks_email_verified(self, db_session):
        user = User(email="fresh@example.com", is_client=True)
        db_session.add(user)
        await db_session.commit()
        link = await sign_in_links.generate_link(
            db_session, email="fresh@example.com", link_type=LinkType.INVITE
        )

        session = await sign_in_links.verify_link(
            db_session, token=_token_from(link), link_type=LinkType.INVITE
        )
        assert session.user.email_verified is not None


class TestAuthorizationCode:
    async def test_exchange_once_and_keep_flow_type(self, db_session, client_user):
        code = await sign_in_links.create_authorization_code(
            db_session, user=client_user, link_type=LinkType.INVITE
        )

        session = await sign_in_links.exchange_authorization_code(db_session, code=code)
        assert session.link_type == LinkType.INVITE
        assert "pwr" in decode_access_token(session.tokens.access_token)

        with pytest.raises(SessionExchangeError):
            await sign_in_links.exchange_authorization_code(db_session, code=code)

    async def test_link_token_is_not_an_authorization_code(
        self,
        db_session,
        client_user,  # noqa: ARG002
    ):
        link = await sign_in_links.generate_link(
            db_session, email=TEST_CLIENT_EMAIL, link_type=LinkType.MAGICLINK
        )
        with pytest.raises(SessionExchangeError):
            await sign_in_links.exchange_authorization_code(
                db_session, code=_token_from(link)
            )


class TestRefreshSession:
    async def test_rotates_pair(self, db_session, client_user):
        first = sign_in_links.start_session(client_user)

        second = await sign_in_links.refresh_session(
            db_session, refresh_token=first.tokens.refresh_token
        )
        assert second.user.id == client_user.id

    async def test_access_token_rejected(self, db_session, client_user):
        session = sign_in_links.start_session(client_user)
        with pytest.raises(SessionExchangeError):
            await sign_in_links.refresh_session(
                db_session, refresh_token=session.tokens.access_token
            )

    async def test_revoked_refresh_token_rejected(self, db_session, client_user):
        session = sign_in_links.start_session(client_user)
        client_user.token_invalidated_before = datetime.now(UTC) + timedelta(seconds=5)
        await db_session.commit()

        with pytest.raises(SessionExchangeError):
            await sign_in_links.refresh_session(
                db_session, refresh_token=session.tokens.refresh_token
            )


class TestPasswordSession:
    async def test_correct_password(self, db_session, client_user):
        session = await sign_in_links.password_session(
            db_session, email=TEST_CLIENT_EMAIL, password=TEST_PASSWORD
        )
        assert session.user.id == client_user.id
        assert session.link_type is None

    @pytest.mark.parametrize(
        ("email", "password"),
        [(TEST_CLIENT_EMAIL, "wrong-password"), ("nobody@example.com", "x")],
    )
    async def test_failures_share_one_message(
        self,
        db_session,
        client_user,  # noqa: ARG002
        email,
        password,
    ):
        with pytest.raises(SessionExchangeError, match="Invalid email or password"):
            await sign_in_links.password_session(
                db_session, email=email, password=password
            )


class TestRedirectUrls:
    def test_implicit_puts_tokens_in_fragment(self, client_user):
        session = sign_in_links.start_session(client_user, LinkType.RECOVERY)

        url = sign_in_links.implicit_redirect_url(
            "http://portal.test/client-portal#old", session
        )
        parts = urlsplit(url)
        assert parts.query == ""
        fragment = parse_qs(parts.fragment)
        assert fragment["access_token"] == [session.tokens.access_token]
        assert fragment["type"] == ["recovery"]

    def test_code_url_adds_type_for_password_links(self):
        url = sign_in_links.code_redirect_url(
            "http://portal.test/client-portal?tab=1", "abc", LinkType.INVITE
        )
        assert url == "http://portal.test/client-portal?tab=1&code=abc&type=invite"

    def test_code_url_omits_type_for_magiclink(self):
        url = sign_in_links.code_redirect_url(
            "http://portal.test/client-portal#top", "abc", LinkType.MAGICLINK
        )
        assert url == "http://portal.test/client-portal?code=abc#top"

    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            ("http://portal.test/client-portal/tickets", "http://portal.test/client-portal/tickets"),
            ("http://portal.test", "http://portal.test"),
            ("http://portal.test.evil.com/", "http://portal.test/client-portal"),
            (None, "http://portal.test/client-portal"),
        ],
    )
    def test_safe_redirect_target(self, target, expected):
        assert sign_in_links.safe_redirect_target(target) == expected
