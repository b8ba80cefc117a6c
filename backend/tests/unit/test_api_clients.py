"""Tests for client endpoints.

POST /clients/lookup (public) and the admin invitation endpoints.
"""

import uuid
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest
from sqlalchemy import select

from portal_auth.models import Client, User
from tests.conftest import (
    TEST_ADMIN_ID,
    TEST_CLIENT_CODE,
    TEST_CLIENT_EMAIL,
    bearer,
    create_test_jwt,
)

_LOOKUP_URL = "/api/v1/clients/lookup"
_PATCH_SEND_LINK = "portal_auth.api.v1.clients.send_auth_link_email"


def _account_url(client_id: uuid.UUID) -> str:
    return f"/api/v1/clients/{client_id}/account"


def _resend_url(client_id: uuid.UUID) -> str:
    return f"/api/v1/clients/{client_id}/resend-credentials"


@pytest.fixture
def admin_headers(admin_user) -> dict[str, str]:  # noqa: ARG001
    return bearer(create_test_jwt(TEST_ADMIN_ID))


@pytest.fixture
def mock_send_link():
    with patch(_PATCH_SEND_LINK, new_callable=AsyncMock) as mock:
        yield mock


class TestLookup:
    async def test_by_code_returns_masked_identity(self, client, client_identity):  # noqa: ARG002
        response = await client.post(_LOOKUP_URL, json={"code": "cli00001"})

        assert response.status_code == 200
        assert response.json()["data"] == {
            "code": TEST_CLIENT_CODE,
            "name": "Maria Rossi",
            "email": TEST_CLIENT_EMAIL,
            "masked_email": "m***@g***.com",
            "masked_phone": "*********567",
        }

    async def test_by_phone(self, client, client_identity):  # noqa: ARG002
        response = await client.post(_LOOKUP_URL, json={"phone": "+39 333 1234567"})
        assert response.json()["data"]["code"] == TEST_CLIENT_CODE

    async def test_no_match_is_null_data(self, client, client_identity):  # noqa: ARG002
        response = await client.post(_LOOKUP_URL, json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert response.json() == {"data": None}

    async def test_two_identifiers_is_generic_500(self, client, client_identity):  # noqa: ARG002
        response = await client.post(
            _LOOKUP_URL, json={"code": TEST_CLIENT_CODE, "email": TEST_CLIENT_EMAIL}
        )

        assert response.status_code == 500
        assert response.json()["error"] == {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": None,
        }

    async def test_empty_body_is_generic_500(self, client):
        response = await client.post(_LOOKUP_URL, json={})
        assert response.status_code == 500


class TestCreateAccount:
    async def test_requires_auth(self, client, client_identity):
        response = await client.post(_account_url(client_identity.id))
        assert response.status_code == 401

    async def test_requires_admin(self, client, client_identity, client_user):  # noqa: ARG002
        response = await client.post(
            _account_url(client_identity.id), headers=bearer(create_test_jwt())
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ADMIN_REQUIRED"

    async def test_invites_client(
        self, client, client_identity, admin_headers, mock_send_link, session_factory
    ):
        response = await client.post(
            _account_url(client_identity.id), headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["email"] == TEST_CLIENT_EMAIL
        assert data["link_type"] == "invite"

        async with session_factory() as db:
            user = (
                await db.execute(select(User).where(User.email == TEST_CLIENT_EMAIL))
            ).scalar_one()
            linked = await db.get(Client, client_identity.id)
        assert user.is_client is True
        assert user.password_hash is None
        assert linked.user_id == user.id

        kwargs = mock_send_link.await_args.kwargs
        assert kwargs["purpose"] == "invite"
        assert parse_qs(urlsplit(kwargs["link"]).query)["type"] == ["invite"]

    async def test_second_invite_conflicts(
        self,
        client,
        client_identity,
        admin_headers,
        mock_send_link,  # noqa: ARG002
    ):
        await client.post(_account_url(client_identity.id), headers=admin_headers)
        response = await client.post(
            _account_url(client_identity.id), headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ACCOUNT_EXISTS"

    async def test_unknown_client_is_404(self, client, admin_headers):
        response = await client.post(_account_url(uuid.uuid4()), headers=admin_headers)
        assert response.status_code == 404


class TestResendCredentials:
    async def test_without_account_sends_invite(
        self, client, client_identity, admin_headers, mock_send_link
    ):
        response = await client.post(
            _resend_url(client_identity.id), headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["link_type"] == "invite"
        assert mock_send_link.await_args.kwargs["purpose"] == "invite"

    async def test_with_account_sends_recovery(
        self, client, client_identity, admin_headers, mock_send_link
    ):
        await client.post(_account_url(client_identity.id), headers=admin_headers)
        mock_send_link.reset_mock()

        response = await client.post(
            _resend_url(client_identity.id), headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["link_type"] == "recovery"
        assert mock_send_link.await_args.kwargs["purpose"] == "recovery"
