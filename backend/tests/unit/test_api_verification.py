"""Tests for the verification code endpoints.

POST /verification/codes, POST /verification/codes/verify.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select, update

from portal_auth.core.errors import EmailDeliveryError
from portal_auth.models import VerificationCode
from tests.conftest import TEST_CLIENT_EMAIL

_ISSUE_URL = "/api/v1/verification/codes"
_VERIFY_URL = "/api/v1/verification/codes/verify"
_PATCH_SEND_CODE = (
    "portal_auth.services.verification_service.send_verification_code_email"
)
_PATCH_GENERATE = (
    "portal_auth.repositories.verification_code_repository._generate_code"
)
_INVALID_MESSAGE = "Invalid or expired code"


@pytest.fixture
def mock_send():
    with patch(_PATCH_SEND_CODE, new_callable=AsyncMock) as mock:
        yield mock


async def _issue(client, email: str, purpose: str, code: str) -> None:
    with patch(_PATCH_GENERATE, return_value=code):
        response = await client.post(_ISSUE_URL, json={"email": email, "purpose": purpose})
    assert response.status_code == 200


class TestIssueCode:
    async def test_returns_success_message(self, client, mock_send):
        response = await client.post(
            _ISSUE_URL,
            json={
                "email": "someone@example.com",
                "purpose": "contact_verification",
                "display_name": "Someone",
            },
        )

        assert response.status_code == 200
        assert response.json() == {"data": {"message": "Verification code sent"}}
        assert mock_send.await_args.kwargs["display_name"] == "Someone"

    async def test_malformed_email_is_400(self, client, mock_send):
        response = await client.post(
            _ISSUE_URL, json={"email": "nope", "purpose": "login"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        mock_send.assert_not_awaited()

    async def test_unknown_purpose_is_400(self, client, mock_send):  # noqa: ARG002
        response = await client.post(
            _ISSUE_URL, json={"email": "a@example.com", "purpose": "signup"}
        )
        assert response.status_code == 400

    async def test_extra_fields_rejected(self, client, mock_send):  # noqa: ARG002
        response = await client.post(
            _ISSUE_URL,
            json={"email": "a@example.com", "purpose": "login", "code": "123456"},
        )
        assert response.status_code == 400

    async def test_delivery_failure_is_502(self, client):
        with patch(
            _PATCH_SEND_CODE, new_callable=AsyncMock, side_effect=EmailDeliveryError()
        ):
            response = await client.post(
                _ISSUE_URL, json={"email": "a@example.com", "purpose": "login"}
            )

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "DELIVERY_FAILED"

    async def test_twice_leaves_one_valid_code(self, client, session_factory, mock_send):  # noqa: ARG002
        """Back-to-back issues keep only the second code usable."""
        await _issue(client, "twice@example.com", "login", "111111")
        await _issue(client, "twice@example.com", "login", "222222")

        async with session_factory() as db:
            count = (
                await db.execute(
                    select(func.count())
                    .select_from(VerificationCode)
                    .where(VerificationCode.email == "twice@example.com")
                )
            ).scalar_one()
        assert count == 1

        first = await client.post(
            _VERIFY_URL,
            json={"email": "twice@example.com", "code": "111111", "purpose": "login"},
        )
        assert first.status_code == 400


class TestVerifyCode:
    async def test_contact_code_verifies_without_artifact(self, client, mock_send):  # noqa: ARG002
        await _issue(client, "a@example.com", "contact_verification", "246810")

        response = await client.post(
            _VERIFY_URL,
            json={
                "email": "a@example.com",
                "code": "246810",
                "purpose": "contact_verification",
            },
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"verified": True, "session_artifact": None}

    async def test_second_use_fails_with_generic_message(self, client, mock_send):  # noqa: ARG002
        await _issue(client, "a@example.com", "contact_verification", "246810")
        body = {
            "email": "a@example.com",
            "code": "246810",
            "purpose": "contact_verification",
        }

        assert (await client.post(_VERIFY_URL, json=body)).status_code == 200
        response = await client.post(_VERIFY_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "INVALID_CODE",
            "message": _INVALID_MESSAGE,
            "details": None,
        }

    async def test_expired_code_fails_with_generic_message(
        self,
        client,
        session_factory,
        mock_send,  # noqa: ARG002
    ):
        """Past the five-minute window the correct code is refused."""
        await _issue(client, "user@example.com", "login", "975310")
        async with session_factory() as db:
            await db.execute(
                update(VerificationCode).values(
                    expires_at=datetime.now(UTC) - timedelta(seconds=1)
                )
            )
            await db.commit()

        response = await client.post(
            _VERIFY_URL,
            json={"email": "user@example.com", "code": "975310", "purpose": "login"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == _INVALID_MESSAGE

    async def test_never_issued_code_fails(self, client):
        response = await client.post(
            _VERIFY_URL,
            json={"email": "ghost@example.com", "code": "123456", "purpose": "login"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == _INVALID_MESSAGE

    async def test_login_code_returns_session_artifact(
        self,
        client,
        client_user,  # noqa: ARG002
        mock_send,  # noqa: ARG002
    ):
        await _issue(client, TEST_CLIENT_EMAIL, "login", "864202")

        response = await client.post(
            _VERIFY_URL,
            json={"email": TEST_CLIENT_EMAIL, "code": "864202", "purpose": "login"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["verified"] is True
        assert data["session_artifact"].startswith(
            "http://test/api/v1/auth/verify?token="
        )

    async def test_login_without_account_is_session_exchange_failure(
        self,
        client,
        mock_send,  # noqa: ARG002
    ):
        await _issue(client, "stranger@example.com", "login", "121212")

        response = await client.post(
            _VERIFY_URL,
            json={"email": "stranger@example.com", "code": "121212", "purpose": "login"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXCHANGE_FAILED"
