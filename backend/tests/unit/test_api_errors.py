"""Tests for API error classes.

HTTP status codes and error codes carried into the error envelope.
"""

import pytest

from portal_auth.core.errors import (
    AdminRequiredError,
    APIError,
    ConflictError,
    EmailDeliveryError,
    ForbiddenError,
    IdentityResolutionDefect,
    InternalError,
    InvalidCodeError,
    NotFoundError,
    SessionExchangeError,
    UnauthorizedError,
    ValidationError,
)


class TestAPIError:
    """Tests for base APIError class."""

    def test_api_error_has_required_attributes(self):
        error = APIError(
            code="TEST_ERROR",
            message="Test message",
            status_code=418,
            details=[{"field": "test"}],
        )
        assert error.code == "TEST_ERROR"
        assert error.message == "Test message"
        assert error.status_code == 418
        assert error.details == [{"field": "test"}]

    def test_api_error_defaults_to_500(self):
        error = APIError(code="TEST", message="Test")
        assert error.status_code == 500
        assert error.details is None
        assert str(error) == "Test"


@pytest.mark.parametrize(
    ("error", "code", "status_code"),
    [
        (ValidationError("bad"), "VALIDATION_ERROR", 400),
        (UnauthorizedError(), "UNAUTHORIZED", 401),
        (ForbiddenError(), "FORBIDDEN", 403),
        (AdminRequiredError(), "ADMIN_REQUIRED", 403),
        (NotFoundError("Client"), "NOT_FOUND", 404),
        (ConflictError("ACCOUNT_EXISTS", "exists"), "ACCOUNT_EXISTS", 409),
        (InvalidCodeError(), "INVALID_CODE", 400),
        (EmailDeliveryError(), "DELIVERY_FAILED", 502),
        (SessionExchangeError(), "SESSION_EXCHANGE_FAILED", 401),
        (InternalError(), "INTERNAL_ERROR", 500),
    ],
)
def test_error_codes_and_status(error, code, status_code):
    assert error.code == code
    assert error.status_code == status_code


class TestMessages:
    def test_invalid_code_message_is_uniform(self):
        """One message for wrong, used, expired and never-issued codes."""
        assert InvalidCodeError().message == "Invalid or expired code"

    def test_not_found_includes_id(self):
        error = NotFoundError("Client", "abc")
        assert error.message == "Client with id 'abc' not found"

    def test_admin_required_is_forbidden(self):
        assert isinstance(AdminRequiredError(), ForbiddenError)


class TestIdentityResolutionDefect:
    def test_reason_kept_out_of_message(self):
        error = IdentityResolutionDefect("2 clients share email")

        assert isinstance(error, InternalError)
        assert error.code == "INTERNAL_ERROR"
        assert error.reason == "2 clients share email"
        assert "clients" not in error.message
