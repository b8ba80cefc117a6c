"""Client SDK errors.

The server's error envelope ``{"error": {"code", "message"}}`` is mapped
to one exception class per error code the passwordless flows care about.
"""


class PortalError(Exception):
    """Base class for errors reported by the Portal Auth API.

    Attributes:
        code: Machine-readable error code from the envelope.
        message: Human-readable message from the envelope.
        status_code: HTTP status, or None for transport failures.
    """

    def __init__(
        self, code: str, message: str, status_code: int | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidCodeError(PortalError):
    """Wrong, used, expired or never-issued verification code."""


class DeliveryError(PortalError):
    """The server could not send the email."""


class SessionExchangeError(PortalError):
    """The identity platform rejected a code, token or link exchange."""


class UnauthorizedError(PortalError):
    """No valid session for an authenticated call."""


class RateLimitedError(PortalError):
    """Too many requests; retry later."""


class DefectError(PortalError):
    """Server-side contract or data violation (generic internal error)."""


class TransportError(PortalError):
    """The server could not be reached."""

    def __init__(self, message: str = "Unable to reach the server") -> None:
        super().__init__("NETWORK_ERROR", message)


ERROR_CODE_MAP: dict[str, type[PortalError]] = {
    "INVALID_CODE": InvalidCodeError,
    "DELIVERY_FAILED": DeliveryError,
    "SESSION_EXCHANGE_FAILED": SessionExchangeError,
    "UNAUTHORIZED": UnauthorizedError,
    "RATE_LIMITED": RateLimitedError,
    "INTERNAL_ERROR": DefectError,
}
