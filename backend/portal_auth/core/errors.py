"""API error classes.

HTTP status codes and machine-readable error codes for every failure the
verification and session endpoints can report.
"""

# Single user-facing message for wrong, reused, expired and never-issued codes.
INVALID_CODE_MESSAGE = "Invalid or expired code"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but user lacks permission.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class AdminRequiredError(ForbiddenError):
    """Admin access required (403).

    Raised by the require_admin dependency when user lacks admin flag.
    """

    def __init__(self) -> None:
        APIError.__init__(
            self,
            code="ADMIN_REQUIRED",
            message="Admin access required",
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Also used where a resource exists but is not visible to the caller.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InvalidCodeError(APIError):
    """Verification code rejected (400).

    Covers wrong, already-used, expired and never-issued codes with one
    message so callers cannot tell the cases apart.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CODE",
            message=INVALID_CODE_MESSAGE,
            status_code=400,
        )


class EmailDeliveryError(APIError):
    """Notification provider could not send the email (502)."""

    def __init__(self, message: str = "Unable to send the email, try again later") -> None:
        super().__init__(
            code="DELIVERY_FAILED",
            message=message,
            status_code=502,
        )


class SessionExchangeError(APIError):
    """Identity platform rejected a code, token or link exchange (401).

    The message is deliberately generic; the reason is only logged.
    """

    def __init__(self, message: str = "Unable to establish a session") -> None:
        super().__init__(
            code="SESSION_EXCHANGE_FAILED",
            message=message,
            status_code=401,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class IdentityResolutionDefect(InternalError):
    """Lookup contract or data violation (500).

    Raised when a lookup names zero or several identifiers, or when one
    identifier matches more than one client. Reported to the caller as a
    generic internal error; the specifics go to the log only.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__()
