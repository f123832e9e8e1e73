"""API error classes.

Closed taxonomy of externally visible failures. Every error raised by the
CSRF guard, the sanitizer, the OTP service and the password reset flow is one
of these; the exception handlers in ``masar.main`` turn them into the
``{"error": ..., "code": ...}`` envelope.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message. Sent to the client verbatim,
            so it must never contain tokens, codes, hashes or stack traces.
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
    """Bad or missing input (400)."""

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


class InjectionDetectedError(ValidationError):
    """Input matched an SQL injection signature (400).

    Raised by sanitize_for_storage() which fails closed: the whole payload is
    rejected and the offending field path is reported. The matched value is
    never echoed back.

    Args:
        field: Dotted/indexed path of the offending field (e.g. "skills[0].name").
    """

    def __init__(self, field: str) -> None:
        super().__init__(
            message=f"Potential SQL injection detected in field: {field}",
            details=[{"field": field}],
        )
        self.code = "INJECTION_DETECTED"
        self.field = field


class AlreadyVerifiedError(APIError):
    """Email address is already verified (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="EMAIL_ALREADY_VERIFIED",
            message="Email is already verified",
            status_code=400,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class CsrfError(APIError):
    """CSRF token missing or mismatched (403).

    The message is fixed: it must not reveal whether the header, the cookie,
    or the comparison was the problem.
    """

    def __init__(self) -> None:
        super().__init__(
            code="CSRF_FAILED",
            message="CSRF token missing or invalid",
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Only used when enumeration-safe responses are disabled; otherwise unknown
    identifiers get the same response as known ones.
    """

    def __init__(self, resource: str) -> None:
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource} not found",
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


class RateLimitError(APIError):
    """Too many attempts (429).

    Args:
        message: Client-facing explanation.
        retry_after_seconds: Optional hint for the Retry-After header.
    """

    def __init__(
        self,
        message: str = "Too many requests",
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
        )
        self.retry_after_seconds = retry_after_seconds


class TransportError(APIError):
    """Email delivery failed (500).

    Distinct from validation failures so callers can tell "we could not send
    the code" apart from "the code was wrong". A code is never persisted after
    this error.
    """

    def __init__(self, message: str = "Failed to send email") -> None:
        super().__init__(
            code="EMAIL_DELIVERY_FAILED",
            message=message,
            status_code=500,
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
