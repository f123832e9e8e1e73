"""CSRF protection using the double-submit cookie pattern.

Security: A random token is set as an httpOnly cookie and returned in the
response body. Same-origin script echoes it back in the ``X-CSRF-Token``
header on every state-changing request. Cross-origin pages can make the
browser send the cookie but cannot read it or set the header, so a request
is accepted only when header and cookie are present and equal.

There is no server-side token table: the cookie is the source of truth.

Usage in routers:
    router = APIRouter(dependencies=[Depends(require_csrf)])
"""

import hmac
import secrets

import structlog
from fastapi import Request, Response

from masar.core.config import settings
from masar.core.errors import CsrfError

logger = structlog.get_logger()

# 32 bytes = 256 bits of entropy, hex-encoded (64 chars)
_TOKEN_BYTES = 32

# Methods that never change state and are exempt from validation
_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def generate_csrf_token() -> str:
    """Generate a new CSRF token.

    Returns:
        64-character hex string from the OS CSPRNG.
    """
    return secrets.token_hex(_TOKEN_BYTES)


def set_csrf_cookie(response: Response, token: str) -> None:
    """Set the CSRF cookie on a response.

    Attributes: HttpOnly; SameSite=Lax; Path=/; Max-Age=86400; Secure in
    production (or when CSRF_COOKIE_SECURE is set).

    Args:
        response: Outgoing response.
        token: Token value.
    """
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=token,
        max_age=settings.csrf_cookie_max_age,
        path="/",
        httponly=True,
        secure=settings.csrf_cookie_is_secure,
        samesite=settings.csrf_cookie_samesite,
    )


def clear_csrf_cookie(response: Response) -> None:
    """Expire the CSRF cookie so the client fetches a fresh token.

    Cookie attributes must match set_csrf_cookie() for browsers to delete it.
    """
    response.delete_cookie(
        key=settings.csrf_cookie_name,
        path="/",
        httponly=True,
        secure=settings.csrf_cookie_is_secure,
        samesite=settings.csrf_cookie_samesite,
    )


def issue_csrf_token(response: Response) -> str:
    """Generate a token, set it as a cookie, and return it.

    Args:
        response: Outgoing response that will carry the cookie.

    Returns:
        The token, for the client to echo back in the request header.
    """
    token = generate_csrf_token()
    set_csrf_cookie(response, token)
    return token


def validate_csrf_token(header_token: str | None, cookie_token: str | None) -> bool:
    """Check a header token against the cookie token.

    Security: constant-time comparison so response timing does not reveal
    how many leading bytes matched.

    Args:
        header_token: Value of the X-CSRF-Token request header.
        cookie_token: Value of the csrf_token cookie.

    Returns:
        True only if both are non-empty and equal.
    """
    if not header_token or not cookie_token:
        return False
    return hmac.compare_digest(header_token.encode(), cookie_token.encode())


async def require_csrf(request: Request, response: Response) -> None:
    """FastAPI dependency that guards state-changing requests.

    Safe methods pass through, and a client arriving without a CSRF cookie
    is issued one (also echoed in the response header). Every other method
    must carry a header token matching the cookie, or the request is
    rejected with 403 before the handler runs.

    When CSRF_ROTATE_ON_USE is enabled, a fresh token replaces the cookie
    after successful validation and is echoed in the response header.

    Raises:
        CsrfError: If the token is absent or mismatched. The error does not
            say which of the two values was wrong.
    """
    if request.method in _SAFE_METHODS:
        if not request.cookies.get(settings.csrf_cookie_name):
            token = issue_csrf_token(response)
            response.headers[settings.csrf_header_name] = token
            request.state.csrf_token = token
        return

    header_token = request.headers.get(settings.csrf_header_name)
    cookie_token = request.cookies.get(settings.csrf_cookie_name)

    if not validate_csrf_token(header_token, cookie_token):
        logger.warning(
            "csrf_validation_failed",
            method=request.method,
            path=request.url.path,
        )
        raise CsrfError()

    if settings.csrf_rotate_on_use:
        new_token = issue_csrf_token(response)
        response.headers[settings.csrf_header_name] = new_token
