"""CSRF token endpoint.

The frontend calls this once per session (and again after any 403), keeps
the token in memory, and sends it back in the X-CSRF-Token header.
"""

from fastapi import APIRouter, Request, Response

from masar.core.csrf import issue_csrf_token
from masar.core.responses import DataResponse

router = APIRouter()


@router.get("/csrf")
async def get_csrf_token(request: Request, response: Response) -> DataResponse[dict]:
    """Issue a fresh CSRF token as cookie and response body.

    A cookieless request already got a token from the router guard; that
    token is returned instead of setting a second cookie.
    """
    token = getattr(request.state, "csrf_token", None) or issue_csrf_token(response)
    return DataResponse(data={"token": token})
