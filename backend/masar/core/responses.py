"""Response envelope models.

Success responses use ``{"data": ...}``. Error responses use a flat
``{"error": "<message>", "code": "<CODE>"}`` shape so clients can always read
``body["error"]`` as a string.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    Usage:
        @router.get("/csrf")
        async def get_csrf_token(response: Response) -> DataResponse[dict]:
            return DataResponse(data={"token": issue_csrf_token(response)})
    """

    data: T


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Attributes:
        error: Human-readable error message.
        code: Machine-readable error code (e.g., "CSRF_FAILED").
        details: Optional list of field-level errors (for validation).
    """

    error: str
    code: str
    details: list[dict] | None = None

    def to_content(self) -> dict:
        """Serialize for JSONResponse, omitting empty details."""
        return self.model_dump(exclude_none=True)
