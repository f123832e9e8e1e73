"""Profile update endpoint.

Authenticated and CSRF-guarded. Every string in the body passes through
sanitize_for_storage before anything is written.
"""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from masar.api.deps import CurrentUserId, DbSession, Users
from masar.core.errors import UnauthorizedError, ValidationError
from masar.core.responses import DataResponse
from masar.core.sanitization import sanitize_for_storage

router = APIRouter()


class ProfileUpdateRequest(BaseModel):
    """Request body for PATCH /profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


@router.patch("")
async def update_profile(
    body: ProfileUpdateRequest,
    user_id: CurrentUserId,
    db: DbSession,
    users: Users,
) -> DataResponse[dict]:
    """Update the current user's names.

    Raises:
        InjectionDetectedError: A field matched an injection signature.
        UnauthorizedError: Session is valid but the account no longer exists.
        ValidationError: first_name is blank once sanitized.
    """
    changes = sanitize_for_storage(body.model_dump(exclude_unset=True, exclude_none=True))
    if "first_name" in changes and not changes["first_name"]:
        raise ValidationError(
            "First name is required", details=[{"field": "first_name"}]
        )

    user = await users.update(user_id, **changes)
    if user is None:
        raise UnauthorizedError()
    await db.commit()

    return DataResponse(
        data={
            "id": str(user.id),
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
        }
    )
