"""API v1 router aggregator.

All v1 endpoint routers are included here. The CSRF guard is attached to the
aggregate router, so every state-changing v1 route requires a matching
X-CSRF-Token header and csrf_token cookie.
"""

from fastapi import APIRouter, Depends

from masar.api.v1 import auth_otp, auth_password, csrf, profile
from masar.core.csrf import require_csrf

router = APIRouter(dependencies=[Depends(require_csrf)])

router.include_router(csrf.router, tags=["csrf"])

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth_otp.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_password.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Profile
# =============================================================================

router.include_router(profile.router, prefix="/profile", tags=["profile"])
