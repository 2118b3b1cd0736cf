"""API v1 router aggregator.

All v1 endpoint routers are included here; the app mounts this router at
/api/v1.
"""

from fastapi import APIRouter

from gatekeeper.api.v1 import auth, auth_password, auth_verification, profile

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_password.router, prefix=_AUTH_PREFIX, tags=["auth"])
router.include_router(auth_verification.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Profile
# =============================================================================

router.include_router(profile.router, prefix="/profile", tags=["profile"])
