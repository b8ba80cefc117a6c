"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from portal_auth.api.v1 import auth_session, clients, verification

router = APIRouter()

# =============================================================================
# Identity platform
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth_session.router, prefix=_AUTH_PREFIX, tags=["auth"])

# =============================================================================
# Passwordless verification
# =============================================================================

router.include_router(
    verification.router, prefix="/verification", tags=["verification"]
)
router.include_router(clients.router, prefix="/clients", tags=["clients"])
