"""Client SDK for the Portal Auth API.

Exports the pieces a portal frontend (or any Python caller) needs:
    from portal_auth.client import PortalClient, detect_auth_flow, ...

- api_client.py: PortalClient (httpx)
- flow.py: AuthFlowKind, AuthFlowContext, detect_auth_flow, strip_auth_params
- bootstrap.py: SessionBootstrapper, BootstrapState, BootstrapResult
- verification.py: VerificationStateMachine and its states/failures
"""

from portal_auth.client.api_client import PortalClient
from portal_auth.client.bootstrap import (
    BootstrapResult,
    BootstrapState,
    SessionBootstrapper,
)
from portal_auth.client.errors import PortalError
from portal_auth.client.flow import (
    AuthFlowContext,
    AuthFlowKind,
    detect_auth_flow,
    strip_auth_params,
)
from portal_auth.client.models import (
    AuthEvent,
    ClientMatch,
    Session,
    SessionUser,
    VerificationOutcome,
)
from portal_auth.client.verification import (
    FailureKind,
    VerificationFailure,
    VerificationState,
    VerificationStateMachine,
)

__all__ = [
    "AuthEvent",
    "AuthFlowContext",
    "AuthFlowKind",
    "BootstrapResult",
    "BootstrapState",
    "ClientMatch",
    "FailureKind",
    "PortalClient",
    "PortalError",
    "Session",
    "SessionBootstrapper",
    "SessionUser",
    "VerificationFailure",
    "VerificationOutcome",
    "VerificationState",
    "VerificationStateMachine",
]
