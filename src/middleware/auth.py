"""Bearer-token viewer resolution.

Every route that needs to know who is calling depends on
:func:`get_viewer`.  The dependency never rejects a request: a missing
header, the shared anonymous key and unknown or expired tokens all yield
the anonymous viewer, and the services decide what that viewer may do.
"""

from __future__ import annotations

from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.models.user import ViewerContext

_bearer = HTTPBearer(auto_error=False)


def bearer_token(credentials: HTTPAuthorizationCredentials | None = Security(_bearer)) -> str | None:
    return credentials.credentials if credentials else None


async def get_viewer(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> ViewerContext:
    """FastAPI dependency resolving the ``Authorization`` header to a viewer.

    Usage::

        @router.get("/grievances")
        async def list_grievances(viewer: ViewerContext = Depends(get_viewer)): ...
    """
    token = credentials.credentials if credentials else None
    return await request.app.state.identity.resolve_token(token)
