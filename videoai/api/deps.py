"""Request dependencies."""
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from starlette.requests import HTTPConnection

from videoai.services.container import ServiceContainer


def get_services(connection: HTTPConnection) -> ServiceContainer:
    """Collaborators built at startup. Works for HTTP and WebSocket routes."""
    return connection.app.state.services


ServicesDep = Annotated[ServiceContainer, Depends(get_services)]


async def get_current_owner(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Owner id of the caller.

    Identity is established upstream; this service trusts the
    ``X-User-Id`` header set by the gateway.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


CurrentOwner = Annotated[str, Depends(get_current_owner)]
