"""Request-scoped dependencies shared by the routers."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from fulfillment.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """Get the service container attached at startup."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error_code": "SERVICE_UNAVAILABLE",
                "message": "Service is starting up",
            },
        )
    return container


def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Get the authenticated user from the X-User-Id header.

    Authentication happens upstream; this service trusts the header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "Missing X-User-Id header",
            },
        )
    return x_user_id.strip()


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
UserIdDep = Annotated[str, Depends(get_user_id)]
