"""FastAPI dependencies resolving services and the caller's session."""

from fastapi import Depends, HTTPException, Request

from codechat.container import ServiceContainer
from codechat.models.session import Session

UNAUTHORIZED = "Unauthorized"


def get_container(request: Request) -> ServiceContainer:
    """Return the service container attached to the application."""
    return request.app.state.container


def get_session(request: Request, container: ServiceContainer = Depends(get_container)) -> Session | None:
    """Return the caller's session, or None for anonymous requests."""
    return container.gate.authenticate(request)


def require_session(session: Session | None = Depends(get_session)) -> Session:
    """Reject anonymous requests with 401."""
    if session is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED)
    return session
