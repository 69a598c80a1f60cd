"""Request authentication and resource authorization."""

from starlette.requests import HTTPConnection

from codechat.models.session import Session
from codechat.services.session_manager import InMemorySessionManager
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_COOKIE = "session"


class RequestGate:
    """Resolves the caller's session and checks conversation ownership."""

    def __init__(self, session_manager: InMemorySessionManager):
        self.session_manager = session_manager

    def authenticate(self, request: HTTPConnection) -> Session | None:
        """Return the caller's session, or None if the request is anonymous.

        The token is read from ``Authorization: Bearer <token>`` first and the
        ``session`` cookie second.
        """
        token = self._extract_token(request)
        if not token:
            return None

        session = self.session_manager.get_session(token)
        if session is None:
            logger.info(f"Rejected unknown or expired session token on {request.url.path}")
        return session

    def authorize(self, session: Session | None, resource_owner_id: str | None) -> bool:
        """True when ``session`` belongs to the owner of the resource."""
        if session is None or resource_owner_id is None:
            return False
        return session.user_id == resource_owner_id

    @staticmethod
    def _extract_token(request: HTTPConnection) -> str | None:
        authorization = request.headers.get("authorization", "")
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return request.cookies.get(SESSION_COOKIE) or None
