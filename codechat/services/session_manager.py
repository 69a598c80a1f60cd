"""Session management for in-memory storage."""

from datetime import UTC, datetime, timedelta

from cuid2 import cuid_wrapper

from codechat.models.session import Session
from codechat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class InMemorySessionManager:
    """Issues and resolves bearer-token sessions kept in process memory."""

    def __init__(self, session_timeout_minutes: int = 60):
        """Initialize session manager.

        Args:
            session_timeout_minutes: Idle minutes before a session expires
        """
        self.sessions: dict[str, Session] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def create_session(self, user_id: str | None = None) -> Session:
        """Issue a new session.

        Args:
            user_id: Owner of the session; a fresh guest id when omitted

        Returns:
            The new session
        """
        self._cleanup_expired_sessions()

        session = Session(token=self._generate_token(), user_id=user_id or f"guest_{cuid()}")
        self.sessions[session.token] = session
        logger.info(f"Issued session for user {session.user_id}")
        return session

    def get_session(self, token: str) -> Session | None:
        """Get existing session by token.

        Returns:
            Session if found and not expired, None otherwise
        """
        self._cleanup_expired_sessions()

        session = self.sessions.get(token)
        if session:
            session.update_activity()
        return session

    def _generate_token(self) -> str:
        """Generate a new CUID-based session token."""
        return cuid()

    def _cleanup_expired_sessions(self) -> None:
        """Remove expired sessions from memory."""
        current_time = datetime.now(UTC)
        expired_sessions = [
            token
            for token, session in self.sessions.items()
            if current_time - session.last_activity > self.session_timeout
        ]

        for token in expired_sessions:
            del self.sessions[token]

    def get_session_count(self) -> int:
        """Get current number of active sessions."""
        self._cleanup_expired_sessions()
        return len(self.sessions)
