"""In-memory store of guided sessions."""
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from models.session import SessionConfiguration, SessionState
from config import SESSION_IDLE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds SessionState objects for as long as their session is open.

    Nothing is written to durable storage. A session ends when it is
    discarded, replaced by a new session, or left idle longer than
    `idle_timeout` seconds; its state is then dropped and reads return None.
    """

    def __init__(
        self,
        idle_timeout: int = SESSION_IDLE_TIMEOUT_SECONDS,
        on_create: Optional[Callable[[SessionState], None]] = None,
        on_discard: Optional[Callable[[SessionState], None]] = None
    ):
        self.idle_timeout = idle_timeout
        self.on_create = on_create
        self.on_discard = on_discard
        self._sessions: Dict[str, SessionState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, config: SessionConfiguration, replaces: Optional[str] = None) -> SessionState:
        """
        Open a new session.

        Args:
            config: Model and credential for the session
            replaces: Optional session ID to discard first

        Returns:
            The new SessionState
        """
        self.purge_expired()
        if replaces:
            self.discard(replaces)

        state = SessionState(session_id=self._generate_session_id(), config=config)
        self._sessions[state.session_id] = state
        if self.on_create is not None:
            self.on_create(state)
        logger.info(
            f"Created session {state.session_id} with model {config.model_id}",
            extra={"session_id": state.session_id}
        )
        return state

    def get(self, session_id: Optional[str]) -> Optional[SessionState]:
        """Return the live session, or None when absent, expired or closed."""
        if not session_id:
            return None

        state = self._sessions.get(session_id)
        if state is None:
            return None
        if self._is_expired(state):
            logger.info(f"Session {session_id} expired", extra={"session_id": session_id})
            self.discard(session_id)
            return None

        state.touch()
        return state

    def discard(self, session_id: str) -> bool:
        """End a session and drop its state. Returns False if it was not open."""
        state = self._sessions.pop(session_id, None)
        if state is None:
            return False

        state.closed = True
        if self.on_discard is not None:
            self.on_discard(state)
        logger.info(f"Discarded session {session_id}", extra={"session_id": session_id})
        return True

    def purge_expired(self) -> List[str]:
        expired = [sid for sid, state in self._sessions.items() if self._is_expired(state)]
        for session_id in expired:
            self.discard(session_id)
        return expired

    def _is_expired(self, state: SessionState) -> bool:
        if self.idle_timeout <= 0:
            return False
        # Sessions with a request in flight are not expired underneath it
        if state.pending:
            return False
        return time.time() - state.last_accessed > self.idle_timeout

    def _generate_session_id(self) -> str:
        return f"sess_{uuid.uuid4().hex[:12]}"
