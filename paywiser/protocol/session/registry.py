"""
Application session registry.

Handles session bookkeeping:
- REGISTER: Record a session once the ClearNode accepted it
- COMPLETE: Mark settled when the close is acknowledged
- SWEEP: Evict sessions stuck OPEN past a TTL and COMPLETED ones past retention

Single-writer: only the client's event loop mutates it.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from .errors import DuplicateSessionError, SessionCapacityError, SessionNotFoundError
from .session import Allocation, ApplicationSession, SessionStatus

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-memory session store keyed by session_id.

    Bounded in time (TTL sweep) and in size (max_sessions).
    """

    def __init__(
        self,
        open_ttl_seconds: float = 3600.0,
        retention_seconds: float = 86400.0,
        max_sessions: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize registry.

        Args:
            open_ttl_seconds: Age after which an OPEN session is evicted
            retention_seconds: Time a COMPLETED session is kept after completion
            max_sessions: Hard bound on stored sessions
            clock: Time source (seconds)
        """
        self._sessions: Dict[str, ApplicationSession] = {}
        self.open_ttl_seconds = open_ttl_seconds
        self.retention_seconds = retention_seconds
        self.max_sessions = max_sessions
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def register(self, session: ApplicationSession) -> ApplicationSession:
        """
        Add a newly opened session.

        Sweeps stale sessions first.

        Raises:
            DuplicateSessionError: If session_id is already registered
            SessionCapacityError: If still full after sweeping
        """
        if session.session_id in self._sessions:
            raise DuplicateSessionError(session.session_id)
        self.sweep()
        if len(self._sessions) >= self.max_sessions:
            raise SessionCapacityError(self.max_sessions)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> ApplicationSession:
        """
        Get session by ID.

        Raises:
            SessionNotFoundError: If session does not exist
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def complete(
        self,
        session_id: str,
        allocations: List[Allocation],
        biometric_hash: Optional[str] = None,
    ) -> ApplicationSession:
        """
        Mark a session completed.

        Raises:
            SessionNotFoundError: If session does not exist
            SessionAlreadyCompletedError: If already completed
        """
        session = self.get(session_id)
        session.complete(allocations, biometric_hash=biometric_hash, now=self._clock())
        return session

    def sweep(self) -> int:
        """
        Evict expired sessions.

        Returns:
            Count of sessions evicted
        """
        now = self._clock()
        stale = [
            sid for sid, s in self._sessions.items()
            if (s.status == SessionStatus.OPEN and now - s.created_at >= self.open_ttl_seconds)
            or (s.status == SessionStatus.COMPLETED and now - s.last_activity >= self.retention_seconds)
        ]
        for sid in stale:
            session = self._sessions.pop(sid)
            if session.status == SessionStatus.OPEN:
                logger.info("Evicted application session %s: still open after %ss", sid, self.open_ttl_seconds)
        if stale:
            logger.info("Session sweep evicted %d session(s)", len(stale))
        return len(stale)

    def all(self) -> List[ApplicationSession]:
        return list(self._sessions.values())

    def open_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.status == SessionStatus.OPEN)

    def clear(self) -> None:
        self._sessions.clear()
