"""
Session-specific error types for PayWiser application sessions.

Each carries the HTTP status code the API layer answers with.
"""


class SessionError(Exception):
    """Base exception for all session-related errors."""

    def __init__(self, message: str, status_code: int = 500):
        """
        Initialize session error.

        Args:
            message: Error description
            status_code: HTTP status code to return
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionNotFoundError(SessionError):
    """Session does not exist (never created, or evicted)."""

    def __init__(self, session_id: str):
        super().__init__(f"Application session not found: {session_id}", status_code=404)


class SessionAlreadyCompletedError(SessionError):
    """Session has already been settled; completed is terminal."""

    def __init__(self, session_id: str):
        super().__init__(f"Application session already completed: {session_id}", status_code=409)


class DuplicateSessionError(SessionError):
    """A session with this id is already registered."""

    def __init__(self, session_id: str):
        super().__init__(f"Application session already exists: {session_id}", status_code=409)


class SessionCapacityError(SessionError):
    """Registry is full even after evicting stale sessions."""

    def __init__(self, limit: int):
        super().__init__(f"Too many application sessions: limit {limit}", status_code=503)


class SessionCloseInProgressError(SessionError):
    """A close for this session is already awaiting the ClearNode."""

    def __init__(self, session_id: str):
        super().__init__(f"Application session close already in progress: {session_id}", status_code=409)
