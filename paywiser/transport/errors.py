"""Transport-level errors."""

from typing import Optional


class TransportError(Exception):
    """Base exception for transport failures."""

    def __init__(self, message: str, code: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.message = message
        self.code = code
        self.reason = reason


class TransportClosedError(TransportError):
    """The underlying connection is closed (cleanly or not)."""

    def __init__(self, code: Optional[int] = None, reason: str = ""):
        super().__init__(f"Transport closed: {code} {reason}".strip(), code=code, reason=reason)
