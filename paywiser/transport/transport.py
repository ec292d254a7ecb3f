"""
ClearNode transport abstract interface.

A Transport owns exactly one bidirectional text-frame connection. The client
drives it from a single event loop: one reader task calling recv(), any task
calling send(), and a keepalive task calling ping().

Design:
- Async-first (all operations are async/await)
- Frames are opaque text; framing of RPC messages happens in the protocol layer
- Closure is reported by raising TransportClosedError from recv()
"""

from abc import ABC, abstractmethod
from typing import Callable


class Transport(ABC):
    """Abstract single-connection transport."""

    @abstractmethod
    async def open(self, url: str, timeout: float) -> None:
        """
        Open the connection.

        Args:
            url: ws:// or wss:// endpoint
            timeout: Seconds allowed for the opening handshake

        Raises:
            TransportError: Connection could not be established
        """
        raise NotImplementedError

    @abstractmethod
    async def send(self, data: str) -> None:
        """
        Send one text frame.

        Raises:
            TransportClosedError: Connection is not open
        """
        raise NotImplementedError

    @abstractmethod
    async def recv(self) -> str:
        """
        Wait for the next inbound text frame.

        Raises:
            TransportClosedError: Connection closed; carries close code and reason
        """
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> None:
        """Send a keepalive ping."""
        raise NotImplementedError

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection. Safe to call multiple times.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        raise NotImplementedError


TransportFactory = Callable[[], Transport]
