"""WebSocket transport backed by the websockets library."""

import asyncio
import logging
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from paywiser.transport.errors import TransportClosedError, TransportError
from paywiser.transport.transport import Transport

logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """
    Transport over a single websockets client connection.

    Protocol-level pings are disabled here; the client runs its own
    keepalive loop so the interval is configurable in one place.
    """

    def __init__(self, max_size: Optional[int] = 2 ** 22):
        self._ws = None
        self._max_size = max_size

    async def open(self, url: str, timeout: float) -> None:
        if self._ws is not None:
            await self.close()
        try:
            self._ws = await websockets.connect(
                url,
                open_timeout=timeout,
                ping_interval=None,
                max_size=self._max_size,
            )
        except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e
        logger.debug("WebSocket opened: %s", url)

    async def send(self, data: str) -> None:
        if self._ws is None:
            raise TransportClosedError(reason="not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportClosedError(*self._close_info(e)) from e

    async def recv(self) -> str:
        if self._ws is None:
            raise TransportClosedError(reason="not connected")
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as e:
            raise TransportClosedError(*self._close_info(e)) from e
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")
        return frame

    async def ping(self) -> None:
        if self._ws is None:
            raise TransportClosedError(reason="not connected")
        try:
            await self._ws.ping()
        except ConnectionClosed as e:
            raise TransportClosedError(*self._close_info(e)) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close(code=code, reason=reason)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._ws.close_code is None

    @staticmethod
    def _close_info(exc: ConnectionClosed):
        frame = exc.rcvd or exc.sent
        if frame is None:
            return 1006, ""
        return frame.code, frame.reason
