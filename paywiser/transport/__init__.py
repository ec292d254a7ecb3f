"""ClearNode transports."""

from paywiser.transport.errors import TransportError, TransportClosedError
from paywiser.transport.transport import Transport, TransportFactory
from paywiser.transport.websocket import WebSocketTransport

__all__ = [
    "Transport",
    "TransportFactory",
    "TransportError",
    "TransportClosedError",
    "WebSocketTransport",
]
