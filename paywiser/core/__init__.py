"""PayWiser core: configuration, errors, events, logging."""

from paywiser.core.config import ClearNodeSettings, DEFAULT_CLEARNODE_URL, load_settings
from paywiser.core.errors import (
    PayWiserError,
    ErrorCode,
    ConfigurationError,
    NotConnectedError,
    NotAuthenticatedError,
    HandshakeError,
    RequestTimeoutError,
    ConnectionClosedError,
    ClearNodeRPCError,
    UnexpectedResponseError,
    DuplicateRequestError,
    ChannelNotFoundError,
    ChannelNotReadyError,
    InvalidPaymentError,
)
from paywiser.core.events import EventEmitter
from paywiser.core.logging import configure_logging

__all__ = [
    "ClearNodeSettings",
    "DEFAULT_CLEARNODE_URL",
    "load_settings",
    "PayWiserError",
    "ErrorCode",
    "ConfigurationError",
    "NotConnectedError",
    "NotAuthenticatedError",
    "HandshakeError",
    "RequestTimeoutError",
    "ConnectionClosedError",
    "ClearNodeRPCError",
    "UnexpectedResponseError",
    "DuplicateRequestError",
    "ChannelNotFoundError",
    "ChannelNotReadyError",
    "InvalidPaymentError",
    "EventEmitter",
    "configure_logging",
]
