"""
PayWiser ClearNode error codes and exceptions.

Every failure the client surfaces to callers is a PayWiserError carrying a
stable code, a recommended HTTP status and a recoverable flag. The HTTP layer
maps these directly into JSON error bodies.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(Enum):
    """Standard PayWiser error codes."""
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NOT_CONNECTED = "NOT_CONNECTED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    HANDSHAKE_FAILED = "HANDSHAKE_FAILED"
    TIMEOUT = "TIMEOUT"
    CONNECTION_CLOSED = "CONNECTION_CLOSED"
    RPC_ERROR = "RPC_ERROR"
    UNEXPECTED_RESPONSE = "UNEXPECTED_RESPONSE"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    CHANNEL_NOT_READY = "CHANNEL_NOT_READY"
    INVALID_PAYMENT = "INVALID_PAYMENT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(eq=False)
class PayWiserError(Exception):
    """
    Base exception for PayWiser errors.

    Attributes:
        code: Standard error code
        message: Human-readable error message
        details: Additional error details (dict)
        recoverable: Whether the caller may retry
        request_id: Correlation id of the request that failed, if any
        http_status: Recommended HTTP status code
    """

    code: str
    message: str
    details: Dict[str, Any] = None
    recoverable: bool = False
    request_id: Optional[int] = None
    http_status: int = 500

    def __post_init__(self):
        if self.details is None:
            self.details = {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "error_code": self.code,
            "error_message": self.message,
            "details": self.details,
            "request_id": self.request_id,
            "recoverable": self.recoverable,
        }


class ConfigurationError(PayWiserError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR.value,
            message=message,
            recoverable=False,
            http_status=500,
        )


class NotConnectedError(PayWiserError):
    """No open connection to the ClearNode."""

    def __init__(self, message: str = "WebSocket not connected"):
        super().__init__(
            code=ErrorCode.NOT_CONNECTED.value,
            message=message,
            recoverable=True,
            http_status=503,
        )


class NotAuthenticatedError(PayWiserError):
    """Connection exists but the auth handshake has not completed."""

    def __init__(self, message: str = "Not authenticated with Yellow Network"):
        super().__init__(
            code=ErrorCode.NOT_AUTHENTICATED.value,
            message=message,
            recoverable=True,
            http_status=503,
        )


class HandshakeError(PayWiserError):
    """Auth handshake protocol error or remote rejection."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.HANDSHAKE_FAILED.value,
            message=message,
            details=details or {},
            recoverable=True,
            http_status=502,
        )


class RequestTimeoutError(PayWiserError):
    """No matching response arrived before the deadline."""

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        request_id: Optional[int] = None,
    ):
        super().__init__(
            code=ErrorCode.TIMEOUT.value,
            message=f"Request timeout for {operation} after {timeout_seconds}s",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            recoverable=True,
            request_id=request_id,
            http_status=504,
        )


class ConnectionClosedError(PayWiserError):
    """Connection went away while a request was outstanding."""

    def __init__(self, message: str = "Connection closed", request_id: Optional[int] = None):
        super().__init__(
            code=ErrorCode.CONNECTION_CLOSED.value,
            message=message,
            recoverable=True,
            request_id=request_id,
            http_status=503,
        )


class ClearNodeRPCError(PayWiserError):
    """ClearNode answered with an explicit error response."""

    def __init__(self, remote_message: str, method: Optional[str] = None, request_id: Optional[int] = None):
        label = f" for {method}" if method else ""
        super().__init__(
            code=ErrorCode.RPC_ERROR.value,
            message=f"ClearNode error{label}: {remote_message}",
            details={"remote_error": remote_message, "method": method},
            recoverable=False,
            request_id=request_id,
            http_status=502,
        )


class UnexpectedResponseError(PayWiserError):
    """Response shape does not fit the operation that requested it."""

    def __init__(self, operation: str, method: str, request_id: Optional[int] = None):
        super().__init__(
            code=ErrorCode.UNEXPECTED_RESPONSE.value,
            message=f"Unexpected '{method}' response to {operation}",
            details={"operation": operation, "method": method},
            recoverable=False,
            request_id=request_id,
            http_status=502,
        )


class DuplicateRequestError(PayWiserError):
    """A request with the same correlation id is already pending."""

    def __init__(self, request_id: int):
        super().__init__(
            code=ErrorCode.DUPLICATE_REQUEST.value,
            message=f"Request {request_id} is already pending",
            recoverable=False,
            request_id=request_id,
            http_status=500,
        )


class ChannelNotFoundError(PayWiserError):
    """Configured channel is not among the account's channels."""

    def __init__(self, channel_id: str):
        super().__init__(
            code=ErrorCode.CHANNEL_NOT_FOUND.value,
            message=f"Channel {channel_id} not found in your channels",
            details={"channel_id": channel_id},
            recoverable=False,
            http_status=404,
        )


class ChannelNotReadyError(PayWiserError):
    """Channel exists but cannot carry payments."""

    def __init__(self, channel_id: str, status: Optional[str]):
        super().__init__(
            code=ErrorCode.CHANNEL_NOT_READY.value,
            message=f"Channel status is {status}, expected 'open'",
            details={"channel_id": channel_id, "status": status},
            recoverable=True,
            http_status=409,
        )


class InvalidPaymentError(PayWiserError):
    """Payment input rejected before anything is sent."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.INVALID_PAYMENT.value,
            message=message,
            details=details or {},
            recoverable=False,
            http_status=400,
        )
