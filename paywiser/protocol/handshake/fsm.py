"""
Auth handshake state machine for the ClearNode.

States:
    IDLE -> AUTH_REQUESTED -> CHALLENGE_RECEIVED -> VERIFY_SENT -> AUTHENTICATED
    any in-flight state -> FAILED

Flow:
1. begin(): auth_request carrying account address, session key address,
   app name, scope, application and a freshly generated expiry.
2. on_challenge(): the challenge is signed as EIP-712 typed data with the
   account key. The expiry signed here is the one sent in step 1; the
   ClearNode rejects the verification if they differ.
3. on_verified(): success flag from the ClearNode.

The machine produces messages and tracks state; sending them is the
caller's job.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from paywiser.core.errors import HandshakeError
from paywiser.protocol.envelope import RPCRequest, RequestEnvelope
from paywiser.protocol.messages import AuthChallenge, AuthVerifyResult, ErrorResponse
from paywiser.security.identity import Identity

logger = logging.getLogger(__name__)

# EIP-712 struct definitions for the auth policy (EIP712Domain is inferred from the domain)
AUTH_TYPES: Dict[str, List[Dict[str, str]]] = {
    "Policy": [
        {"name": "challenge", "type": "string"},
        {"name": "scope", "type": "string"},
        {"name": "wallet", "type": "address"},
        {"name": "application", "type": "address"},
        {"name": "participant", "type": "address"},
        {"name": "expire", "type": "uint256"},
        {"name": "allowances", "type": "Allowance[]"},
    ],
    "Allowance": [
        {"name": "asset", "type": "string"},
        {"name": "amount", "type": "uint256"},
    ],
}


class HandshakeState(Enum):
    """Handshake lifecycle states."""
    IDLE = "IDLE"
    AUTH_REQUESTED = "AUTH_REQUESTED"
    CHALLENGE_RECEIVED = "CHALLENGE_RECEIVED"
    VERIFY_SENT = "VERIFY_SENT"
    AUTHENTICATED = "AUTHENTICATED"
    FAILED = "FAILED"


IN_FLIGHT_STATES = frozenset({
    HandshakeState.AUTH_REQUESTED,
    HandshakeState.CHALLENGE_RECEIVED,
    HandshakeState.VERIFY_SENT,
})


@dataclass(frozen=True)
class HandshakeConfig:
    """Application parameters bound into every auth attempt."""
    app_name: str
    scope: str
    application: Optional[str] = None
    session_duration_seconds: int = 3600


class AuthHandshake:
    """Challenge/response handshake for one connection."""

    def __init__(
        self,
        identity: Identity,
        config: HandshakeConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.identity = identity
        self.config = config
        self._clock = clock
        self.state = HandshakeState.IDLE
        self.expire: Optional[str] = None
        self._last_expire: Optional[int] = None
        self.attempt = 0
        self.jwt_token: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def application(self) -> str:
        return self.config.application or self.identity.address

    @property
    def in_flight(self) -> bool:
        """True while an attempt awaits the ClearNode (re-entry guard)."""
        return self.state in IN_FLIGHT_STATES

    @property
    def authenticated(self) -> bool:
        return self.state == HandshakeState.AUTHENTICATED

    def begin(self) -> RPCRequest:
        """
        Start a new attempt.

        Returns:
            auth_request to send

        Raises:
            HandshakeError: If an attempt is already in flight
        """
        if self.in_flight:
            raise HandshakeError(
                "Authentication already in progress",
                details={"state": self.state.value, "attempt": self.attempt},
            )

        self.attempt += 1
        expire = int(self._clock()) + self.config.session_duration_seconds
        # Strictly increasing per instance so no two attempts share an expiry
        if self._last_expire is not None and expire <= self._last_expire:
            expire = self._last_expire + 1
        self._last_expire = expire
        self.expire = str(expire)
        self.jwt_token = None
        self.last_error = None

        request = RequestEnvelope.auth_request(
            address=self.identity.address,
            session_key=self.identity.session_address,
            app_name=self.config.app_name,
            expire=self.expire,
            scope=self.config.scope,
            application=self.application,
        )
        self.state = HandshakeState.AUTH_REQUESTED
        logger.info("Auth attempt %d requested (session key %s)", self.attempt, self.identity.session_address)
        return request

    def typed_data(self, challenge_message: str) -> Dict[str, Any]:
        """EIP-712 domain, types and message for the current attempt."""
        return {
            "domain": {"name": self.config.app_name},
            "types": AUTH_TYPES,
            "message": {
                "challenge": challenge_message,
                "scope": self.config.scope,
                "wallet": self.identity.address,
                "application": self.application,
                "participant": self.identity.session_address,
                "expire": int(self.expire),
                "allowances": [],
            },
        }

    def on_challenge(self, challenge: AuthChallenge) -> RPCRequest:
        """
        Answer the ClearNode challenge.

        Returns:
            auth_verify to send

        Raises:
            HandshakeError: If no auth_request is outstanding
        """
        if self.state != HandshakeState.AUTH_REQUESTED or self.expire is None:
            raise HandshakeError(
                f"Unexpected auth challenge in state {self.state.value}",
                details={"state": self.state.value},
            )
        self.state = HandshakeState.CHALLENGE_RECEIVED

        try:
            typed = self.typed_data(challenge.challenge_message)
            signature = self.identity.sign_typed_data(typed["domain"], typed["types"], typed["message"])
        except Exception as e:
            self._fail(f"Signing auth challenge failed: {e}")
            raise HandshakeError(f"Signing auth challenge failed: {e}") from e

        request = RequestEnvelope.auth_verify(challenge.challenge_message, signature)
        self.state = HandshakeState.VERIFY_SENT
        return request

    def on_verified(self, result: AuthVerifyResult) -> bool:
        """
        Apply the ClearNode's verification result.

        Returns:
            True if authenticated

        Raises:
            HandshakeError: If no verification was sent
        """
        if self.state != HandshakeState.VERIFY_SENT:
            raise HandshakeError(
                f"Unexpected auth verification in state {self.state.value}",
                details={"state": self.state.value},
            )
        if not result.success:
            self._fail("ClearNode rejected auth verification")
            return False
        self.state = HandshakeState.AUTHENTICATED
        self.jwt_token = result.jwt_token
        logger.info("Auth attempt %d succeeded", self.attempt)
        return True

    def on_error(self, error: ErrorResponse) -> None:
        """Remote error during an attempt: fail it so a fresh one may start."""
        self._fail(error.error)

    def reset(self) -> None:
        self.state = HandshakeState.IDLE
        self.expire = None
        self.jwt_token = None

    def _fail(self, reason: str) -> None:
        self.state = HandshakeState.FAILED
        self.last_error = reason
        logger.error("Auth attempt %d failed: %s", self.attempt, reason)
