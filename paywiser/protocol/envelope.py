"""
Outbound ClearNode request envelopes.

Wire shape of every request:

    {"req": [request_id, method, params, timestamp_ms], "sig": [signature, ...]}

The signature (when a signer is given) covers the `req` array exactly as it
is serialized.
"""

import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from paywiser.security.identity import canonical_json

Signer = Callable[[List[Any]], str]

# Request ids are integers; seeded from the clock so ids stay unique across restarts.
_request_ids = itertools.count(int(time.time() * 1000))


def generate_request_id() -> int:
    """Next unique request id for this process."""
    return next(_request_ids)


@dataclass
class RPCRequest:
    """A framed, optionally signed outbound request."""

    request_id: int
    method: str
    params: Any
    timestamp: int
    signatures: List[str] = field(default_factory=list)

    @property
    def payload(self) -> List[Any]:
        return [self.request_id, self.method, self.params, self.timestamp]

    def to_dict(self) -> Dict[str, Any]:
        return {"req": self.payload, "sig": list(self.signatures)}

    def to_json(self) -> str:
        return canonical_json(self.to_dict())


class RequestEnvelope:
    """Helpers to construct ClearNode request envelopes."""

    @staticmethod
    def create(
        method: str,
        params: Any,
        signer: Optional[Signer] = None,
        request_id: Optional[int] = None,
        timestamp: Optional[int] = None,
    ) -> RPCRequest:
        """
        Create a request envelope.

        Args:
            method: RPC method name
            params: Method parameters (list of objects on the wire)
            signer: Called with the `req` payload; its result goes into `sig`
            request_id: Correlation id (auto-generated if not provided)
            timestamp: Milliseconds since epoch (now if not provided)

        Returns:
            RPCRequest ready to serialize
        """
        request = RPCRequest(
            request_id=request_id if request_id is not None else generate_request_id(),
            method=method,
            params=params,
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )
        if signer is not None:
            request.signatures.append(signer(request.payload))
        return request

    @staticmethod
    def auth_request(
        address: str,
        session_key: str,
        app_name: str,
        expire: str,
        scope: str,
        application: str,
        allowances: Optional[List[Dict[str, Any]]] = None,
    ) -> RPCRequest:
        """First leg of the auth handshake. Unsigned."""
        params = [{
            "address": address,
            "session_key": session_key,
            "app_name": app_name,
            "allowances": allowances or [],
            "expire": expire,
            "scope": scope,
            "application": application,
        }]
        return RequestEnvelope.create("auth_request", params)

    @staticmethod
    def auth_verify(challenge: str, signature: str) -> RPCRequest:
        """Second leg: the challenge echoed back with the EIP-712 signature."""
        request = RequestEnvelope.create("auth_verify", [{"challenge": challenge}])
        request.signatures.append(signature)
        return request

    @staticmethod
    def get_channels(signer: Signer, participant: str) -> RPCRequest:
        return RequestEnvelope.create("get_channels", [{"participant": participant}], signer)

    @staticmethod
    def get_ledger_balances(signer: Signer, participant: str) -> RPCRequest:
        return RequestEnvelope.create("get_ledger_balances", [{"participant": participant}], signer)

    @staticmethod
    def create_app_session(
        signer: Signer,
        definition: Dict[str, Any],
        allocations: List[Dict[str, Any]],
    ) -> RPCRequest:
        params = [{"definition": definition, "allocations": allocations}]
        return RequestEnvelope.create("create_app_session", params, signer)

    @staticmethod
    def close_app_session(
        signer: Signer,
        app_session_id: str,
        allocations: List[Dict[str, Any]],
    ) -> RPCRequest:
        params = [{"app_session_id": app_session_id, "allocations": allocations}]
        return RequestEnvelope.create("close_app_session", params, signer)
