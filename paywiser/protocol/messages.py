"""
Inbound ClearNode message decoding.

Every frame is decoded once, here, into exactly one variant of a closed set
of message types. Downstream code dispatches on the variant type and never
probes raw fields.

Wire shape of inbound frames:

    {"res": [request_id, method, params, timestamp_ms], "sig": [...]}

`req` is accepted in place of `res` for server-initiated frames. Params
arrive either as a single object or as a one-element list wrapping it.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_NON_LETTERS = re.compile(r"[^a-z]")


def normalize_method(name: Optional[str]) -> str:
    """Lowercase and strip everything but letters: 'get_channels' -> 'getchannels'."""
    return _NON_LETTERS.sub("", str(name or "").lower())


class MessageDecodeError(ValueError):
    """Frame is not a decodable ClearNode message."""


class ChannelInfo(BaseModel):
    """One payment channel as reported by the ClearNode."""
    model_config = ConfigDict(frozen=True, extra="allow")

    channel_id: Optional[str] = None
    participant: Optional[str] = None
    status: Optional[str] = None
    token: Optional[str] = None
    amount: Optional[Union[int, str]] = None
    chain_id: Optional[int] = None
    adjudicator: Optional[str] = None
    challenge: Optional[Union[int, str]] = None
    nonce: Optional[Union[int, str]] = None
    version: Optional[Union[int, str]] = None
    created_at: Optional[Union[str, int]] = None
    updated_at: Optional[Union[str, int]] = None


class LedgerBalance(BaseModel):
    """Balance of one asset on the ClearNode ledger."""
    model_config = ConfigDict(frozen=True, extra="allow")

    asset: str
    amount: str

    @field_validator("amount", mode="before")
    @classmethod
    def amount_as_string(cls, v):
        return str(v)


class InboundMessage(BaseModel):
    """Fields common to every decoded frame."""
    model_config = ConfigDict(frozen=True)

    request_id: Optional[Union[int, str]] = None
    method: str
    params: Any = None
    timestamp: Optional[int] = None
    signatures: List[str] = Field(default_factory=list)

    @property
    def method_key(self) -> str:
        return normalize_method(self.method)


class AuthChallenge(InboundMessage):
    challenge_message: str


class AuthVerifyResult(InboundMessage):
    success: bool = False
    address: Optional[str] = None
    session_key: Optional[str] = None
    jwt_token: Optional[str] = None


class ErrorResponse(InboundMessage):
    error: str


class ChannelList(InboundMessage):
    channels: List[ChannelInfo] = Field(default_factory=list)


class LedgerBalances(InboundMessage):
    balances: List[LedgerBalance] = Field(default_factory=list)


class AppSessionCreated(InboundMessage):
    app_session_id: str
    status: Optional[str] = None
    version: Optional[int] = None


class AppSessionClosed(InboundMessage):
    app_session_id: Optional[str] = None
    status: Optional[str] = None
    version: Optional[int] = None


class BalanceUpdate(InboundMessage):
    """Server push ('bu') announcing ledger balance changes."""
    balance_updates: List[LedgerBalance] = Field(default_factory=list)


class Pong(InboundMessage):
    pass


class UnknownMessage(InboundMessage):
    """Well-formed frame with a method this client does not interpret."""


def _first_object(params: Any) -> Dict[str, Any]:
    if isinstance(params, dict):
        return params
    if isinstance(params, list) and params and isinstance(params[0], dict):
        return params[0]
    return {}


def _object_list(params: Any, *keys: str) -> List[Dict[str, Any]]:
    """Extract a list of objects given either bare or wrapped under one of keys."""
    if isinstance(params, list) and len(params) == 1 and isinstance(params[0], list):
        params = params[0]
    if isinstance(params, list):
        if len(params) == 1 and isinstance(params[0], dict):
            for key in keys:
                if isinstance(params[0].get(key), list):
                    return params[0][key]
        return [item for item in params if isinstance(item, dict)]
    if isinstance(params, dict):
        for key in keys:
            if isinstance(params.get(key), list):
                return params[key]
    return []


def _auth_challenge(params: Any) -> Dict[str, Any]:
    obj = _first_object(params)
    return {"challenge_message": obj.get("challenge_message") or obj.get("challengeMessage")}


def _auth_verify(params: Any) -> Dict[str, Any]:
    obj = _first_object(params)
    return {
        "success": bool(obj.get("success", False)),
        "address": obj.get("address"),
        "session_key": obj.get("session_key") or obj.get("sessionKey"),
        "jwt_token": obj.get("jwt_token") or obj.get("jwtToken"),
    }


def _error(params: Any) -> Dict[str, Any]:
    if isinstance(params, str):
        return {"error": params}
    obj = _first_object(params)
    return {"error": str(obj.get("error") or obj.get("message") or "unknown error")}


def _channels(params: Any) -> Dict[str, Any]:
    return {"channels": _object_list(params, "channels")}


def _balances(params: Any) -> Dict[str, Any]:
    return {"balances": _object_list(params, "ledger_balances", "ledgerBalances", "balances")}


def _balance_update(params: Any) -> Dict[str, Any]:
    return {"balance_updates": _object_list(params, "balance_updates", "balanceUpdates")}


def _app_session(params: Any) -> Dict[str, Any]:
    obj = _first_object(params)
    return {
        "app_session_id": obj.get("app_session_id") or obj.get("appSessionId"),
        "status": obj.get("status"),
        "version": obj.get("version"),
    }


_VARIANTS: Dict[str, tuple] = {
    "authchallenge": (AuthChallenge, _auth_challenge),
    "authverify": (AuthVerifyResult, _auth_verify),
    "error": (ErrorResponse, _error),
    "getchannels": (ChannelList, _channels),
    "channels": (ChannelList, _channels),
    "getledgerbalances": (LedgerBalances, _balances),
    "createappsession": (AppSessionCreated, _app_session),
    "closeappsession": (AppSessionClosed, _app_session),
    "bu": (BalanceUpdate, _balance_update),
    "balanceupdate": (BalanceUpdate, _balance_update),
    "pong": (Pong, lambda params: {}),
}


def _request_id(value: Any) -> Optional[Union[int, str]]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value if isinstance(value, str) and value else None


def decode_message(raw: Union[str, bytes]) -> InboundMessage:
    """
    Decode one inbound frame into its message variant.

    Args:
        raw: Text (or UTF-8 bytes) of one WebSocket frame

    Returns:
        Exactly one InboundMessage subclass instance

    Raises:
        MessageDecodeError: Not JSON, or no res/req array with a method
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MessageDecodeError(f"Frame is not JSON: {e}") from e

    if not isinstance(frame, dict):
        raise MessageDecodeError("Frame must be a JSON object")

    body = frame.get("res", frame.get("req"))
    if not isinstance(body, list) or len(body) < 2:
        raise MessageDecodeError("Frame has no res/req array")

    method = body[1]
    if not isinstance(method, str) or not method:
        raise MessageDecodeError("Frame method must be a non-empty string")

    params = body[2] if len(body) > 2 else None
    timestamp = body[3] if len(body) > 3 and isinstance(body[3], int) else None
    signatures = frame.get("sig") if isinstance(frame.get("sig"), list) else []

    common = {
        "request_id": _request_id(body[0]),
        "method": method,
        "params": params,
        "timestamp": timestamp,
        "signatures": [s for s in signatures if isinstance(s, str)],
    }

    variant: Type[InboundMessage] = UnknownMessage
    extract: Callable[[Any], Dict[str, Any]] = lambda p: {}
    entry = _VARIANTS.get(normalize_method(method))
    if entry is not None:
        variant, extract = entry

    try:
        return variant(**common, **extract(params))
    except ValidationError:
        # Known method, unusable shape: surface it without interpretation
        return UnknownMessage(**common)
