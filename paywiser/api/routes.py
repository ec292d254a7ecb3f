"""
Yellow Network HTTP endpoints.

Mounted under /api/yellow. Every endpoint that talks to the ClearNode
depends on require_network, which answers 503 while the client is not
connected or not authenticated.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from paywiser.client import ClearNodeClient
from paywiser.core.errors import NotAuthenticatedError, NotConnectedError
from paywiser.payment import NETWORK_NAME, PROTOCOL_NAME

logger = logging.getLogger(__name__)

yellow_router = APIRouter(prefix="/yellow", tags=["yellow"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def get_client(request: Request) -> ClearNodeClient:
    return request.app.state.client


def require_network(client: ClearNodeClient = Depends(get_client)) -> ClearNodeClient:
    """Client dependency for endpoints that need an authenticated connection."""
    if not client.connected:
        raise NotConnectedError("Yellow Network not connected")
    if not client.authenticated:
        raise NotAuthenticatedError()
    return client


class SessionCreateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_address: str = Field(alias="customerAddress")
    merchant_address: str = Field(alias="merchantAddress")
    amount: Union[float, str]


class BiometricPaymentBody(SessionCreateBody):
    biometric_hash: str = Field(alias="biometricHash")
    merchant_name: str = Field(default="Unknown Merchant", alias="merchantName")


@yellow_router.get("/health")
def yellow_health(client: ClearNodeClient = Depends(get_client)) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "PayWiser Yellow Network Integration",
        "network": "Yellow Network (Nitrolite)",
        "connection": client.get_status(),
    }


@yellow_router.get("/status")
def yellow_status(client: ClearNodeClient = Depends(get_client)) -> Dict[str, Any]:
    status = client.get_status()
    return {
        "success": True,
        "status": {
            "network": NETWORK_NAME,
            "protocol": PROTOCOL_NAME,
            **status,
        },
        "timestamp": _now(),
    }


@yellow_router.post("/reconnect")
async def reconnect(client: ClearNodeClient = Depends(get_client)) -> Dict[str, Any]:
    logger.info("Manual Yellow Network reconnect requested")
    await client.reconnect()
    return {
        "success": True,
        "message": "Reconnected",
        "status": client.get_status(),
        "timestamp": _now(),
    }


@yellow_router.get("/channels")
async def channels(client: ClearNodeClient = Depends(require_network)) -> Dict[str, Any]:
    result = await client.get_channels()
    return {
        "success": True,
        "channels": [c.model_dump() for c in result],
        "network": NETWORK_NAME,
        "timestamp": _now(),
    }


@yellow_router.get("/balances")
async def balances(client: ClearNodeClient = Depends(require_network)) -> Dict[str, Any]:
    result = await client.get_ledger_balances()
    return {
        "success": True,
        "balances": [b.model_dump() for b in result],
        "network": NETWORK_NAME,
        "timestamp": _now(),
    }


@yellow_router.get("/channel/mine")
async def my_channel(client: ClearNodeClient = Depends(require_network)) -> Dict[str, Any]:
    channel = await client.get_my_channel()
    return {
        "success": True,
        "channel": {
            "channelId": channel.channel_id,
            "status": channel.status,
            "participant": channel.participant,
            "token": channel.token,
            "amount": channel.amount,
            "chainId": channel.chain_id,
            "adjudicator": channel.adjudicator,
            "challenge": channel.challenge,
            "nonce": channel.nonce,
            "version": channel.version,
            "created": channel.created_at,
            "updated": channel.updated_at,
        },
        "network": NETWORK_NAME,
        "timestamp": _now(),
    }


@yellow_router.get("/channel/verify")
async def verify_channel(client: ClearNodeClient = Depends(require_network)) -> Dict[str, Any]:
    verification = await client.verify_channel_ready()
    return {
        "success": True,
        "verification": {**verification, "message": "Channel is ready for biometric payments"},
        "network": NETWORK_NAME,
        "timestamp": _now(),
    }


@yellow_router.post("/session/create")
async def create_session(
    body: SessionCreateBody,
    client: ClearNodeClient = Depends(require_network),
) -> Dict[str, Any]:
    session = await client.create_session(body.customer_address, body.merchant_address, body.amount)
    return {
        "success": True,
        "session": {
            "sessionId": session.session_id,
            "status": session.status.value,
            "network": NETWORK_NAME,
            "protocol": PROTOCOL_NAME,
            "participants": [session.customer_address, session.merchant_address],
            "amount": float(session.amount),
            "currency": "USDC",
            "synthesizedId": session.synthesized_id,
        },
        "timestamp": _now(),
    }


@yellow_router.post("/payment/biometric")
async def biometric_payment(
    body: BiometricPaymentBody,
    client: ClearNodeClient = Depends(require_network),
) -> Dict[str, Any]:
    receipt = await client.pay(
        body.customer_address,
        body.merchant_address,
        body.amount,
        body.biometric_hash,
        body.merchant_name,
    )
    return {"success": True, "payment": {**receipt.to_dict(), "timestamp": _now()}}


@yellow_router.post("/payment/biometric-real")
async def biometric_payment_real(
    body: BiometricPaymentBody,
    client: ClearNodeClient = Depends(require_network),
) -> Dict[str, Any]:
    """Same as /payment/biometric, after checking the configured channel is open."""
    verification = await client.verify_channel_ready()
    receipt = await client.pay(
        body.customer_address,
        body.merchant_address,
        body.amount,
        body.biometric_hash,
        body.merchant_name,
    )
    payment = receipt.to_dict()
    payment.update({
        "channelId": verification["channelId"],
        "sessionId": receipt.session_id,
        "realChannel": True,
        "timestamp": _now(),
    })
    return {"success": True, "payment": payment}


@yellow_router.get("/sessions/active")
def active_sessions(client: ClearNodeClient = Depends(require_network)) -> Dict[str, Any]:
    sessions = [
        {
            "sessionId": s.session_id,
            "status": s.status.value,
            "customerAddress": s.customer_address,
            "merchantAddress": s.merchant_address,
            "amount": s.amount,
            "createdAt": _iso(s.created_at),
            "completedAt": _iso(s.completed_at),
        }
        for s in client.sessions.all()
    ]
    return {
        "success": True,
        "activeSessionsCount": client.sessions.open_count(),
        "totalSessions": len(sessions),
        "sessions": sessions,
    }
