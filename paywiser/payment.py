"""
Biometric payment building blocks.

Definitions and allocations for the three-party application session, amount
validation, and the receipt handed back once a payment settles.
"""

import secrets
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from paywiser.core.errors import InvalidPaymentError
from paywiser.protocol.session import Allocation, ApplicationSession, RewardRecord

PAYMENT_PROTOCOL = "paywiser_biometric_v1"
# Only the service account votes; it alone can reach quorum.
PARTICIPANT_WEIGHTS = [0, 0, 100]
QUORUM = 100
NETWORK_NAME = "Yellow Network"
PROTOCOL_NAME = "Nitrolite (ERC-7824)"

Amount = Union[str, int, float, Decimal]


def normalize_amount(amount: Amount) -> str:
    """
    Validate a payment amount and return it as a decimal string.

    Raises:
        InvalidPaymentError: If not a finite positive number
    """
    if isinstance(amount, bool) or amount is None:
        raise InvalidPaymentError("Amount is required")
    text = str(amount).strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise InvalidPaymentError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise InvalidPaymentError(f"Amount must be positive: {amount!r}")
    return text


def require_address(value: Optional[str], name: str) -> str:
    if not value or not str(value).strip():
        raise InvalidPaymentError(f"{name} is required", details={"field": name})
    return str(value).strip()


def build_definition(customer: str, merchant: str, service: str, nonce: int) -> Dict[str, Any]:
    return {
        "protocol": PAYMENT_PROTOCOL,
        "participants": [customer, merchant, service],
        "weights": list(PARTICIPANT_WEIGHTS),
        "quorum": QUORUM,
        "challenge": 0,
        "nonce": nonce,
    }


def opening_allocations(customer: str, merchant: str, service: str, amount: str) -> List[Allocation]:
    """Funds pre-allocated to the customer."""
    return [
        Allocation(participant=customer, amount=amount),
        Allocation(participant=merchant, amount="0"),
        Allocation(participant=service, amount="0"),
    ]


def settlement_allocations(session: ApplicationSession) -> List[Allocation]:
    """Funds moved from customer to merchant."""
    return [
        Allocation(participant=session.customer_address, amount="0"),
        Allocation(participant=session.merchant_address, amount=session.amount),
        Allocation(participant=session.service_address, amount="0"),
    ]


def synthesize_session_id(now_ms: int) -> str:
    """Local id for a session the ClearNode acknowledged without naming."""
    return f"session_{now_ms}_{secrets.token_hex(4)}"


@dataclass
class PaymentReceipt:
    """Outcome of a settled biometric payment."""
    transaction_id: str
    session_id: str
    amount: str
    from_address: str
    to_address: str
    merchant_name: str
    biometric_hash: Optional[str]
    processing_time_ms: int
    rewards: List[RewardRecord] = field(default_factory=list)
    network: str = NETWORK_NAME
    gas_sponsored: bool = True

    @classmethod
    def for_session(
        cls,
        session: ApplicationSession,
        merchant_name: str,
        rewards: List[RewardRecord],
    ) -> "PaymentReceipt":
        finished = session.completed_at if session.completed_at is not None else session.created_at
        return cls(
            transaction_id=f"yellow_{session.session_id}",
            session_id=session.session_id,
            amount=session.amount,
            from_address=session.customer_address,
            to_address=session.merchant_address,
            merchant_name=merchant_name,
            biometric_hash=session.biometric_hash,
            processing_time_ms=int((finished - session.created_at) * 1000),
            rewards=list(rewards),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "amount": float(Decimal(self.amount)),
            "currency": "USDC",
            "from": self.from_address,
            "to": self.to_address,
            "merchantName": self.merchant_name,
            "status": "completed",
            "network": self.network,
            "protocol": PROTOCOL_NAME,
            "stateChannelId": self.session_id,
            "gasSponsored": self.gas_sponsored,
            "processingTime": f"{self.processing_time_ms}ms",
            "biometric": {
                "verified": True,
                "hash": self.biometric_hash,
                "method": "facial_recognition",
            },
            "rewards": [
                {"chain": r.chain, "token": r.token, "amount": r.amount, "txHash": r.tx_hash}
                for r in self.rewards
            ],
        }
