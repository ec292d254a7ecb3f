"""
Application session data model.

An application session is the multi-party payment channel opened for one
biometric transaction: customer, merchant and the PayWiser service account.
Lifecycle is OPEN -> COMPLETED; COMPLETED is terminal.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .errors import SessionAlreadyCompletedError

DEFAULT_ASSET = "usdc"


class SessionStatus(Enum):
    """Session lifecycle states."""
    OPEN = "open"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Allocation:
    """Funds assigned to one participant."""
    participant: str
    amount: str
    asset: str = DEFAULT_ASSET

    def to_dict(self) -> Dict[str, str]:
        return {"participant": self.participant, "asset": self.asset, "amount": self.amount}


@dataclass
class ApplicationSession:
    """
    Represents one application session.

    Fields:
        session_id: ClearNode app_session_id, or a locally synthesized id
        customer_address: Paying participant
        merchant_address: Receiving participant
        service_address: PayWiser account (quorum holder)
        amount: Payment amount as a decimal string
        allocations: Allocations currently agreed for the session
        status: OPEN or COMPLETED
        created_at: Timestamp when the session was opened
        completed_at: Timestamp when the close was acknowledged
        biometric_hash: Hash of the biometric proof used to settle
        synthesized_id: True when the ClearNode did not return an id
    """

    session_id: str
    customer_address: str
    merchant_address: str
    service_address: str
    amount: str
    allocations: List[Allocation] = field(default_factory=list)
    status: SessionStatus = SessionStatus.OPEN
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    biometric_hash: Optional[str] = None
    synthesized_id: bool = False

    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    def complete(
        self,
        allocations: List[Allocation],
        biometric_hash: Optional[str] = None,
        now: Optional[float] = None,
    ) -> None:
        """
        Mark the session settled.

        Raises:
            SessionAlreadyCompletedError: If already completed
        """
        if self.status == SessionStatus.COMPLETED:
            raise SessionAlreadyCompletedError(self.session_id)
        now = time.time() if now is None else now
        self.status = SessionStatus.COMPLETED
        self.allocations = list(allocations)
        self.completed_at = max(now, self.created_at)
        self.biometric_hash = biometric_hash

    @property
    def last_activity(self) -> float:
        return self.completed_at if self.completed_at is not None else self.created_at

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "customer_address": self.customer_address,
            "merchant_address": self.merchant_address,
            "service_address": self.service_address,
            "amount": self.amount,
            "allocations": [a.to_dict() for a in self.allocations],
            "status": self.status.value,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "biometric_hash": self.biometric_hash,
            "synthesized_id": self.synthesized_id,
        }
