"""
Cross-chain reward records for settled payments.

Informational only: one PWSR record per chain worth 1% of the payment. The
transaction hashes are random placeholders, nothing is submitted on-chain.
"""

import secrets
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from .session import ApplicationSession

REWARD_TOKEN = "PWSR"
REWARD_CHAINS = ("Ethereum", "Polygon", "Arbitrum")
REWARD_RATE = Decimal("0.01")


@dataclass(frozen=True)
class RewardRecord:
    chain: str
    token: str
    amount: str
    tx_hash: str
    session_id: str

    def to_dict(self) -> dict:
        return asdict(self)


def reward_amount(amount: str) -> str:
    """1% of amount with six decimal places."""
    return str((Decimal(amount) * REWARD_RATE).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP))


def generate_rewards(session: ApplicationSession) -> List[RewardRecord]:
    amount = reward_amount(session.amount)
    return [
        RewardRecord(
            chain=chain,
            token=REWARD_TOKEN,
            amount=amount,
            tx_hash="0x" + secrets.token_hex(32),
            session_id=session.session_id,
        )
        for chain in REWARD_CHAINS
    ]
