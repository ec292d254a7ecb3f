"""
Application session tracking for PayWiser payments.

Exports:
- ApplicationSession, Allocation, SessionStatus: Session data model
- SessionRegistry: Bounded session store
- RewardRecord, generate_rewards: Reward records for settled sessions
- Session errors
"""

from .session import ApplicationSession, Allocation, SessionStatus, DEFAULT_ASSET
from .registry import SessionRegistry
from .rewards import RewardRecord, generate_rewards, reward_amount
from .errors import (
    SessionError,
    SessionNotFoundError,
    SessionAlreadyCompletedError,
    DuplicateSessionError,
    SessionCapacityError,
    SessionCloseInProgressError,
)

__all__ = [
    # Session data
    'ApplicationSession',
    'Allocation',
    'SessionStatus',
    'DEFAULT_ASSET',
    # Registry
    'SessionRegistry',
    # Rewards
    'RewardRecord',
    'generate_rewards',
    'reward_amount',
    # Errors
    'SessionError',
    'SessionNotFoundError',
    'SessionAlreadyCompletedError',
    'DuplicateSessionError',
    'SessionCapacityError',
    'SessionCloseInProgressError',
]
