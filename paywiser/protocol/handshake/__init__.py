"""ClearNode auth handshake."""

from .fsm import AUTH_TYPES, AuthHandshake, HandshakeConfig, HandshakeState

__all__ = [
    'AUTH_TYPES',
    'AuthHandshake',
    'HandshakeConfig',
    'HandshakeState',
]
