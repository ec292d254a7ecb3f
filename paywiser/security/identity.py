"""
Account and session-key identity for the ClearNode client.

Two key pairs are held:
- account key: long-lived, loaded from configuration; signs auth challenges
  (EIP-712 typed data) and every non-auth request payload.
- session key: generated fresh for each Identity; its address is the
  authenticated participant for the lifetime of one connection. It is never
  persisted.
"""

import json
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import keccak
from eth_utils.exceptions import ValidationError as KeyValidationError

from paywiser.core.errors import ConfigurationError


def _hex_signature(signature: bytes) -> str:
    sig_hex = signature.hex()
    if not sig_hex.startswith("0x"):
        sig_hex = "0x" + sig_hex
    return sig_hex


def canonical_json(payload: Any) -> str:
    """Compact JSON, byte-identical to what goes on the wire."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class Identity:
    """Account key plus ephemeral session key."""

    def __init__(self, account: LocalAccount, session_key: Optional[LocalAccount] = None):
        self._account = account
        self._session_key = session_key or Account.create()

    @classmethod
    def from_private_key(cls, private_key: str) -> "Identity":
        """
        Build an identity from the account private key.

        Args:
            private_key: Hex private key, with or without 0x prefix

        Returns:
            Identity with a freshly generated session key

        Raises:
            ConfigurationError: If the key is empty or malformed
        """
        if not private_key:
            raise ConfigurationError("Account private key is required")
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError, KeyValidationError) as e:
            raise ConfigurationError(f"Invalid account private key: {e}") from e
        return cls(account)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def session_address(self) -> str:
        return self._session_key.address

    def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        message: Dict[str, Any],
    ) -> str:
        """
        EIP-712 sign with the account key.

        Args:
            domain: EIP-712 domain values (types are inferred from the keys)
            types: Struct definitions, without EIP712Domain
            message: Values of the primary struct

        Returns:
            0x-prefixed hex signature
        """
        signable = encode_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=message,
        )
        signed = self._account.sign_message(signable)
        return _hex_signature(signed.signature)

    def sign_payload(self, payload: Any) -> str:
        """
        Sign a request payload with the account key.

        The payload is serialized to compact JSON, hashed with keccak-256 and
        the 32-byte digest is personal-signed (EIP-191).
        """
        digest = keccak(text=canonical_json(payload))
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        return _hex_signature(signed.signature)

    def __repr__(self) -> str:
        return f"Identity(address={self.address!r}, session_address={self.session_address!r})"
