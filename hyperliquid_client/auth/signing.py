"""
L1 action signing for the Hyperliquid exchange endpoint.

An action is msgpack-encoded, suffixed with the nonce and vault flag, and
hashed with keccak. The hash becomes the connectionId of a "phantom agent"
that is signed as EIP-712 typed data.
"""

import threading
import time
from typing import Any, Optional, Protocol
import logging

import msgpack
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import keccak, to_bytes, to_hex

from ..exceptions import AuthenticationError
from ..utils.validators import validate_private_key

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

AGENT_TYPES = [
    {"name": "source", "type": "string"},
    {"name": "connectionId", "type": "bytes32"},
]


def action_hash(action: Any, vault_address: Optional[str], nonce: int) -> bytes:
    """
    Keccak hash identifying an action.

    Args:
        action: Action object; key order is significant
        vault_address: Vault or sub-account acted for, if any
        nonce: Millisecond nonce
    """
    data = msgpack.packb(action)
    data += nonce.to_bytes(8, "big")
    if vault_address is None:
        data += b"\x00"
    else:
        data += b"\x01"
        data += to_bytes(hexstr=vault_address)
    return keccak(data)


def construct_phantom_agent(hash_: bytes, is_mainnet: bool) -> dict:
    return {"source": "a" if is_mainnet else "b", "connectionId": hash_}


def l1_typed_data(phantom_agent: dict) -> dict:
    """Full EIP-712 message for a phantom agent."""
    return {
        "domain": {
            "chainId": 1337,
            "name": "Exchange",
            "verifyingContract": ZERO_ADDRESS,
            "version": "1",
        },
        "types": {
            "Agent": AGENT_TYPES,
            "EIP712Domain": EIP712_DOMAIN_TYPES,
        },
        "primaryType": "Agent",
        "message": phantom_agent,
    }


class Signer(Protocol):
    """Signing capability used by the exchange API."""

    address: str

    def sign_l1_action(
        self,
        action: Any,
        vault_address: Optional[str],
        nonce: int,
        is_mainnet: bool
    ) -> dict:
        ...


class LocalAccountSigner:
    """
    Signs with an in-process eth-account key.

    SECURITY: the key never appears in repr or logs.
    """

    def __init__(self, account: LocalAccount):
        self._account = account
        self.address = account.address

    @classmethod
    def from_key(cls, private_key: str) -> "LocalAccountSigner":
        """
        Build a signer from a hex private key.

        Raises:
            ValidationError: If the key is malformed
        """
        return cls(Account.from_key(validate_private_key(private_key)))

    def sign_l1_action(
        self,
        action: Any,
        vault_address: Optional[str],
        nonce: int,
        is_mainnet: bool
    ) -> dict:
        """
        Sign an exchange action.

        Returns:
            {"r": hex, "s": hex, "v": int}

        Raises:
            AuthenticationError: If signing fails
        """
        try:
            phantom_agent = construct_phantom_agent(
                action_hash(action, vault_address, nonce), is_mainnet
            )
            structured = encode_typed_data(full_message=l1_typed_data(phantom_agent))
            signed = self._account.sign_message(structured)
            return {"r": to_hex(signed.r), "s": to_hex(signed.s), "v": signed.v}

        except Exception as e:
            # Type name only; messages may echo key material
            error_type = type(e).__name__
            logger.error(f"Failed to sign action: {error_type}")
            raise AuthenticationError(f"L1 signature failed: {error_type}") from None

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"


class NonceGenerator:
    """Strictly increasing millisecond timestamps, safe across threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            nonce = max(int(time.time() * 1000), self._last + 1)
            self._last = nonce
            return nonce
