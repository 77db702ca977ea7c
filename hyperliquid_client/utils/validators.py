"""
Input validation for account credentials.

Validates format only; trading semantics are left to the exchange.
"""

import re

from eth_utils import to_checksum_address

from ..exceptions import ValidationError


def validate_address(address: str) -> str:
    """
    Validate Ethereum address.

    Args:
        address: Ethereum address

    Returns:
        Checksummed address

    Raises:
        ValidationError: If address is invalid
    """
    if not isinstance(address, str):
        raise ValidationError(f"Address must be string, got {type(address)}")

    addr = address[2:] if address.startswith("0x") else address

    # 20 bytes = 40 hex chars
    if not re.match(r"^[0-9a-fA-F]{40}$", addr):
        raise ValidationError(f"Invalid Ethereum address: {address}")

    return to_checksum_address(f"0x{addr}")


def validate_private_key(private_key: str) -> str:
    """
    Validate private key format.

    Args:
        private_key: Private key hex string

    Returns:
        Normalized private key

    Raises:
        ValidationError: If private key is invalid
    """
    if not isinstance(private_key, str):
        raise ValidationError(f"Private key must be string, got {type(private_key)}")

    key = private_key[2:] if private_key.startswith("0x") else private_key

    # 32 bytes = 64 hex chars
    if not re.match(r"^[0-9a-fA-F]{64}$", key):
        raise ValidationError("Invalid private key format")

    return f"0x{key.lower()}"
