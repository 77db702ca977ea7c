"""Signing modules for Hyperliquid client."""

from .signing import LocalAccountSigner, NonceGenerator, Signer

__all__ = ["LocalAccountSigner", "NonceGenerator", "Signer"]
