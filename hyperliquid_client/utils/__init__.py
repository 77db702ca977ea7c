"""Utility modules for Hyperliquid client."""

from .validators import validate_address, validate_private_key
from .rate_limiter import RateLimiter
from .retry import RetryStrategy, CircuitBreaker
from .singleflight import SingleFlight
from .numeric import float_to_wire, float_to_int

__all__ = [
    "validate_address",
    "validate_private_key",
    "RateLimiter",
    "RetryStrategy",
    "CircuitBreaker",
    "SingleFlight",
    "float_to_wire",
    "float_to_int",
]
