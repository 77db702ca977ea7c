"""Order building and bulk trading operations."""

from .order_builder import OrderBuilder
from .operations import TradingOperations

__all__ = ["OrderBuilder", "TradingOperations"]
