"""
Type definitions for Hyperliquid client.

Uses Pydantic for request validation and dataclasses for internal records.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

# Spot indices are offset so they never collide with perp universe positions
SPOT_INDEX_OFFSET = 10000
PERP_SUFFIX = "-PERP"


class AssetClass(str, Enum):
    """Instrument class."""
    PERP = "PERP"
    SPOT = "SPOT"


class SymbolMode(str, Enum):
    """Disambiguation mode for bare symbols shared by perp and spot."""
    NONE = ""
    PERP = "PERP"
    SPOT = "SPOT"


class ConnectionState(str, Enum):
    """Streaming connection state."""
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class AssetRecord:
    """One tradable instrument as seen by the venue and by the library."""
    exchange_name: str
    internal_symbol: str
    index: int
    asset_class: AssetClass


# Lookup results
@dataclass(frozen=True)
class Found(Generic[T]):
    """Successful lookup."""
    value: T


class _NotFound:
    """Sentinel for a failed lookup."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()

Lookup = Union[Found[T], _NotFound]


# Request Models
class LimitOrderType(BaseModel):
    """Resting limit order."""
    tif: Literal["Alo", "Ioc", "Gtc"] = "Gtc"


class TriggerOrderType(BaseModel):
    """Stop/take-profit trigger order."""
    trigger_px: Decimal = Field(..., gt=0)
    is_market: bool = True
    tpsl: Literal["tp", "sl"]


class OrderType(BaseModel):
    """Either a limit or a trigger order type."""
    limit: Optional[LimitOrderType] = None
    trigger: Optional[TriggerOrderType] = None

    @field_validator("trigger")
    @classmethod
    def validate_exclusive(cls, v: Optional[TriggerOrderType], info) -> Optional[TriggerOrderType]:
        if v is not None and info.data.get("limit") is not None:
            raise ValueError("Order type is either limit or trigger, not both")
        return v


class OrderRequest(BaseModel):
    """Order placement request using internal symbols."""

    coin: str = Field(..., min_length=1, description="Internal symbol, e.g. BTC-PERP or PURR-USDC")
    is_buy: bool
    sz: Decimal = Field(..., gt=0, description="Size in base units")
    limit_px: Decimal = Field(..., gt=0, description="Limit price")
    order_type: OrderType = Field(default_factory=lambda: OrderType(limit=LimitOrderType()))
    reduce_only: bool = False
    cloid: Optional[str] = Field(None, description="Client order id (16-byte hex)")

    @field_validator("sz", "limit_px", mode="before")
    @classmethod
    def validate_decimal(cls, v: Any) -> Decimal:
        """Convert via string to avoid float precision loss."""
        if isinstance(v, Decimal):
            return v
        if isinstance(v, (int, float)):
            return Decimal(str(v))
        if isinstance(v, str):
            try:
                return Decimal(v)
            except InvalidOperation:
                raise ValueError(f"Not a number: {v!r}")
        raise ValueError(f"Cannot convert {type(v)} to Decimal")

    @field_validator("cloid")
    @classmethod
    def validate_cloid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.startswith("0x") or len(v) != 34:
            raise ValueError("cloid must be 0x followed by 32 hex characters")
        int(v[2:], 16)
        return v.lower()


class CancelRequest(BaseModel):
    """Cancel by exchange order id (accepts the wire name "o" too)."""
    model_config = ConfigDict(populate_by_name=True)

    coin: str = Field(..., min_length=1)
    oid: int = Field(..., ge=0, alias="o")


class CancelByCloidRequest(BaseModel):
    """Cancel by client order id."""
    coin: str = Field(..., min_length=1)
    cloid: str


class ModifyRequest(BaseModel):
    """Replace an open order in place."""
    oid: Union[int, str]
    order: OrderRequest


class Builder(BaseModel):
    """Builder fee attribution."""
    address: str = Field(..., description="Builder address")
    fee: int = Field(..., ge=0, description="Fee in tenths of a basis point")
