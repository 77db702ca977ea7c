"""
Order and action builder.

Turns symbol-level requests into exchange action objects: internal symbols
become asset indices, prices and sizes become wire strings. Key order in
every action matters because actions are hashed for signing.
"""

from typing import Any, Dict, Iterable, Optional, Union
import logging

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ValidationError
from ..models import (
    Builder,
    CancelByCloidRequest,
    CancelRequest,
    ModifyRequest,
    OrderRequest,
    OrderType,
)
from ..utils.numeric import Numeric, float_to_int, float_to_wire

logger = logging.getLogger(__name__)

# Isolated margin amounts are sent in micro-USD
USD_DECIMALS = 6


def _coerce(model, value):
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


def order_type_to_wire(order_type: OrderType) -> Dict[str, Any]:
    """Wire form of a limit or trigger order type."""
    if order_type.limit is not None:
        return {"limit": {"tif": order_type.limit.tif}}
    if order_type.trigger is not None:
        trigger = order_type.trigger
        return {
            "trigger": {
                "isMarket": trigger.is_market,
                "triggerPx": float_to_wire(trigger.trigger_px),
                "tpsl": trigger.tpsl,
            }
        }
    raise ValidationError("Order type must be limit or trigger")


class OrderBuilder:
    """
    Builds exchange actions.

    Every asset index comes from SymbolResolutionCache.get_asset_index, which
    raises UnknownAssetError rather than letting an unresolved symbol through.
    """

    def __init__(self, symbols):
        self._symbols = symbols

    def build_order_wire(self, order: Union[OrderRequest, dict]) -> Dict[str, Any]:
        """
        Wire form of one order.

        Raises:
            ValidationError: If the request is malformed
            UnknownAssetError: If the symbol is not listed
        """
        order = _coerce(OrderRequest, order)
        try:
            wire = {
                "a": self._symbols.get_asset_index(order.coin),
                "b": order.is_buy,
                "p": float_to_wire(order.limit_px),
                "s": float_to_wire(order.sz),
                "r": order.reduce_only,
                "t": order_type_to_wire(order.order_type),
            }
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if order.cloid is not None:
            wire["c"] = order.cloid
        return wire

    def order_action(
        self,
        orders: Iterable[Union[OrderRequest, dict]],
        grouping: str = "na",
        builder: Optional[Union[Builder, dict]] = None
    ) -> Dict[str, Any]:
        """Order placement action for one or more orders."""
        action: Dict[str, Any] = {
            "type": "order",
            "orders": [self.build_order_wire(order) for order in orders],
            "grouping": grouping,
        }
        if builder is not None:
            builder = _coerce(Builder, builder)
            action["builder"] = {"b": builder.address.lower(), "f": builder.fee}
        return action

    def cancel_action(self, cancels: Iterable[Union[CancelRequest, dict]]) -> Dict[str, Any]:
        return {
            "type": "cancel",
            "cancels": [
                {"a": self._symbols.get_asset_index(cancel.coin), "o": cancel.oid}
                for cancel in (_coerce(CancelRequest, c) for c in cancels)
            ],
        }

    def cancel_by_cloid_action(
        self,
        cancels: Iterable[Union[CancelByCloidRequest, dict]]
    ) -> Dict[str, Any]:
        return {
            "type": "cancelByCloid",
            "cancels": [
                {"asset": self._symbols.get_asset_index(cancel.coin), "cloid": cancel.cloid}
                for cancel in (_coerce(CancelByCloidRequest, c) for c in cancels)
            ],
        }

    def modify_action(self, modify: Union[ModifyRequest, dict]) -> Dict[str, Any]:
        modify = _coerce(ModifyRequest, modify)
        return {
            "type": "modify",
            "oid": modify.oid,
            "order": self.build_order_wire(modify.order),
        }

    def batch_modify_action(
        self,
        modifies: Iterable[Union[ModifyRequest, dict]]
    ) -> Dict[str, Any]:
        return {
            "type": "batchModify",
            "modifies": [
                {"oid": modify.oid, "order": self.build_order_wire(modify.order)}
                for modify in (_coerce(ModifyRequest, m) for m in modifies)
            ],
        }

    def update_leverage_action(
        self,
        symbol: str,
        leverage: int,
        is_cross: bool = True
    ) -> Dict[str, Any]:
        return {
            "type": "updateLeverage",
            "asset": self._symbols.get_asset_index(symbol),
            "isCross": is_cross,
            "leverage": int(leverage),
        }

    def update_isolated_margin_action(
        self,
        symbol: str,
        amount: Numeric,
        is_buy: bool = True
    ) -> Dict[str, Any]:
        """Add (positive) or remove (negative) isolated margin in USD."""
        try:
            ntli = float_to_int(amount, USD_DECIMALS)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return {
            "type": "updateIsolatedMargin",
            "asset": self._symbols.get_asset_index(symbol),
            "isBuy": is_buy,
            "ntli": ntli,
        }

    def schedule_cancel_action(self, time_ms: Optional[int] = None) -> Dict[str, Any]:
        """Dead man's switch; time_ms=None clears a scheduled cancel."""
        action: Dict[str, Any] = {"type": "scheduleCancel"}
        if time_ms is not None:
            action["time"] = time_ms
        return action
