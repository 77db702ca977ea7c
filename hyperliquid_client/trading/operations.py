"""
Bulk trading operations composed from the info and exchange APIs.
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Any, Callable, Dict, List, Optional
import logging

from ..exceptions import AuthenticationError, TradingError
from ..models import (
    PERP_SUFFIX,
    SPOT_INDEX_OFFSET,
    LimitOrderType,
    OrderRequest,
    OrderType,
)
from ..utils.numeric import Numeric, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE = 0.05
PRICE_SIGNIFICANT_FIGURES = 5
PERP_PRICE_DECIMALS = 6
SPOT_PRICE_DECIMALS = 8


def round_price(price: Decimal, is_spot: bool) -> Decimal:
    """
    Round to 5 significant figures, then to 6 decimals (perp) or 8 (spot).

    Examples:
        >>> round_price(Decimal("63123.456"), is_spot=False)
        Decimal('63123.000000')
        >>> round_price(Decimal("0.0123456789"), is_spot=True)
        Decimal('0.01234600')
    """
    significant = Decimal(format(price, f".{PRICE_SIGNIFICANT_FIGURES}g"))
    decimals = SPOT_PRICE_DECIMALS if is_spot else PERP_PRICE_DECIMALS
    return significant.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_EVEN)


class TradingOperations:
    """
    Convenience operations over an account's open orders and positions.

    Usage:
        >>> ops = TradingOperations(client.exchange, client.info, client.symbols)
        >>> ops.cancel_all_orders("BTC-PERP")
    """

    def __init__(self, exchange, info, symbols, wallet_address: Optional[str] = None):
        """
        Args:
            exchange: ExchangeAPI used to cancel
            info: InfoAPI used to list open orders
            symbols: SymbolResolutionCache
            wallet_address: Account whose orders are listed (defaults to the signer)
        """
        self._exchange = exchange
        self._info = info
        self._symbols = symbols
        self.wallet_address = wallet_address

    def _user_address(self) -> str:
        address = self.wallet_address or getattr(self._exchange, "address", None)
        if not address:
            raise AuthenticationError(
                "No wallet address available; provide a wallet address or private key"
            )
        return address

    def _open_orders(self) -> List[Dict[str, Any]]:
        orders = self._info.get_user_open_orders(self._user_address(), raw_response=True)
        return [
            {**order, "coin": self._symbols.convert_symbol(order["coin"])}
            for order in orders
        ]

    def _cancel_matching(self, predicate: Callable[[str], bool], label: str) -> Optional[Any]:
        targets = [order for order in self._open_orders() if predicate(order["coin"])]
        if not targets:
            logger.info(f"No {label} to cancel")
            return None

        logger.info(f"Cancelling {len(targets)} {label}")
        return self._exchange.cancel_order(
            [{"coin": order["coin"], "oid": order["oid"]} for order in targets]
        )

    def cancel_all_orders(self, symbol: Optional[str] = None) -> Optional[Any]:
        """
        Cancel every open order, or only those for symbol.

        Returns:
            Exchange response, or None when nothing was open
        """
        if symbol is None:
            return self._cancel_matching(lambda coin: True, "orders")
        return self._cancel_matching(lambda coin: coin == symbol, f"{symbol} orders")

    def cancel_all_spot_orders(self) -> Optional[Any]:
        spot = set(self._symbols.get_all_assets()["spot"])
        return self._cancel_matching(
            lambda coin: coin in spot or (not coin.endswith(PERP_SUFFIX) and "-" in coin),
            "spot orders"
        )

    def cancel_all_perp_orders(self) -> Optional[Any]:
        perp = set(self._symbols.get_all_assets()["perp"])
        return self._cancel_matching(
            lambda coin: coin in perp or coin.endswith(PERP_SUFFIX),
            "perp orders"
        )

    def get_all_assets(self) -> Dict[str, List[str]]:
        """Internal symbols grouped into perp and spot."""
        return self._symbols.get_all_assets()

    # Market orders

    def _is_spot(self, symbol: str) -> bool:
        return self._symbols.get_asset_index(symbol) >= SPOT_INDEX_OFFSET

    def slippage_price(
        self,
        symbol: str,
        is_buy: bool,
        slippage: float = DEFAULT_SLIPPAGE,
        px: Optional[Numeric] = None
    ) -> Decimal:
        """
        Aggressive limit price for a market order.

        Starts from px, or the current mid when px is not given, and moves
        it by slippage against the taker.

        Raises:
            TradingError: If no mid price is available for symbol
        """
        price = to_decimal(px)
        if price is None:
            mids = self._info.get_all_mids()
            price = to_decimal(mids.get(symbol))
            if price is None:
                raise TradingError(f"No mid price available for {symbol}")

        factor = Decimal(1) + to_decimal(slippage) if is_buy else Decimal(1) - to_decimal(slippage)
        return round_price(price * factor, self._is_spot(symbol))

    def market_open(
        self,
        symbol: str,
        is_buy: bool,
        size: Numeric,
        px: Optional[Numeric] = None,
        slippage: float = DEFAULT_SLIPPAGE,
        cloid: Optional[str] = None
    ) -> Any:
        """
        Open or add to a position with an immediate-or-cancel limit order
        priced slippage away from the mid.

        Returns:
            Exchange response
        """
        limit_px = self.slippage_price(symbol, is_buy, slippage, px)
        logger.info(f"Market {'buy' if is_buy else 'sell'} {size} {symbol} @ {limit_px}")
        return self._exchange.place_order(OrderRequest(
            coin=symbol,
            is_buy=is_buy,
            sz=size,
            limit_px=limit_px,
            order_type=OrderType(limit=LimitOrderType(tif="Ioc")),
            cloid=cloid,
        ))

    def _positions(self) -> List[Dict[str, Any]]:
        state = self._info.get_clearinghouse_state(self._user_address(), raw_response=True)
        positions = []
        for entry in state.get("assetPositions") or []:
            position = entry.get("position") or {}
            size = to_decimal(position.get("szi"), Decimal(0))
            if size == 0:
                continue
            positions.append({
                "coin": self._symbols.convert_symbol(position["coin"]),
                "szi": size,
            })
        return positions

    def _close(
        self,
        position: Dict[str, Any],
        size: Optional[Numeric],
        px: Optional[Numeric],
        slippage: float,
        cloid: Optional[str]
    ) -> Any:
        symbol = position["coin"]
        is_buy = position["szi"] < 0
        close_size = to_decimal(size) if size is not None else abs(position["szi"])
        limit_px = self.slippage_price(symbol, is_buy, slippage, px)

        logger.info(f"Closing {close_size} {symbol} @ {limit_px}")
        return self._exchange.place_order(OrderRequest(
            coin=symbol,
            is_buy=is_buy,
            sz=close_size,
            limit_px=limit_px,
            order_type=OrderType(limit=LimitOrderType(tif="Ioc")),
            reduce_only=True,
            cloid=cloid,
        ))

    def market_close(
        self,
        symbol: str,
        size: Optional[Numeric] = None,
        px: Optional[Numeric] = None,
        slippage: float = DEFAULT_SLIPPAGE,
        cloid: Optional[str] = None
    ) -> Any:
        """
        Close the open position in symbol with a reduce-only IoC order.

        Args:
            symbol: Internal symbol, e.g. BTC-PERP
            size: Amount to close (defaults to the whole position)
            px: Reference price (defaults to the mid)
            slippage: Fraction the limit price may move from the reference
            cloid: Optional client order id

        Raises:
            TradingError: If there is no open position in symbol
        """
        for position in self._positions():
            if position["coin"] == symbol:
                return self._close(position, size, px, slippage, cloid)
        raise TradingError(f"No position found for {symbol}")

    def close_all_positions(self, slippage: float = DEFAULT_SLIPPAGE) -> List[Any]:
        """Market close every open position; one exchange response per position."""
        positions = self._positions()
        if not positions:
            logger.info("No positions to close")
            return []
        return [self._close(position, None, None, slippage, None) for position in positions]
