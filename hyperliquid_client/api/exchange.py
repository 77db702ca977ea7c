"""
Exchange API client.

Signed POST /exchange actions: orders, cancels, modifies, leverage and
margin updates. Only constructed for a client with a signing account.
"""

from typing import Any, Dict, Iterable, Optional, Union
import logging

from pydantic import BaseModel

from ..auth.signing import NonceGenerator, Signer
from ..config import HyperliquidSettings, EXCHANGE_PATH, get_exchange_weight
from ..exceptions import OrderRejectedError
from ..metrics import track_time
from ..models import (
    Builder,
    CancelRequest,
    ModifyRequest,
    OrderRequest,
)
from ..trading.order_builder import OrderBuilder
from ..utils.numeric import Numeric
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import CircuitBreaker
from .base import BaseAPIClient

logger = logging.getLogger(__name__)


def _as_list(value) -> list:
    if isinstance(value, (dict, BaseModel)):
        return [value]
    return list(value)


class ExchangeAPI(BaseAPIClient):
    """
    Client for Hyperliquid's exchange endpoint.

    Exchange posts are never retried: a retried action would carry a
    fresh nonce and could execute twice.
    """

    def __init__(
        self,
        settings: HyperliquidSettings,
        signer: Signer,
        symbols,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        vault_address: Optional[str] = None
    ):
        """
        Args:
            settings: Client settings
            signer: Signing capability
            symbols: SymbolResolutionCache resolving asset indices
            rate_limiter: Optional rate limiter
            circuit_breaker: Optional circuit breaker
            vault_address: Vault or sub-account to act for
        """
        super().__init__(settings.api_url, settings, rate_limiter, circuit_breaker)
        self.signer = signer
        self.vault_address = vault_address
        self.is_mainnet = not settings.testnet
        self.builder = OrderBuilder(symbols)
        self._nonces = NonceGenerator()

    @property
    def address(self) -> str:
        return self.signer.address

    def _post_action(self, action: Dict[str, Any], batch_length: int = 1) -> Any:
        nonce = self._nonces.next()
        signature = self.signer.sign_l1_action(
            action, self.vault_address, nonce, self.is_mainnet
        )
        payload = {
            "action": action,
            "nonce": nonce,
            "signature": signature,
            "vaultAddress": self.vault_address,
        }

        response = self.post(
            EXCHANGE_PATH,
            json_data=payload,
            weight=get_exchange_weight(batch_length),
            retry=False
        )

        action_type = action["type"]
        if isinstance(response, dict) and response.get("status") == "err":
            self._metrics.track_order(action_type, "rejected")
            logger.warning(f"{action_type} rejected: {response.get('response')}")
            raise OrderRejectedError(
                f"{action_type} rejected: {response.get('response')}",
                response=response
            )

        self._metrics.track_order(action_type, "ok")
        logger.debug(f"{action_type} accepted (nonce={nonce})")
        return response

    @track_time("order", action="order")
    def place_order(
        self,
        orders: Union[OrderRequest, dict, Iterable[Union[OrderRequest, dict]]],
        grouping: str = "na",
        builder: Optional[Union[Builder, dict]] = None
    ) -> Any:
        """
        Place one or more orders.

        Args:
            orders: Order request(s) using internal symbols
            grouping: "na", "normalTpsl" or "positionTpsl"
            builder: Optional builder fee attribution

        Returns:
            Exchange response; per-order errors are reported in its statuses

        Raises:
            UnknownAssetError: If a symbol is not listed
            OrderRejectedError: If the whole action is rejected
        """
        orders = _as_list(orders)
        action = self.builder.order_action(orders, grouping, builder)
        return self._post_action(action, batch_length=len(orders))

    def cancel_order(
        self,
        cancels: Union[CancelRequest, dict, Iterable[Union[CancelRequest, dict]]]
    ) -> Any:
        """Cancel one or more orders by exchange oid."""
        cancels = _as_list(cancels)
        return self._post_action(self.builder.cancel_action(cancels), batch_length=len(cancels))

    def cancel_order_by_cloid(self, symbol: str, cloid: str) -> Any:
        """Cancel one order by client order id."""
        action = self.builder.cancel_by_cloid_action(
            [{"coin": symbol, "cloid": cloid}]
        )
        return self._post_action(action)

    def modify_order(self, oid: Union[int, str], order: Union[OrderRequest, dict]) -> Any:
        """Replace an open order (by oid or cloid) with a new one."""
        action = self.builder.modify_action({"oid": oid, "order": order})
        return self._post_action(action)

    def batch_modify_orders(self, modifies: Iterable[Union[ModifyRequest, dict]]) -> Any:
        modifies = list(modifies)
        return self._post_action(
            self.builder.batch_modify_action(modifies), batch_length=len(modifies)
        )

    def update_leverage(self, symbol: str, leverage_mode: str, leverage: int) -> Any:
        """
        Set leverage for an asset.

        Args:
            symbol: Internal symbol
            leverage_mode: "cross" or "isolated"
            leverage: Leverage multiple
        """
        action = self.builder.update_leverage_action(
            symbol, leverage, is_cross=leverage_mode == "cross"
        )
        return self._post_action(action)

    def update_isolated_margin(self, symbol: str, is_buy: bool, amount: Numeric) -> Any:
        """Add (positive amount) or remove (negative) isolated margin in USD."""
        action = self.builder.update_isolated_margin_action(symbol, amount, is_buy)
        return self._post_action(action)

    def schedule_cancel(self, time_ms: Optional[int] = None) -> Any:
        """Cancel all open orders at time_ms; None clears the schedule."""
        return self._post_action(self.builder.schedule_cancel_action(time_ms))
