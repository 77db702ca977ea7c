"""
Info API client.

Read-only POST /info requests: asset metadata, mids, books, candles and
account state. Responses are normalized to internal symbols and numbers
unless raw_response is set.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import logging

from ..config import HyperliquidSettings, INFO_PATH, get_info_weight
from ..models import SymbolMode
from ..utils.normalizer import DEFAULT_SYMBOL_FIELDS, ResponseNormalizer
from ..utils.numeric import to_decimal
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import CircuitBreaker
from .base import BaseAPIClient

logger = logging.getLogger(__name__)

SPOT_SYMBOL_FIELDS = ("name", "coin", "symbol")

# HYPE bridges through a fixed address; other tokens through 0x20 + zero-padded index
HYPE_SYSTEM_ADDRESS = "0x2222222222222222222222222222222222222222"


def system_address(token_index: int, token_name: str) -> str:
    """HyperEVM system address that bridges a spot token."""
    if token_name == "HYPE":
        return HYPE_SYSTEM_ADDRESS
    return "0x20" + format(token_index, "x").rjust(38, "0")


class InfoAPI(BaseAPIClient):
    """
    Client for Hyperliquid's info endpoint.

    Also serves as the metadata source of the symbol cache.
    """

    def __init__(
        self,
        settings: HyperliquidSettings,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        symbols=None
    ):
        super().__init__(settings.api_url, settings, rate_limiter, circuit_breaker)
        self._symbols = None
        self._normalizer: Optional[ResponseNormalizer] = None
        if symbols is not None:
            self.attach_symbols(symbols)

    def attach_symbols(self, symbols) -> None:
        """Enable symbol conversion once the cache exists."""
        self._symbols = symbols
        self._normalizer = ResponseNormalizer(symbols)

    def _info(self, payload: Dict[str, Any]) -> Any:
        return self.post(
            INFO_PATH,
            json_data=payload,
            weight=get_info_weight(payload["type"]),
            dedupe=True
        )

    def _convert(
        self,
        response: Any,
        raw_response: bool,
        symbol_fields: Iterable[str] = DEFAULT_SYMBOL_FIELDS,
        symbol_mode: SymbolMode = SymbolMode.NONE
    ) -> Any:
        if raw_response or self._normalizer is None:
            return response
        return self._normalizer.normalize(response, symbol_fields, symbol_mode)

    def _exchange_name(self, symbol: str) -> str:
        if self._symbols is None:
            return symbol
        return self._symbols.convert_symbol(symbol, "reverse")

    # Metadata source

    def fetch_perp_meta(self) -> Any:
        """Raw [meta, asset_ctxs] for perpetuals."""
        return self._info({"type": "metaAndAssetCtxs"})

    def fetch_spot_meta(self) -> Any:
        """Raw [spot_meta, asset_ctxs] for spot markets."""
        return self._info({"type": "spotMetaAndAssetCtxs"})

    # Market data

    def get_meta(self, raw_response: bool = False) -> Any:
        return self._convert(self._info({"type": "meta"}), raw_response)

    def get_spot_meta(self, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "spotMeta"}),
            raw_response,
            SPOT_SYMBOL_FIELDS,
            SymbolMode.SPOT
        )

    def get_meta_and_asset_ctxs(self, raw_response: bool = False) -> Any:
        return self._convert(self.fetch_perp_meta(), raw_response)

    def get_spot_meta_and_asset_ctxs(self, raw_response: bool = False) -> Any:
        return self._convert(self.fetch_spot_meta(), raw_response)

    def get_all_mids(self, raw_response: bool = False) -> Dict[str, Any]:
        """Mid price per coin, keyed by internal symbol."""
        response = self._info({"type": "allMids"})
        if raw_response or self._normalizer is None:
            return response
        return self._normalizer.normalize_keys(response)

    def get_l2_book(self, symbol: str, raw_response: bool = False) -> Any:
        response = self._info({"type": "l2Book", "coin": self._exchange_name(symbol)})
        return self._convert(response, raw_response)

    def get_candle_snapshot(
        self,
        symbol: str,
        interval: str,
        start_time: int,
        end_time: Optional[int] = None,
        raw_response: bool = False
    ) -> Any:
        """
        Historical candles.

        Args:
            symbol: Internal symbol
            interval: Candle interval ("1m", "1h", "1d", ...)
            start_time: Start in epoch milliseconds
            end_time: End in epoch milliseconds (defaults to now on the server)
        """
        req: Dict[str, Any] = {
            "coin": self._exchange_name(symbol),
            "interval": interval,
            "startTime": start_time,
        }
        if end_time is not None:
            req["endTime"] = end_time
        response = self._info({"type": "candleSnapshot", "req": req})
        return self._convert(response, raw_response)

    # Account state

    def get_user_open_orders(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(self._info({"type": "openOrders", "user": user}), raw_response)

    def get_frontend_open_orders(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "frontendOpenOrders", "user": user}), raw_response
        )

    def get_user_fills(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(self._info({"type": "userFills", "user": user}), raw_response)

    def get_order_status(self, user: str, oid: Any, raw_response: bool = False) -> Any:
        """Status of one order by exchange oid or client order id."""
        return self._convert(
            self._info({"type": "orderStatus", "user": user, "oid": oid}), raw_response
        )

    def get_clearinghouse_state(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "clearinghouseState", "user": user}), raw_response
        )

    def get_spot_clearinghouse_state(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "spotClearinghouseState", "user": user}),
            raw_response,
            SPOT_SYMBOL_FIELDS,
            SymbolMode.SPOT
        )

    # Spot tokens

    def get_token_details(self, token_id: str, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "tokenDetails", "tokenId": token_id}), raw_response
        )

    def get_spot_deploy_state(self, user: str, raw_response: bool = False) -> Any:
        return self._convert(
            self._info({"type": "spotDeployState", "user": user}), raw_response
        )

    def _spot_balances(self, user: str) -> tuple:
        balances = self.get_spot_clearinghouse_state(user, raw_response=True).get("balances") or []
        tokens = {
            token["index"]: token
            for token in self.get_spot_meta(raw_response=True).get("tokens") or []
            if isinstance(token, dict) and "index" in token
        }
        return balances, tokens

    @staticmethod
    def _balance_row(balance: Dict[str, Any], token: Dict[str, Any]) -> Dict[str, Any]:
        total = to_decimal(balance.get("total"), Decimal(0))
        hold = to_decimal(balance.get("hold"), Decimal(0))
        return {
            "coin": balance.get("coin"),
            "token": balance.get("token"),
            "total": balance.get("total"),
            "hold": balance.get("hold"),
            "withdrawable": str(total - hold),
            "tokenId": token.get("tokenId") or "",
        }

    def get_all_spot_balances(self, user: str) -> List[Dict[str, Any]]:
        """
        Every spot balance with its withdrawable amount (total - hold)
        and token id, whether or not the token has an EVM contract.
        """
        balances, tokens = self._spot_balances(user)
        return [
            self._balance_row(balance, tokens.get(balance.get("token"), {}))
            for balance in balances
        ]

    def get_transferrable_assets(self, user: str, raw_response: bool = False) -> List[Dict[str, Any]]:
        """
        Spot balances that can move between HyperCore and HyperEVM.

        Only tokens with an EVM contract (and HYPE) qualify. Each row
        carries the system address the transfer goes through.
        """
        balances, tokens = self._spot_balances(user)
        assets = []
        for balance in balances:
            token = tokens.get(balance.get("token"), {})
            if not (token.get("evmContract") or token.get("name") == "HYPE"):
                continue
            row = self._balance_row(balance, token)
            row["systemAddress"] = system_address(balance.get("token", 0), balance.get("coin"))
            assets.append(row)

        return self._convert(assets, raw_response, SPOT_SYMBOL_FIELDS, SymbolMode.SPOT)

    def get_evm_tokens(self) -> List[Dict[str, Any]]:
        """Spot tokens that have an EVM contract, with bridge addresses and decimals."""
        evm_tokens = []
        for token in self.get_spot_meta(raw_response=True).get("tokens") or []:
            contract = token.get("evmContract")
            if not (contract or token.get("name") == "HYPE"):
                continue
            evm_tokens.append({
                "name": token["name"],
                "index": token["index"],
                "evmAddress": contract["address"] if contract else "",
                "systemAddress": system_address(token["index"], token["name"]),
                "tokenId": token.get("tokenId") or "",
                "decimals": (token.get("weiDecimals") or 0)
                + ((contract or {}).get("evm_extra_wei_decimals") or 0),
            })
        return evm_tokens
