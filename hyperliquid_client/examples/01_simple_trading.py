"""
Example 1: Simple Trading

Places a resting limit order far from the market, then cancels it.

Set HYPERLIQUID_PRIVATE_KEY (and HYPERLIQUID_TESTNET=true while trying
this out).
"""

import time

from hyperliquid_client import HyperliquidClient
from hyperliquid_client.exceptions import HyperliquidError
from hyperliquid_client.logging_config import setup_logging


def main():
    """Simple trading example."""
    setup_logging(level="INFO")

    # 1. Initialize client; the key is read from the environment
    print("Initializing Hyperliquid client...")
    with HyperliquidClient(enable_ws=False) as client:
        client.initialize()
        exchange = client.require_exchange()
        print(f"✓ Trading as {exchange.address}")

        # 2. Current price
        mids = client.info.get_all_mids()
        mid = mids.get("ETH-PERP")
        if mid is None:
            print("ETH-PERP not listed")
            return
        print(f"✓ ETH-PERP mid: {mid}")

        # 3. Place a limit buy 20% below mid so it rests
        price = round(mid * 0.8, 1)
        print(f"\nPlacing limit buy 0.01 ETH-PERP @ {price}...")
        try:
            response = exchange.place_order({
                "coin": "ETH-PERP",
                "is_buy": True,
                "sz": "0.01",
                "limit_px": price,
                "order_type": {"limit": {"tif": "Gtc"}},
            })
            status = response["response"]["data"]["statuses"][0]
            print(f"✅ Order status: {status}")

            # 4. Wait a bit, then cancel everything on ETH-PERP
            print("\nWaiting 5 seconds before cancelling...")
            time.sleep(5)

            cancelled = client.operations.cancel_all_orders("ETH-PERP")
            print(f"✅ Cancel response: {cancelled}")

        except HyperliquidError as e:
            print(f"❌ Error: {e}")

        # 5. Account state
        state = client.info.get_clearinghouse_state(exchange.address)
        print(f"\nAccount value: {state.get('marginSummary', {}).get('accountValue')}")


if __name__ == "__main__":
    main()
