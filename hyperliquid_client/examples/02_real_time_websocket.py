"""
Example 2: Real-Time WebSocket

Streams the ETH-PERP order book and trades. Subscriptions survive
reconnects; the registry replays them on every new connection.
"""

import time

from hyperliquid_client import HyperliquidClient


def main():
    """WebSocket real-time updates example."""
    client = HyperliquidClient(enable_ws=True)

    update_count = 0
    book_handle = None

    def on_book(book):
        nonlocal update_count
        update_count += 1
        bids, asks = book["levels"]
        if bids and asks:
            print(f"[{update_count:04d}] {book['coin']} bid {bids[0]['px']} | ask {asks[0]['px']}")

    def on_trades(trades):
        for trade in trades:
            print(f"  trade {trade['coin']} {trade['side']} {trade['sz']} @ {trade['px']}")

    client.ws.on("reconnect", lambda attempt: print(f"🔁 Reconnected (attempt {attempt})"))
    client.ws.on(
        "maxReconnectAttemptsReached",
        lambda attempts: print(f"❌ Gave up after {attempts} reconnect attempts")
    )

    try:
        client.initialize()
        book_handle = client.subscriptions.subscribe_to_l2_book("ETH-PERP", on_book)
        client.subscriptions.subscribe_to_trades("ETH-PERP", on_trades)

        print("✓ Subscribed - press Ctrl+C to stop\n")
        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        print("\n\nStopping...")
        if book_handle is not None:
            client.subscriptions.unsubscribe(book_handle)
        print(f"✓ Received {update_count} book updates")

    finally:
        client.close()


if __name__ == "__main__":
    main()
