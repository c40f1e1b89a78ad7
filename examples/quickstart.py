#!/usr/bin/env python3
"""
wsrelay Quickstart — subscribe, publish, receive in one script.

Opens two WebSocket connections: one subscribes to a channel with a
bearer token, the other publishes to it. The subscriber prints what
arrives.
Run with: python examples/quickstart.py [TOKEN]

Requires: pip install httpx websockets
Relay must be running: wsrelay serve  (ws://localhost:8080/ws)
The token authority configured in WSRELAY_AUTHORIZE_URL must accept TOKEN.
"""

import asyncio
import json
import sys
import uuid

import httpx
import websockets

BASE = "http://localhost:8080"
WS_URL = "ws://localhost:8080/ws"


def check_relay() -> None:
    """Verify the relay is reachable and every Redis backend answers."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Relay not reachable at {BASE}")
        print("Start it with:  wsrelay serve")
        sys.exit(1)

    health = resp.json()
    print(f"Relay {health['version']}: {health['status']}")
    for name, status in health["backends"].items():
        print(f"  {name}: {'✓' if status == 'ok' else '✗ ' + status}")


async def main(token: str):
    channel = f"demo-{uuid.uuid4().hex[:6]}"

    async with websockets.connect(WS_URL) as subscriber, websockets.connect(WS_URL) as publisher:
        # ── Subscribe ─────────────────────────────────────────────────
        print(f"\n1. Subscribing to {channel}...")
        await subscriber.send(json.dumps({"action": "subscribe", "token": token, "channel": channel}))
        reply = await subscriber.recv()
        try:
            data = json.loads(reply)
        except json.JSONDecodeError:
            # Errors come back as plain text
            print(f"   Rejected: {reply}")
            sys.exit(1)
        print(f"   {data['message']} (expires at {data['expires_at']})")

        # ── Publish ───────────────────────────────────────────────────
        print("\n2. Publishing from a second connection...")
        await publisher.send(json.dumps({"action": "send", "channel": channel, "message": "hello"}))
        print(f"   {await publisher.recv()}")

        # ── Receive ───────────────────────────────────────────────────
        print("\n3. Waiting for delivery...")
        try:
            envelope = json.loads(await asyncio.wait_for(subscriber.recv(), timeout=5))
        except asyncio.TimeoutError:
            print("   Nothing arrived within 5s")
            sys.exit(1)
        print(f"   Received: {envelope}")

    print(f"\n✓ Round trip through {channel} complete.")


if __name__ == "__main__":
    check_relay()
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "demo-token"))
