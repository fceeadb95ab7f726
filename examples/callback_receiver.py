#!/usr/bin/env python3
"""
Example: Callback Receiver for Merchants

This script plays the merchant side of a transaction status webhook,
so the retry policy can be exercised by hand.

Usage:
    python callback_receiver.py --port 5000
    python callback_receiver.py --port 5000 --statuses 503,503,200

The script will:
1. Start a local web server
2. Listen for notification POST requests
3. Display the transaction details
4. Reply with the next scripted status code (the last one repeats)
"""

import argparse
import asyncio
import json
from datetime import datetime
from typing import List

from aiohttp import web


async def handle_callback(request: web.Request) -> web.Response:
    """Handle incoming notification requests."""
    statuses: List[int] = request.app['statuses']
    index = request.app['received']
    request.app['received'] += 1
    status = statuses[min(index, len(statuses) - 1)]

    print("\n" + "=" * 60)
    print(f"Received notification #{index + 1} at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    try:
        payload = await request.json()
    except json.JSONDecodeError as e:
        print(f"Error parsing body: {e}")
        return web.json_response({"error": "Invalid JSON"}, status=400)

    print(f"   Transaction ID: {payload.get('transaction_id')}")
    print(f"   Order ID: {payload.get('order_id')}")
    print(f"   Status: {payload.get('transaction_status')}")
    print(f"   Amount: {payload.get('gross_amount')} {payload.get('currency', '')}")
    print(f"   Payment Type: {payload.get('payment_type')}")
    for va in payload.get('va_numbers', []):
        print(f"   VA Number: {va.get('va_number')} ({va.get('bank')})")

    print("\nFull Payload:")
    print(json.dumps(payload, indent=2))
    print(f"\nReplying with HTTP {status}")
    print("-" * 60)

    return web.json_response({"status": "received"}, status=status)


def create_app(statuses: List[int]) -> web.Application:
    """Create the callback receiver application."""
    app = web.Application()
    app['statuses'] = statuses
    app['received'] = 0

    app.router.add_post('/callback', handle_callback)

    return app


async def main():
    parser = argparse.ArgumentParser(
        description='Callback receiver for testing transaction notifications'
    )
    parser.add_argument(
        '--statuses',
        default='200',
        help='Comma separated status codes to reply with, in order (default: 200)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=5000,
        help='Port to listen on (default: 5000)'
    )
    parser.add_argument(
        '--host',
        default='0.0.0.0',
        help='Host to bind to (default: 0.0.0.0)'
    )

    args = parser.parse_args()
    statuses = [int(s.strip()) for s in args.statuses.split(',') if s.strip()]

    app = create_app(statuses)

    print("=" * 60)
    print("Callback Receiver Started")
    print("=" * 60)
    print(f"Callback endpoint: http://{args.host}:{args.port}/callback")
    print(f"Scripted statuses: {statuses}")
    print()
    print("Point the service at it with:")
    print(f"  CALLBACK_URL=http://localhost:{args.port}/callback python main.py notify examples/notification.json")
    print("=" * 60)
    print("\nWaiting for notifications...")

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, args.host, args.port)
    await site.start()

    # Run forever
    await asyncio.Event().wait()


if __name__ == '__main__':
    asyncio.run(main())
