#!/usr/bin/env python3
"""
Payment Notification Webhooks Service.

Main entry point that wires the webhook delivery engine together:
- Database connection and schema migration
- Webhook sender, attempt recorder and delivery scheduler
- Transaction notifier

Usage:
    python main.py migrate
    python main.py healthz
    python main.py notify notification.json [--url https://merchant.example/callback]

Environment variables:
    See config.py for all configuration options.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from config import config
from database.db import Database, close_db, get_db
from models.notification import NotificationRequest
from services.attempt_recorder import DatabaseAttemptRecorder
from services.delivery_scheduler import DeliveryScheduler
from services.notification_trigger import TransactionNotifier
from services.retry_policy import RetryPolicy
from services.webhook_sender import NotificationSender


# Configure logging
def setup_logging():
    """Configure logging based on config."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if config.logging.file:
        # Ensure log directory exists
        log_dir = os.path.dirname(config.logging.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(config.logging.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )

    # Reduce noise from third-party libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class NotificationService:
    """
    Main service orchestrator.

    Builds the delivery engine from configuration values; the engine
    itself never reads configuration.
    """

    def __init__(self, callback_url: Optional[str] = None):
        self.callback_url = callback_url or config.callback.url
        self.db: Optional[Database] = None
        self.sender: Optional[NotificationSender] = None
        self.scheduler: Optional[DeliveryScheduler] = None
        self.notifier: Optional[TransactionNotifier] = None

    async def start(self) -> None:
        """Connect the database and build the delivery engine."""
        logger.info(f"Starting {config.service.name}")

        # Validate configuration
        errors = config.validate()
        if not self.callback_url.startswith(('http://', 'https://')):
            errors.append(f"Callback URL must be a valid HTTP(S) URL: {self.callback_url}")
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError("Invalid configuration")

        self.db = Database(
            config.database.url,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size
        )
        await self.db.connect()
        await self.db.init_schema()

        self.sender = NotificationSender(timeout=config.webhook.timeout)
        await self.sender.start()

        self.scheduler = DeliveryScheduler(
            sender=self.sender,
            recorder=DatabaseAttemptRecorder(self.db),
            policy=RetryPolicy.from_config(config.webhook)
        )
        self.notifier = TransactionNotifier(self.scheduler, self.callback_url)

    async def stop(self) -> None:
        """Stop all services gracefully."""
        if self.sender:
            await self.sender.stop()

        if self.db:
            await self.db.disconnect()

        logger.info("Shutdown complete")


async def run_migrate() -> int:
    """Create the webhook history schema."""
    db = await get_db()
    try:
        await db.init_schema()
    finally:
        await close_db()
    return 0


async def run_healthz() -> int:
    """Ping the database and print the health status."""
    try:
        db = await get_db()
        await db.ping()
    except Exception as e:
        print(json.dumps({"status": "error", "message": str(e)}))
        return 1
    finally:
        await close_db()

    print(json.dumps({"status": "ok"}))
    return 0


async def run_notify(payload_file: str, url: Optional[str] = None) -> int:
    """Deliver the notification stored in a JSON file and print its history."""
    with open(payload_file, 'r') as f:
        notification = NotificationRequest.from_json(f.read())

    service = NotificationService(callback_url=url)
    try:
        await service.start()
        await service.notifier.notify_transaction_status_changed(
            notification.transaction_id, notification
        )
        history = await service.db.get_webhook_history(notification.transaction_id)
    finally:
        await service.stop()

    print(json.dumps(
        [
            {
                'event_type': record.event_type,
                'status': record.status,
                'success': record.success,
                'created_at': record.created_at.isoformat()
            }
            for record in history
        ],
        indent=2
    ))
    return 0 if service.notifier.get_stats()['delivered'] else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Deliver transaction status notifications to merchant callbacks"
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('migrate', help="Create the webhook history table")
    subparsers.add_parser('healthz', help="Check the database connection")

    notify = subparsers.add_parser('notify', help="Deliver a notification from a JSON file")
    notify.add_argument('payload_file', help="Path to a NotificationRequest JSON file")
    notify.add_argument('--url', help="Callback URL (defaults to CALLBACK_URL)")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.command == 'migrate':
        return await run_migrate()
    if args.command == 'healthz':
        return await run_healthz()
    return await run_notify(args.payload_file, url=args.url)


if __name__ == '__main__':
    sys.exit(asyncio.run(main()))
