"""
Transaction Notifier.

Entry point called when a transaction changes status. Hands the
notification to the delivery scheduler and keeps delivery counters.
"""

import logging
from typing import Dict

from models.notification import NotificationRequest
from .delivery_scheduler import DeliveryScheduler

logger = logging.getLogger(__name__)


class TransactionNotifier:
    """
    Notifies the merchant callback about transaction status changes.

    Each call runs one delivery to completion. Nothing is returned to
    the caller: the webhook history is the record of what happened.
    Concurrent calls for the same transaction are not serialized here.
    """

    def __init__(self, scheduler: DeliveryScheduler, callback_url: str):
        """
        Initialize the notifier.

        Args:
            scheduler: Delivery scheduler
            callback_url: Merchant callback destination
        """
        self.scheduler = scheduler
        self.callback_url = callback_url
        self._stats = {
            "total_notifications": 0,
            "delivered": 0,
            "gave_up": 0,
            "id_mismatches": 0
        }

    async def notify_transaction_status_changed(
        self,
        transaction_id: str,
        notification: NotificationRequest
    ) -> None:
        """
        Deliver a status-change notification for a transaction.

        Args:
            transaction_id: Transaction whose status changed. The payload's own
                transaction_id is what gets delivered and recorded.
            notification: Payload describing the new status
        """
        self._stats["total_notifications"] += 1

        if notification.transaction_id != transaction_id:
            self._stats["id_mismatches"] += 1
            logger.warning(
                f"Notification payload is for transaction {notification.transaction_id}, "
                f"not {transaction_id}; delivering the payload as-is"
            )

        logger.info(
            f"Transaction {notification.short_transaction_id()} is now "
            f"{notification.transaction_status}, notifying merchant"
        )

        try:
            result = await self.scheduler.deliver(self.callback_url, notification)
        except Exception as e:
            self._stats["gave_up"] += 1
            logger.error(
                f"Error delivering notification for {notification.transaction_id}: {e}",
                exc_info=True
            )
            return

        if result.delivered:
            self._stats["delivered"] += 1
        else:
            self._stats["gave_up"] += 1

    def get_stats(self) -> Dict[str, int]:
        """Get delivery counters."""
        return dict(self._stats)
