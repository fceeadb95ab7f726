"""Services module for Payment Notification Webhooks."""

from .attempt_recorder import AttemptRecorder, DatabaseAttemptRecorder
from .delivery_scheduler import DeliveryScheduler
from .notification_trigger import TransactionNotifier
from .retry_policy import RetryPolicy
from .webhook_sender import NotificationSender

__all__ = [
    'AttemptRecorder',
    'DatabaseAttemptRecorder',
    'DeliveryScheduler',
    'NotificationSender',
    'RetryPolicy',
    'TransactionNotifier'
]
