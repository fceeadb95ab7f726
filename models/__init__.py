"""Data models for Payment Notification Webhooks."""

from .delivery import (
    DeliveryOutcome,
    DeliveryResult,
    GiveUpReason,
    SendOutcome,
    SendResult,
    WebhookHistoryRecord,
)
from .notification import (
    CreditCardNotification,
    NotificationRequest,
    VirtualAccountNotification,
    VirtualAccountNumber,
)

__all__ = [
    'CreditCardNotification',
    'DeliveryOutcome',
    'DeliveryResult',
    'GiveUpReason',
    'NotificationRequest',
    'SendOutcome',
    'SendResult',
    'VirtualAccountNotification',
    'VirtualAccountNumber',
    'WebhookHistoryRecord',
]
