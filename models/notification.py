"""
Notification data models.

Represents the transaction status notification sent to merchants.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from exceptions import SerializationError


# Top-level fields, always present on the wire (in this order)
BASE_FIELDS = (
    'transaction_time',
    'transaction_status',
    'transaction_id',
    'status_message',
    'status_code',
    'signature_key',
    'payment_type',
    'order_id',
    'merchant_id',
    'gross_amount',
    'fraud_status',
    'currency',
)

CREDIT_CARD_FIELDS = (
    'masked_card',
    'eci',
    'channel_response_message',
    'channel_response_code',
    'card_type',
    'bank',
    'approval_code',
)


@dataclass(frozen=True)
class CreditCardNotification:
    """Credit-card specific notification fields."""

    masked_card: str = ''
    eci: str = ''
    channel_response_message: str = ''
    channel_response_code: str = ''
    card_type: str = ''
    bank: str = ''
    approval_code: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting empty fields."""
        return {
            name: getattr(self, name)
            for name in CREDIT_CARD_FIELDS
            if getattr(self, name)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['CreditCardNotification']:
        values = {name: data[name] for name in CREDIT_CARD_FIELDS if data.get(name)}
        if not values:
            return None
        return cls(**values)


@dataclass(frozen=True)
class VirtualAccountNumber:
    """A virtual account number issued by a bank."""

    va_number: str
    bank: str

    def to_dict(self) -> Dict[str, Any]:
        return {'va_number': self.va_number, 'bank': self.bank}


@dataclass(frozen=True)
class VirtualAccountNotification:
    """Bank-transfer specific notification fields."""

    va_numbers: Tuple[VirtualAccountNumber, ...] = ()
    settlement_time: str = ''
    payment_amounts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting empty fields."""
        data: Dict[str, Any] = {}
        if self.va_numbers:
            data['va_numbers'] = [va.to_dict() for va in self.va_numbers]
        if self.settlement_time:
            data['settlement_time'] = self.settlement_time
        if self.payment_amounts:
            data['payment_amounts'] = list(self.payment_amounts)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['VirtualAccountNotification']:
        va_numbers = tuple(
            VirtualAccountNumber(va_number=va.get('va_number', ''), bank=va.get('bank', ''))
            for va in data.get('va_numbers') or []
        )
        settlement_time = data.get('settlement_time') or ''
        payment_amounts = tuple(data.get('payment_amounts') or [])

        if not (va_numbers or settlement_time or payment_amounts):
            return None

        return cls(
            va_numbers=va_numbers,
            settlement_time=settlement_time,
            payment_amounts=payment_amounts
        )


@dataclass(frozen=True)
class NotificationRequest:
    """
    Transaction status notification delivered to a merchant callback.

    Payment-method specific groups are flattened into the top-level
    JSON object, the way merchants receive them.
    """

    transaction_id: str
    transaction_status: str
    order_id: str = ''
    merchant_id: str = ''
    gross_amount: str = ''
    currency: str = ''
    payment_type: str = ''
    fraud_status: str = ''
    transaction_time: str = ''
    status_code: str = ''
    status_message: str = ''
    signature_key: str = ''

    credit_card: Optional[CreditCardNotification] = None
    virtual_account: Optional[VirtualAccountNotification] = None

    # Fields the merchant integration added that this model doesn't know about
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def event_type(self) -> str:
        """Event type recorded in the webhook history."""
        return self.transaction_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary."""
        data: Dict[str, Any] = dict(self.extra)
        data.update({name: getattr(self, name) for name in BASE_FIELDS})

        if self.credit_card:
            data.update(self.credit_card.to_dict())
        if self.virtual_account:
            data.update(self.virtual_account.to_dict())

        return data

    def to_json(self) -> str:
        """
        Convert to JSON string.

        Raises:
            SerializationError: If the payload cannot be encoded
        """
        try:
            return json.dumps(self.to_dict(), separators=(',', ':'), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Failed to serialize notification for transaction "
                f"{self.transaction_id}: {e}"
            ) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NotificationRequest':
        """
        Create NotificationRequest from a wire dictionary.

        Args:
            data: Flattened notification dictionary

        Returns:
            NotificationRequest instance

        Raises:
            ValueError: If transaction_id or transaction_status is missing
        """
        if not data.get('transaction_id'):
            raise ValueError("transaction_id is required")
        if not data.get('transaction_status'):
            raise ValueError("transaction_status is required")

        known = set(BASE_FIELDS) | set(CREDIT_CARD_FIELDS) | {
            'va_numbers', 'settlement_time', 'payment_amounts'
        }

        return cls(
            credit_card=CreditCardNotification.from_dict(data),
            virtual_account=VirtualAccountNotification.from_dict(data),
            extra={k: v for k, v in data.items() if k not in known},
            **{name: str(data.get(name) or '') for name in BASE_FIELDS}
        )

    @classmethod
    def from_json(cls, payload_json: str) -> 'NotificationRequest':
        """Create NotificationRequest from a JSON string."""
        return cls.from_dict(json.loads(payload_json))

    def short_transaction_id(self) -> str:
        """Get shortened transaction ID for display."""
        if len(self.transaction_id) > 16:
            return f"{self.transaction_id[:8]}...{self.transaction_id[-4:]}"
        return self.transaction_id

