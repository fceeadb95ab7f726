"""
Delivery data models.

Represents webhook history records, single send results and the
terminal outcome of a delivery sequence.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from exceptions import NotificationError, TransportError


class SendOutcome(str, Enum):
    """What a single POST to the callback endpoint produced."""
    RESPONSE = "response"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class SendResult:
    """
    Result of one send attempt.

    Either an HTTP response (any status code) or a transport error,
    never both. Only responses are subject to the retry policy.
    """

    kind: SendOutcome
    status_code: Optional[int] = None
    error: Optional[TransportError] = None

    @classmethod
    def response(cls, status_code: int) -> 'SendResult':
        return cls(kind=SendOutcome.RESPONSE, status_code=status_code)

    @classmethod
    def transport_error(cls, error: TransportError) -> 'SendResult':
        return cls(kind=SendOutcome.TRANSPORT_ERROR, error=error)

    @property
    def is_transport_error(self) -> bool:
        return self.kind == SendOutcome.TRANSPORT_ERROR


class DeliveryOutcome(str, Enum):
    """Terminal state of a delivery sequence."""
    DELIVERED = "delivered"
    GAVE_UP = "gave_up"


class GiveUpReason(str, Enum):
    """Why a delivery sequence stopped without a 2xx response."""
    RETRY_BUDGET_EXHAUSTED = "retry_budget_exhausted"
    SCHEDULE_EXHAUSTED = "schedule_exhausted"
    NOT_RETRYABLE = "not_retryable"
    TRANSPORT_ERROR = "transport_error"
    SERIALIZATION_ERROR = "serialization_error"
    PERSISTENCE_ERROR = "persistence_error"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True)
class DeliveryResult:
    """
    Terminal outcome of a delivery sequence.

    Attributes:
        outcome: DELIVERED or GAVE_UP
        attempts: Number of sends that got an HTTP response
        last_status: Status code of the last response, if any
        reason: Why the sequence gave up (None when delivered)
        error: Fatal error that stopped the sequence, if any
    """

    outcome: DeliveryOutcome
    attempts: int
    last_status: Optional[int] = None
    reason: Optional[GiveUpReason] = None
    error: Optional[NotificationError] = None

    @property
    def delivered(self) -> bool:
        return self.outcome == DeliveryOutcome.DELIVERED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'outcome': self.outcome.value,
            'attempts': self.attempts,
            'last_status': self.last_status,
            'reason': self.reason.value if self.reason else None,
            'error': self.error.to_dict()['error'] if self.error else None
        }


@dataclass(frozen=True)
class WebhookHistoryRecord:
    """
    One row of the append-only webhook history.

    Attributes:
        transaction_id: Transaction the notification is about
        event_type: Transaction status being reported
        status: HTTP status code returned by the merchant
        data: Serialized notification payload as sent
        success: Whether the merchant answered with 2xx
        created_at: When the attempt was recorded
    """

    transaction_id: str
    event_type: str
    data: str
    success: bool
    status: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WebhookHistoryRecord':
        """
        Create a record from a database row.

        SQLite returns timestamps as ISO strings and booleans as integers.
        """
        created_at = data['created_at']
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return cls(
            transaction_id=data['transaction_id'],
            event_type=data['event_type'],
            data=data['data'],
            success=bool(data['success']),
            status=data.get('status'),
            created_at=created_at
        )
