"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path so top-level packages can be imported
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from exceptions import PersistenceError, TransportError  # noqa: E402
from models.delivery import SendResult  # noqa: E402
from models.notification import (  # noqa: E402
    CreditCardNotification,
    NotificationRequest,
    VirtualAccountNotification,
    VirtualAccountNumber,
)
from services.retry_policy import RetryPolicy  # noqa: E402


class FakeSender:
    """
    Sender that replays scripted results.

    Each entry is either a status code or a TransportError. The last
    entry repeats once the script runs out.
    """

    def __init__(self, script: List):
        self.script = list(script)
        self.calls: List[Dict] = []

    async def send(self, destination: str, payload_json: str, deadline: Optional[float] = None):
        index = min(len(self.calls), len(self.script) - 1)
        self.calls.append({
            'destination': destination,
            'payload': payload_json,
            'deadline': deadline
        })
        item = self.script[index]
        if isinstance(item, TransportError):
            return SendResult.transport_error(item)
        return SendResult.response(item)


class FakeRecorder:
    """In-memory attempt recorder."""

    def __init__(self, fail_on_call: Optional[int] = None):
        self.rows: List[Dict] = []
        self.calls = 0
        self.fail_on_call = fail_on_call

    async def record(self, transaction_id, event_type, payload, success, status_code=None):
        self.calls += 1
        if self.fail_on_call is not None and self.calls == self.fail_on_call:
            raise PersistenceError("disk full")
        self.rows.append({
            'transaction_id': transaction_id,
            'event_type': event_type,
            'data': payload,
            'success': success,
            'status': status_code
        })


class SleepRecorder:
    """Captures requested sleeps instead of waiting."""

    def __init__(self):
        self.sleeps: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.sleeps.append(seconds)


@pytest.fixture
def notification() -> NotificationRequest:
    """A bank transfer settlement notification."""
    return NotificationRequest(
        transaction_id='9aed5972-5b6a-401e-894b-a32c91ed1a3a',
        transaction_status='settlement',
        order_id='order-101',
        merchant_id='M123456',
        gross_amount='150000.00',
        currency='IDR',
        payment_type='bank_transfer',
        fraud_status='accept',
        transaction_time='2024-05-02 10:15:42',
        status_code='200',
        status_message='payment notification',
        virtual_account=VirtualAccountNotification(
            va_numbers=(VirtualAccountNumber(va_number='812785002530231', bank='bca'),),
            settlement_time='2024-05-02 10:17:03'
        )
    )


@pytest.fixture
def card_notification() -> NotificationRequest:
    """A captured credit card notification."""
    return NotificationRequest(
        transaction_id='1d7d6c8f-2f14-4b5d-9b1a-0c4e1d3f5a77',
        transaction_status='capture',
        order_id='order-202',
        gross_amount='75000.00',
        currency='IDR',
        payment_type='credit_card',
        fraud_status='accept',
        credit_card=CreditCardNotification(
            masked_card='481111-1114',
            bank='bni',
            approval_code='1578569243927',
            card_type='credit',
            eci='05'
        )
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """The default schedule shrunk to milliseconds."""
    return RetryPolicy(backoff_schedule=(0.002, 0.01, 0.03, 0.09, 0.21))


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
