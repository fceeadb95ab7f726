"""
Unit tests for the webhook delivery scheduler.

Run with: pytest tests/test_delivery_scheduler.py -v
"""

import asyncio
import json
import math

import pytest

from conftest import FakeRecorder, FakeSender, SleepRecorder
from exceptions import DeadlineExceededError, PersistenceError, TransportError
from models.delivery import DeliveryOutcome, GiveUpReason
from models.notification import NotificationRequest
from services.delivery_scheduler import DeliveryScheduler
from services.retry_policy import RetryPolicy

CALLBACK_URL = 'https://merchant.test/callback'


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


def make_scheduler(script, recorder=None, sleeper=None, policy=None, clock=None):
    sender = FakeSender(script)
    recorder = recorder or FakeRecorder()
    kwargs = {}
    if clock is not None:
        kwargs['clock'] = clock
        kwargs['sleep'] = clock.sleep
    else:
        kwargs['sleep'] = sleeper or SleepRecorder()
    scheduler = DeliveryScheduler(sender, recorder, policy=policy, **kwargs)
    return scheduler, sender, recorder


class TestSuccessfulDelivery:
    """Tests for deliveries that end with a 2xx response."""

    @pytest.mark.asyncio
    async def test_first_attempt_200(self, notification, sleeper):
        """Test that a 200 produces one success row and no sleep."""
        scheduler, sender, recorder = make_scheduler([200], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.outcome == DeliveryOutcome.DELIVERED
        assert result.attempts == 1
        assert result.last_status == 200
        assert len(sender.calls) == 1
        assert len(recorder.rows) == 1
        assert recorder.rows[0]['success'] is True
        assert recorder.rows[0]['status'] == 200
        assert sleeper.sleeps == []

    @pytest.mark.asyncio
    async def test_any_2xx_is_success(self, notification, sleeper):
        scheduler, _, recorder = make_scheduler([202], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.delivered
        assert recorder.rows[0]['success'] is True

    @pytest.mark.asyncio
    async def test_success_after_retries(self, notification, sleeper):
        """Test that failed attempts are recorded before the final success."""
        scheduler, _, recorder = make_scheduler([503, 503, 200], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.delivered
        assert result.attempts == 3
        assert [row['success'] for row in recorder.rows] == [False, False, True]
        assert sleeper.sleeps == [120, 600]

    @pytest.mark.asyncio
    async def test_row_contents(self, notification, sleeper):
        """Test that each row carries the payload exactly as sent."""
        scheduler, sender, recorder = make_scheduler([200], sleeper=sleeper)

        await scheduler.deliver(CALLBACK_URL, notification)

        row = recorder.rows[0]
        assert row['transaction_id'] == notification.transaction_id
        assert row['event_type'] == 'settlement'
        assert row['data'] == sender.calls[0]['payload']
        assert json.loads(row['data'])['order_id'] == 'order-101'
        assert sender.calls[0]['destination'] == CALLBACK_URL


class TestRetryBudget:
    """Tests for the per-status retry budget."""

    @pytest.mark.asyncio
    async def test_404_gets_one_retry(self, notification, sleeper):
        """Test that 404 allows two attempts with one 2 minute sleep."""
        scheduler, sender, recorder = make_scheduler([404], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.outcome == DeliveryOutcome.GAVE_UP
        assert result.reason == GiveUpReason.RETRY_BUDGET_EXHAUSTED
        assert result.attempts == 2
        assert len(sender.calls) == 2
        assert len(recorder.rows) == 2
        assert sleeper.sleeps == [120]

    @pytest.mark.asyncio
    async def test_400_gets_one_retry(self, notification, sleeper):
        scheduler, sender, _ = make_scheduler([400], sleeper=sleeper)

        await scheduler.deliver(CALLBACK_URL, notification)

        assert len(sender.calls) == 2

    @pytest.mark.asyncio
    async def test_503_gets_three_retries(self, notification, sleeper):
        """Test that 503 allows at most four attempts."""
        scheduler, sender, recorder = make_scheduler([503], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.RETRY_BUDGET_EXHAUSTED
        assert result.attempts == 4
        assert len(sender.calls) == 4
        assert len(recorder.rows) == 4
        assert sleeper.sleeps == [120, 600, 1800]

    @pytest.mark.asyncio
    async def test_default_bucket_uses_whole_schedule(self, notification, sleeper):
        """Test that other statuses get four retries, capped by the schedule."""
        scheduler, sender, recorder = make_scheduler([502], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.outcome == DeliveryOutcome.GAVE_UP
        assert result.attempts == 5
        assert len(sender.calls) == 5
        assert len(recorder.rows) == 5
        assert sleeper.sleeps == [120, 600, 1800, 5400]

    @pytest.mark.asyncio
    async def test_500_is_not_retried(self, notification, sleeper):
        """Test that a first 500 stops after one attempt without sleeping."""
        scheduler, sender, recorder = make_scheduler([500], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.RETRY_BUDGET_EXHAUSTED
        assert result.attempts == 1
        assert len(recorder.rows) == 1
        assert sleeper.sleeps == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [301, 302, 303, 307, 308])
    async def test_redirect_is_not_retried(self, notification, sleeper, status_code):
        scheduler, sender, recorder = make_scheduler([status_code], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.NOT_RETRYABLE
        assert len(sender.calls) == 1
        assert len(recorder.rows) == 1
        assert sleeper.sleeps == []

    @pytest.mark.asyncio
    async def test_budget_assigned_by_first_failure_only(self, notification, sleeper):
        """Test that a later 500 decrements the budget set by the first 503."""
        scheduler, sender, _ = make_scheduler([503, 500, 500, 500], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.attempts == 4
        assert result.last_status == 500
        assert len(sender.calls) == 4

    @pytest.mark.asyncio
    async def test_short_schedule_stops_before_budget(self, notification, sleeper):
        """Test that an exhausted schedule ends delivery with budget left."""
        policy = RetryPolicy(backoff_schedule=(1.0, 2.0))
        scheduler, sender, _ = make_scheduler([502], sleeper=sleeper, policy=policy)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.SCHEDULE_EXHAUSTED
        assert len(sender.calls) == 2
        assert sleeper.sleeps == [1.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("script", [
        [200], [404], [503], [500], [502], [302], [503, 404, 200], [429, 429, 429, 201]
    ])
    async def test_rows_written_equals_attempts_made(self, notification, sleeper, script):
        scheduler, sender, recorder = make_scheduler(script, sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert len(recorder.rows) == len(sender.calls) == result.attempts
        assert len(sender.calls) <= 5


class TestFatalErrors:
    """Tests for errors that end a sequence immediately."""

    @pytest.mark.asyncio
    async def test_transport_error_on_first_attempt(self, notification, sleeper):
        """Test that a network failure is not retried or recorded."""
        error = TransportError(CALLBACK_URL, 'connection refused')
        scheduler, sender, recorder = make_scheduler([error], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.outcome == DeliveryOutcome.GAVE_UP
        assert result.reason == GiveUpReason.TRANSPORT_ERROR
        assert result.error is error
        assert result.attempts == 0
        assert len(sender.calls) == 1
        assert recorder.rows == []
        assert sleeper.sleeps == []

    @pytest.mark.asyncio
    async def test_transport_error_after_retry(self, notification, sleeper):
        """Test that a network failure mid-sequence stops further attempts."""
        error = TransportError(CALLBACK_URL, 'name resolution failed')
        scheduler, sender, recorder = make_scheduler([503, error, 200], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.TRANSPORT_ERROR
        assert result.attempts == 1
        assert len(sender.calls) == 2
        assert len(recorder.rows) == 1

    @pytest.mark.asyncio
    async def test_deadline_error_from_sender(self, notification, sleeper):
        error = DeadlineExceededError(CALLBACK_URL, 'no response')
        scheduler, _, _ = make_scheduler([error], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.DEADLINE_EXCEEDED

    @pytest.mark.asyncio
    async def test_persistence_error_stops_sequence(self, notification, sleeper):
        """Test that a failed history write is not followed by a resend."""
        recorder = FakeRecorder(fail_on_call=2)
        scheduler, sender, _ = make_scheduler([503], recorder=recorder, sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.PERSISTENCE_ERROR
        assert isinstance(result.error, PersistenceError)
        assert len(sender.calls) == 2
        assert len(recorder.rows) == 1
        assert sleeper.sleeps == [120]

    @pytest.mark.asyncio
    async def test_serialization_error_before_send(self, sleeper):
        """Test that an unencodable payload never reaches the network."""
        bad = NotificationRequest(
            transaction_id='tx-1',
            transaction_status='settlement',
            extra={'fee': math.inf}
        )
        scheduler, sender, recorder = make_scheduler([200], sleeper=sleeper)

        result = await scheduler.deliver(CALLBACK_URL, bad)

        assert result.reason == GiveUpReason.SERIALIZATION_ERROR
        assert sender.calls == []
        assert recorder.rows == []


class TestDeadlines:
    """Tests for the per-attempt and overall deadlines."""

    @pytest.mark.asyncio
    async def test_attempt_deadline_passed_to_sender(self, notification, sleeper):
        scheduler, sender, _ = make_scheduler([200], sleeper=sleeper)

        await scheduler.deliver(CALLBACK_URL, notification)

        assert sender.calls[0]['deadline'] == 180

    @pytest.mark.asyncio
    async def test_attempt_deadline_capped_by_remaining_time(self, notification):
        """Test that the per-attempt deadline nests inside the overall one."""
        clock = FakeClock()
        policy = RetryPolicy(
            backoff_schedule=(100.0, 100.0, 100.0),
            attempt_timeout=180.0,
            delivery_deadline=250.0
        )
        scheduler, sender, _ = make_scheduler([502, 502, 200], policy=policy, clock=clock)

        await scheduler.deliver(CALLBACK_URL, notification)

        assert [call['deadline'] for call in sender.calls] == [180.0, 150.0, 50.0]

    @pytest.mark.asyncio
    async def test_gives_up_when_sleep_would_pass_deadline(self, notification):
        clock = FakeClock()
        policy = RetryPolicy(backoff_schedule=(100.0, 200.0, 300.0), delivery_deadline=250.0)
        scheduler, sender, recorder = make_scheduler([502], policy=policy, clock=clock)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.reason == GiveUpReason.DEADLINE_EXCEEDED
        assert isinstance(result.error, DeadlineExceededError)
        assert len(sender.calls) == 2
        assert len(recorder.rows) == 2
        assert clock.now == 100.0

    @pytest.mark.asyncio
    async def test_real_sleep_with_short_schedule(self, notification, fast_policy):
        """Test the default sleep with millisecond backoffs."""
        sender = FakeSender([404, 200])
        recorder = FakeRecorder()
        scheduler = DeliveryScheduler(sender, recorder, policy=fast_policy)

        result = await scheduler.deliver(CALLBACK_URL, notification)

        assert result.delivered
        assert len(recorder.rows) == 2


class TestConcurrentDeliveries:
    """Tests for deliveries that are not coordinated with each other."""

    @pytest.mark.asyncio
    async def test_same_transaction_delivered_twice(self, notification, fast_policy):
        """Test that two concurrent deliveries each record their own success."""
        sender = FakeSender([200])
        recorder = FakeRecorder()
        scheduler = DeliveryScheduler(sender, recorder, policy=fast_policy)

        results = await asyncio.gather(
            scheduler.deliver(CALLBACK_URL, notification),
            scheduler.deliver(CALLBACK_URL, notification)
        )

        assert all(result.delivered for result in results)
        assert len(sender.calls) == 2
        assert len(recorder.rows) == 2
        assert {row['transaction_id'] for row in recorder.rows} == {notification.transaction_id}
