"""
Webhook Delivery Scheduler.

Runs the attempt sequence for one notification: send, record,
evaluate the retry policy, sleep per the backoff schedule, repeat.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from exceptions import (
    DeadlineExceededError,
    NotificationError,
    PersistenceError,
    SerializationError,
)
from models.delivery import DeliveryOutcome, DeliveryResult, GiveUpReason
from models.notification import NotificationRequest
from .attempt_recorder import AttemptRecorder
from .retry_policy import RetryPolicy
from .webhook_sender import NotificationSender

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """
    Delivers a notification to a merchant callback with retries.

    Every attempt that gets an HTTP response is recorded before the
    retry decision is made. Transport, serialization and persistence
    failures end the sequence immediately. Deliveries for the same
    transaction are not coordinated with each other: two concurrent
    calls produce two independent sequences and two sets of history rows.
    """

    def __init__(
        self,
        sender: NotificationSender,
        recorder: AttemptRecorder,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the scheduler.

        Args:
            sender: Sends one payload and reports the status code
            recorder: Persists one history row per attempt
            policy: Retry budget and backoff schedule
            sleep: Coroutine used to wait between attempts
            clock: Monotonic clock used for the delivery deadline
        """
        self.sender = sender
        self.recorder = recorder
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    async def deliver(
        self,
        destination: str,
        notification: NotificationRequest
    ) -> DeliveryResult:
        """
        Run the delivery sequence to completion.

        Args:
            destination: Merchant callback URL
            notification: Payload to deliver

        Returns:
            DeliveryResult; fatal errors are logged and reported in the
            result, never raised
        """
        transaction_id = notification.transaction_id

        try:
            payload_json = notification.to_json()
        except SerializationError as e:
            return self._gave_up(transaction_id, 0, None, GiveUpReason.SERIALIZATION_ERROR, e)

        deadline = self._clock() + self.policy.delivery_deadline
        budget: Optional[int] = None
        attempts = 0
        status_code: Optional[int] = None

        for attempt_index in range(self.policy.max_attempts):
            remaining = deadline - self._clock()
            if remaining <= 0:
                error = DeadlineExceededError(destination, "delivery deadline expired")
                return self._gave_up(
                    transaction_id, attempts, status_code, GiveUpReason.DEADLINE_EXCEEDED, error
                )

            logger.info(
                f"Sending webhook for {notification.short_transaction_id()} "
                f"to {destination} (attempt {attempt_index + 1}/{self.policy.max_attempts})"
            )

            result = await self.sender.send(
                destination,
                payload_json,
                deadline=min(self.policy.attempt_timeout, remaining)
            )

            if result.is_transport_error:
                reason = (
                    GiveUpReason.DEADLINE_EXCEEDED
                    if isinstance(result.error, DeadlineExceededError)
                    else GiveUpReason.TRANSPORT_ERROR
                )
                return self._gave_up(transaction_id, attempts, status_code, reason, result.error)

            attempts += 1
            status_code = result.status_code
            success = self.policy.is_success(status_code)

            try:
                await self.recorder.record(
                    transaction_id,
                    notification.event_type,
                    payload_json,
                    success,
                    status_code=status_code
                )
            except PersistenceError as e:
                return self._gave_up(
                    transaction_id, attempts, status_code, GiveUpReason.PERSISTENCE_ERROR, e
                )

            if success:
                logger.info(
                    f"Webhook for {notification.short_transaction_id()} delivered "
                    f"(status={status_code}, attempts={attempts})"
                )
                return DeliveryResult(
                    outcome=DeliveryOutcome.DELIVERED,
                    attempts=attempts,
                    last_status=status_code
                )

            if budget is None:
                budget = self.policy.initial_budget(status_code)
                if status_code in self.policy.redirect_status_codes:
                    return self._gave_up(
                        transaction_id, attempts, status_code, GiveUpReason.NOT_RETRYABLE
                    )
            else:
                budget -= 1

            if budget <= 0:
                return self._gave_up(
                    transaction_id, attempts, status_code, GiveUpReason.RETRY_BUDGET_EXHAUSTED
                )

            backoff = self.policy.backoff_for(attempt_index)
            if backoff is None:
                break

            if self._clock() + backoff >= deadline:
                error = DeadlineExceededError(
                    destination, f"next attempt in {backoff:.0f}s would pass the delivery deadline"
                )
                return self._gave_up(
                    transaction_id, attempts, status_code, GiveUpReason.DEADLINE_EXCEEDED, error
                )

            logger.warning(
                f"Webhook for {notification.short_transaction_id()} failed with "
                f"status {status_code}, retrying in {backoff:.0f}s ({budget} retries left)"
            )
            await self._sleep(backoff)

        return self._gave_up(
            transaction_id, attempts, status_code, GiveUpReason.SCHEDULE_EXHAUSTED
        )

    def _gave_up(
        self,
        transaction_id: str,
        attempts: int,
        status_code: Optional[int],
        reason: GiveUpReason,
        error: Optional[NotificationError] = None
    ) -> DeliveryResult:
        if error is not None:
            logger.error(
                f"Webhook delivery for {transaction_id} aborted after {attempts} "
                f"attempt(s): {reason.value}: {error.message}"
            )
        else:
            logger.warning(
                f"Giving up webhook delivery for {transaction_id} after {attempts} "
                f"attempt(s): {reason.value} (last status={status_code})"
            )

        return DeliveryResult(
            outcome=DeliveryOutcome.GAVE_UP,
            attempts=attempts,
            last_status=status_code,
            reason=reason,
            error=error
        )
