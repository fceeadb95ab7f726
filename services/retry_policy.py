"""
Retry policy for webhook delivery.

Decides how many more attempts a failing delivery gets and how long
to wait between attempts.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from config import WebhookConfig


# 2 min, 10 min, 30 min, 90 min, 3 h 30 min
DEFAULT_BACKOFF_SCHEDULE: Tuple[float, ...] = (120.0, 600.0, 1800.0, 5400.0, 12600.0)

# Retry budget assigned by the first non-2xx status code
DEFAULT_STATUS_BUDGETS: Dict[int, int] = {
    500: 0,
    503: 3,
    400: 1,
    404: 1,
}

REDIRECT_STATUS_CODES: FrozenSet[int] = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry budget and backoff schedule for one delivery sequence.

    The budget is assigned once, from the first failing status code,
    and decremented on every later failure. A sequence never makes more
    attempts than there are entries in the backoff schedule.

    Attributes:
        backoff_schedule: Wait before attempt i+1, in seconds, indexed by i
        attempt_timeout: Deadline for a single send, in seconds
        delivery_deadline: Deadline for the whole sequence, in seconds
        status_budgets: Retry budget per first failing status code
        default_budget: Retry budget for any other non-2xx status
        redirect_status_codes: Statuses that are never retried
    """

    backoff_schedule: Tuple[float, ...] = DEFAULT_BACKOFF_SCHEDULE
    attempt_timeout: float = 180.0
    delivery_deadline: float = 4 * 60 * 60.0
    status_budgets: Dict[int, int] = field(default_factory=lambda: dict(DEFAULT_STATUS_BUDGETS))
    default_budget: int = 4
    redirect_status_codes: FrozenSet[int] = REDIRECT_STATUS_CODES

    def __post_init__(self):
        if not self.backoff_schedule:
            raise ValueError("Backoff schedule must contain at least one delay")
        if any(delay < 0 for delay in self.backoff_schedule):
            raise ValueError("Backoff delays must not be negative")
        if self.attempt_timeout <= 0 or self.delivery_deadline <= 0:
            raise ValueError("Timeouts must be positive")

    @classmethod
    def from_config(cls, webhook_config: WebhookConfig) -> 'RetryPolicy':
        """Build a policy from the webhook configuration section."""
        return cls(
            backoff_schedule=tuple(webhook_config.backoff_schedule),
            attempt_timeout=webhook_config.attempt_timeout,
            delivery_deadline=webhook_config.delivery_deadline
        )

    @property
    def max_attempts(self) -> int:
        return len(self.backoff_schedule)

    @staticmethod
    def is_success(status_code: int) -> bool:
        """Any status up to 299 ends the sequence as delivered."""
        return status_code <= 299

    def initial_budget(self, status_code: int) -> int:
        """
        Retry budget assigned by the first failing status code.

        Redirects are not followed or retried.
        """
        if status_code in self.redirect_status_codes:
            return 0
        return self.status_budgets.get(status_code, self.default_budget)

    def backoff_for(self, attempt_index: int) -> Optional[float]:
        """
        Wait after the attempt at attempt_index (0-based).

        Returns None when no further attempt is allowed.
        """
        if attempt_index + 1 >= self.max_attempts:
            return None
        return self.backoff_schedule[attempt_index]
