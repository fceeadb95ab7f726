"""
Exception hierarchy for webhook delivery.

Fatal delivery errors all inherit from NotificationError so the
scheduler can stop a delivery sequence with a single except clause.
Non-2xx responses are not exceptions: they go through the retry policy.
"""

from typing import Any, Dict


class NotificationError(Exception):
    """
    Base exception for notification delivery errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
    """

    code: str = "notification_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a loggable dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class SerializationError(NotificationError):
    """The notification payload could not be encoded as JSON."""

    code = "serialization_error"


class TransportError(NotificationError):
    """
    Network-level failure talking to the callback endpoint.

    Raised for DNS failures, refused connections and timeouts. Never
    retried.

    Attributes:
        destination: URL that could not be reached
    """

    code = "transport_error"

    def __init__(self, destination: str, message: str):
        self.destination = destination
        super().__init__(f"{destination}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error"]["destination"] = self.destination
        return data


class DeadlineExceededError(TransportError):
    """The per-attempt or overall delivery deadline expired."""

    code = "deadline_exceeded"


class PersistenceError(NotificationError):
    """Writing a webhook history record failed."""

    code = "persistence_error"
