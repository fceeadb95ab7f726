"""
Configuration module for Payment Notification Webhooks service.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


SUPPORTED_DATABASE_SCHEMES = ('postgresql://', 'postgres://', 'sqlite:///')


@dataclass
class CallbackConfig:
    """Merchant callback destination."""
    url: str


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    url: str
    pool_min_size: int = 2
    pool_max_size: int = 20


@dataclass
class WebhookConfig:
    """Webhook delivery configuration."""
    timeout: float
    attempt_timeout: float
    delivery_deadline: float
    backoff_schedule: List[float]  # Delays in seconds


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass
class ServiceConfig:
    """Service-level configuration."""
    name: str


def _parse_schedule(value: str) -> List[float]:
    """Parse a comma separated list of delays in seconds."""
    return [float(d.strip()) for d in value.split(',') if d.strip()]


class Config:
    """
    Main configuration class that aggregates all config sections.

    Usage:
        from config import config

        print(config.callback.url)
        print(config.webhook.backoff_schedule)
    """

    def __init__(self):
        self._load_config()

    def _load_config(self):
        """Load all configuration from environment variables."""

        # Callback configuration
        self.callback = CallbackConfig(
            url=os.getenv('CALLBACK_URL', 'http://localhost')
        )

        # Database configuration
        self.database = DatabaseConfig(
            url=os.getenv('DATABASE_URL', 'sqlite:///./database.db'),
            pool_min_size=int(os.getenv('DATABASE_POOL_MIN_SIZE', '2')),
            pool_max_size=int(os.getenv('DATABASE_POOL_MAX_SIZE', '20'))
        )

        # Webhook configuration
        self.webhook = WebhookConfig(
            timeout=float(os.getenv('WEBHOOK_TIMEOUT', '20')),
            attempt_timeout=float(os.getenv('WEBHOOK_ATTEMPT_TIMEOUT', '180')),
            delivery_deadline=float(os.getenv('WEBHOOK_DELIVERY_DEADLINE', '14400')),
            backoff_schedule=_parse_schedule(
                os.getenv('WEBHOOK_BACKOFF_SCHEDULE', '120,600,1800,5400,12600')
            )
        )

        # Logging configuration
        self.logging = LoggingConfig(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            file=os.getenv('LOG_FILE')
        )

        # Service configuration
        self.service = ServiceConfig(
            name=os.getenv('SERVICE_NAME', 'PaymentNotificationWebhooks')
        )

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.callback.url.startswith(('http://', 'https://')):
            errors.append("CALLBACK_URL must be a valid HTTP(S) URL")

        if not self.database.url:
            errors.append("DATABASE_URL is required")
        elif not self.database.url.startswith(SUPPORTED_DATABASE_SCHEMES):
            errors.append("DATABASE_URL must be a postgresql:// or sqlite:/// URL")

        if self.database.pool_min_size > self.database.pool_max_size:
            errors.append("DATABASE_POOL_MIN_SIZE must not exceed DATABASE_POOL_MAX_SIZE")

        if not self.webhook.backoff_schedule:
            errors.append("WEBHOOK_BACKOFF_SCHEDULE must contain at least one delay")
        elif any(delay < 0 for delay in self.webhook.backoff_schedule):
            errors.append("WEBHOOK_BACKOFF_SCHEDULE delays must not be negative")

        if self.webhook.timeout <= 0:
            errors.append("WEBHOOK_TIMEOUT must be positive")

        if self.webhook.attempt_timeout <= 0:
            errors.append("WEBHOOK_ATTEMPT_TIMEOUT must be positive")

        if self.webhook.delivery_deadline <= 0:
            errors.append("WEBHOOK_DELIVERY_DEADLINE must be positive")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
config = Config()
