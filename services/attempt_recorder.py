"""
Attempt Recorder.

Persists one webhook history row per delivery attempt.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiosqlite
import asyncpg

from database.db import Database
from exceptions import PersistenceError
from models.delivery import WebhookHistoryRecord

logger = logging.getLogger(__name__)


class AttemptRecorder(ABC):
    """Append-only store for delivery attempts."""

    @abstractmethod
    async def record(
        self,
        transaction_id: str,
        event_type: str,
        payload: str,
        success: bool,
        status_code: Optional[int] = None
    ) -> None:
        """
        Write exactly one history row.

        Raises:
            PersistenceError: If the row could not be written
        """


class DatabaseAttemptRecorder(AttemptRecorder):
    """Records attempts in the webhook_history table."""

    def __init__(self, db: Database):
        self.db = db

    async def record(
        self,
        transaction_id: str,
        event_type: str,
        payload: str,
        success: bool,
        status_code: Optional[int] = None
    ) -> None:
        if not self.db.is_connected:
            raise PersistenceError("Database is not connected")

        record = WebhookHistoryRecord(
            transaction_id=transaction_id,
            event_type=event_type,
            data=payload,
            success=success,
            status=status_code
        )

        try:
            await self.db.insert_webhook_history(record)
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            aiosqlite.Error,
            asyncio.TimeoutError,
            OSError
        ) as e:
            raise PersistenceError(
                f"Failed to write webhook history for {transaction_id}: {e}"
            ) from e

        logger.debug(
            f"Recorded webhook attempt for {transaction_id} "
            f"(status={status_code}, success={success})"
        )
