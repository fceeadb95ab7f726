"""
Database connection and query module.

Provides a clean interface for database operations with support
for both PostgreSQL and SQLite backends.
"""

import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional

import asyncpg
import aiosqlite

from config import config
from models.delivery import WebhookHistoryRecord

logger = logging.getLogger(__name__)


INSERT_WEBHOOK_HISTORY = """
    INSERT INTO webhook_history
        (transaction_id, event_type, status, data, success, created_at)
    VALUES ($1, $2, $3, $4, $5, $6)
"""


class Database:
    """
    Async database connection manager.

    Supports PostgreSQL (production) and SQLite (development).
    PostgreSQL connections come from a pool and are held only for the
    duration of a single query or transaction. SQLite uses one
    connection with writes serialized behind a lock.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None
    ):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. Uses config if not provided.
            pool_min_size: Minimum PostgreSQL pool size
            pool_max_size: Maximum PostgreSQL pool size
        """
        self.database_url = database_url or config.database.url
        self.pool_min_size = config.database.pool_min_size if pool_min_size is None else pool_min_size
        self.pool_max_size = config.database.pool_max_size if pool_max_size is None else pool_max_size
        self._pool = None
        self._sqlite_conn = None
        self._sqlite_lock: Optional[asyncio.Lock] = None
        self._is_postgres = self.database_url.startswith(('postgresql', 'postgres'))

    @property
    def is_connected(self) -> bool:
        """Check whether connect() has been called."""
        return self._pool is not None or self._sqlite_conn is not None

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row
            self._sqlite_lock = asyncio.Lock()

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None
            self._sqlite_lock = None

        logger.info("Database connection closed")

    async def ping(self) -> None:
        """
        Check that the database answers a trivial query.

        Raises:
            Driver errors if the database is unreachable
        """
        await self.fetch_one("SELECT 1 AS ok")

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        else:
            # Convert $1, $2 style params to ? for SQLite
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            row = await cursor.fetchone()
            if row:
                columns = [d[0] for d in cursor.description]
                return dict(zip(columns, row))
            return None

    async def fetch_all(self, query: str, *args) -> List[Dict[str, Any]]:
        """
        Execute a query and fetch all rows.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            List of rows as dictionaries
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
        else:
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            rows = await cursor.fetchall()
            if rows:
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in rows]
            return []

    def _convert_params(self, query: str) -> str:
        """Convert PostgreSQL $1, $2 style params to SQLite ? style."""
        return re.sub(r'\$\d+', '?', query)

    async def init_schema(self) -> None:
        """
        Initialize database schema from schema.sql file.

        All statements run in a single transaction; a failure rolls
        back the whole migration and is raised to the caller.
        """
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            schema = f.read()

        # Drop comment lines, then split by semicolons
        schema = '\n'.join(
            line for line in schema.splitlines()
            if not line.strip().startswith('--')
        )
        statements = [s.strip() for s in schema.split(';') if s.strip()]

        if self._is_postgres:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    for statement in statements:
                        await conn.execute(statement)
        else:
            async with self._sqlite_lock:
                try:
                    await self._sqlite_conn.execute('BEGIN')
                    for statement in statements:
                        statement = statement.replace('SERIAL PRIMARY KEY', 'INTEGER PRIMARY KEY')
                        await self._sqlite_conn.execute(statement)
                    await self._sqlite_conn.commit()
                except Exception:
                    await self._sqlite_conn.rollback()
                    raise

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Webhook History Operations
    # -------------------------------------------------------------------------

    async def insert_webhook_history(self, record: WebhookHistoryRecord) -> None:
        """
        Append one webhook history row inside its own transaction.

        Args:
            record: History record to write
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        INSERT_WEBHOOK_HISTORY,
                        record.transaction_id, record.event_type, record.status,
                        record.data, record.success, record.created_at
                    )
        else:
            async with self._sqlite_lock:
                try:
                    await self._sqlite_conn.execute(
                        self._convert_params(INSERT_WEBHOOK_HISTORY),
                        (
                            record.transaction_id, record.event_type, record.status,
                            record.data, record.success, record.created_at.isoformat()
                        )
                    )
                    await self._sqlite_conn.commit()
                except Exception:
                    await self._sqlite_conn.rollback()
                    raise

    async def get_webhook_history(self, transaction_id: str) -> List[WebhookHistoryRecord]:
        """Get all history rows for a transaction, oldest first."""
        rows = await self.fetch_all(
            """
            SELECT transaction_id, event_type, status, data, success, created_at
            FROM webhook_history
            WHERE transaction_id = $1
            ORDER BY id
            """,
            transaction_id
        )
        return [WebhookHistoryRecord.from_dict(row) for row in rows]

    async def count_webhook_history(self, transaction_id: Optional[str] = None) -> int:
        """Count history rows, optionally for a single transaction."""
        if transaction_id is None:
            result = await self.fetch_one("SELECT COUNT(*) AS total FROM webhook_history")
        else:
            result = await self.fetch_one(
                "SELECT COUNT(*) AS total FROM webhook_history WHERE transaction_id = $1",
                transaction_id
            )
        return int(result['total']) if result else 0


# Global database instance
_db: Optional[Database] = None


async def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        db = Database()
        await db.connect()
        _db = db
    return _db


async def close_db() -> None:
    """Close the global database connection."""
    global _db
    if _db is not None:
        await _db.disconnect()
        _db = None
