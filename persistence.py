"""
persistence.py
Handles the SQLite database that durably stores the account collection.

The whole collection is packed and compressed by the ledger codec and
written as a single value, so one write either replaces the previous
collection entirely or leaves it untouched.

Implements the IAccountRepository interface.
"""

import asyncio
import logging
import sqlite3
from typing import Any, Callable, List, Optional, Protocol, Sequence

from ledger import Account, decode_accounts, encode_accounts

logger = logging.getLogger(__name__)

ACCOUNTS_KEY = "trading_accounts_v1"


# --------------------------- Interfaces / Ports (SOLID) ---------------------------

class IAccountRepository(Protocol):
    """Interface for the persistence layer holding every account and its trades."""

    async def load_accounts(self) -> List[Account]:
        """Reads the stored collection. An empty store yields an empty list."""
        ...

    async def save_accounts(self, accounts: Sequence[Account]) -> None:
        """Atomically replaces the stored collection."""
        ...


# --------------------------- Adapters / Implementation ---------------------------

class SQLiteAccountRepository(IAccountRepository):
    """
    SQLite implementation of the account repository.
    All blocking SQLite operations run in asyncio's default thread pool.
    """

    def __init__(self, db_path: str = "atlas.db"):
        self._db_path = db_path
        logger.info(f"Persistence service will use database: {db_path}")
        self._initialize_db()  # Run init synchronously

    async def _run_in_executor(self, blocking_func: Callable[..., Any], *args: Any) -> Any:
        """Runs a blocking function in asyncio's default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, blocking_func, *args)

    def _connect(self) -> sqlite3.Connection:
        """
        Creates a new database connection.
        Each blocking task will create its own.
        """
        # Add a 10-second timeout to wait for locks
        conn = sqlite3.connect(self._db_path, timeout=10.0)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _initialize_db(self):
        """Creates the key/value table if it doesn't exist."""
        create_store_sql = """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """
        conn = None
        try:
            conn = self._connect()
            conn.execute(create_store_sql)
            conn.commit()
            logger.info("Database initialized.")
        finally:
            if conn: conn.close()

    def _db_read(self, key: str) -> Optional[bytes]:
        conn = None
        try:
            conn = self._connect()
            cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?;", (key,))
            row = cursor.fetchone()
            if row is None:
                return None
            value = row[0]
            # Rows written by older versions hold TEXT, not BLOB
            return value.encode("utf-8") if isinstance(value, str) else bytes(value)
        finally:
            if conn: conn.close()

    def _db_write(self, key: str, value: bytes) -> None:
        sql = """
        INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
        """
        conn = None
        try:
            conn = self._connect()
            with conn:  # commits on success, rolls back on error
                conn.execute(sql, (key, sqlite3.Binary(value)))
        finally:
            if conn: conn.close()

    async def load_accounts(self) -> List[Account]:
        try:
            payload = await self._run_in_executor(self._db_read, ACCOUNTS_KEY)
        except sqlite3.Error as e:
            logger.exception(f"Failed to read stored accounts: {e}")
            raise
        if payload is None:
            logger.info("No stored accounts yet.")
            return []

        accounts = decode_accounts(payload)
        logger.info(f"Loaded {len(accounts)} account(s) from storage.")
        return accounts

    async def save_accounts(self, accounts: Sequence[Account]) -> None:
        payload = encode_accounts(accounts)
        try:
            await self._run_in_executor(self._db_write, ACCOUNTS_KEY, payload)
        except sqlite3.Error as e:
            logger.exception(f"Failed to persist accounts: {e}")
            raise
        logger.info(f"Persisted {len(accounts)} account(s) ({len(payload)} bytes compressed).")
