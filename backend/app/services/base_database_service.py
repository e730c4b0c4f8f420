"""
Base Database Service Module

Shared SQLite plumbing for the publication store and the AI gateway
configuration store. Both live in the same database file.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.getenv("SPACEBIO_DB_PATH", "data/space_biology.db")


class BaseDatabaseService:
    """
    Connection handling and query helpers for SQLite-backed services.

    Read helpers log and return None on failure so callers can degrade
    (an empty search result, a chat answer without context) instead of
    failing the request.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        data_dir = os.path.dirname(db_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection with rows addressable by column name."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        try:
            with self.get_connection() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Database query error: {e}")
            return None

    def fetch_all(self, query: str, params: tuple = ()) -> Optional[list[sqlite3.Row]]:
        """
        Run a SELECT and return every row.

        Returns:
            Rows, or None if the query failed
        """
        try:
            with self.get_connection() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Database query error: {e}")
            return None

    def execute_write(self, query: str, params: tuple = ()) -> Optional[int]:
        """
        Run a single INSERT, UPDATE or DELETE and commit it.

        Returns:
            Number of affected rows, or None if the statement failed
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Database write error: {e}")
            return None

    def execute_many(self, query: str, rows: list[tuple]) -> Optional[int]:
        """
        Run one parameterized statement per row inside a single transaction.

        Returns:
            Number of rows written, or None if the batch was rolled back
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.executemany(query, rows)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Database batch error: {e}")
            return None

    @staticmethod
    def format_timestamp_iso(timestamp: Optional[str]) -> Optional[str]:
        # SQLite CURRENT_TIMESTAMP is UTC: "2025-10-05 11:08:40" -> "2025-10-05T11:08:40Z"
        if not timestamp:
            return timestamp
        return timestamp.replace(" ", "T") + "Z"
