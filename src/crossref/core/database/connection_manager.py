#!/usr/bin/env python3
"""
PostgreSQL connection handling for the pipeline store.

One autocommit connection per process. Every cursor checks the connection
first and reconnects when the server dropped it; the initial connect is
retried with exponential backoff before giving up.
"""

import logging
import time
import psycopg
from psycopg.rows import dict_row
from typing import Optional, Dict, Any, List
from contextlib import contextmanager

from ..exceptions import DatabaseConnectionError, ErrorRecovery

logger = logging.getLogger(__name__)

PIPELINE_TABLES = ['news_sources', 'raw_articles', 'story_clusters', 'tasks']


class ConnectionManager:
    """Owns the psycopg connection used by every database service."""

    def __init__(self, config, sleep=time.sleep):
        """
        Args:
            config: DatabaseConfig with database_url, connection_timeout and max_retries
            sleep: Blocking sleep used between connect attempts
        """
        self.config = config
        self._sleep = sleep
        self.connection: Optional[psycopg.Connection] = None
        self._connect_with_retry()

    def _connect_with_retry(self) -> None:
        attempts = max(1, self.config.max_retries)
        for attempt in range(attempts):
            try:
                self._connect()
                return
            except DatabaseConnectionError:
                if attempt == attempts - 1:
                    raise
                delay = ErrorRecovery.get_retry_delay(attempt + 1)
                logger.warning(f"Database connect attempt {attempt + 1}/{attempts} failed, retrying in {delay:.0f}s")
                self._sleep(delay)

    def _connect(self) -> None:
        try:
            self.connection = psycopg.connect(
                self.config.database_url,
                row_factory=dict_row,
                autocommit=True,
                connect_timeout=self.config.connection_timeout
            )
        except psycopg.Error as e:
            raise DatabaseConnectionError('psycopg', e) from e
        logger.debug("Database connection established")

    def _ensure_alive(self) -> None:
        if self.connection is None or self.connection.closed:
            self._connect()
            return
        try:
            self.connection.execute("SELECT 1")
        except psycopg.OperationalError:
            logger.warning("Database connection dropped, reconnecting")
            self._connect()

    @contextmanager
    def get_cursor(self):
        """Yield a dict-row cursor on a live connection."""
        self._ensure_alive()
        with self.connection.cursor() as cursor:
            yield cursor

    @contextmanager
    def transaction(self):
        """Yield a cursor whose statements commit or roll back together."""
        self._ensure_alive()
        with self.connection.transaction():
            with self.connection.cursor() as cursor:
                yield cursor

    def missing_tables(self) -> List[str]:
        """Pipeline tables not present in the public schema."""
        with self.get_cursor() as cursor:
            cursor.execute(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = 'public' AND table_name = ANY(%s)",
                (PIPELINE_TABLES,)
            )
            present = {row['table_name'] for row in cursor.fetchall()}
        return [table for table in PIPELINE_TABLES if table not in present]

    def close(self) -> None:
        if self.connection and not self.connection.closed:
            self.connection.close()
            logger.debug("Database connection closed")

    def health_check(self) -> Dict[str, Any]:
        """
        Report server version and schema completeness.

        Returns:
            Dict with 'connected' plus either 'version' and 'missing_tables'
            or 'error'
        """
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT version() AS version")
                version = cursor.fetchone()['version']
            return {
                'connected': True,
                'version': version,
                'missing_tables': self.missing_tables()
            }
        except (psycopg.Error, DatabaseConnectionError) as e:
            logger.error(f"Database health check failed: {e}")
            return {'connected': False, 'error': str(e)}
