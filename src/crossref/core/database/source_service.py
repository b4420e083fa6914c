#!/usr/bin/env python3
"""
Source Database Service

Handles database operations on configured news sources.
"""

import logging
from datetime import datetime
from typing import List, Optional

import psycopg

from ..exceptions import DatabaseOperationError
from ..models import NewsSource

logger = logging.getLogger(__name__)

SOURCE_COLUMNS = """
    id, name, feed_url, country, language, credibility_score, political_leaning,
    tier, cross_reference_required, is_active, last_fetched_at, error_count
"""


class SourceService:
    """Service for news-source database operations."""

    def __init__(self, connection_manager):
        self.connection_manager = connection_manager

    def upsert_source(self, source: NewsSource) -> None:
        """Insert or update a source; fetch bookkeeping columns are left alone on update."""
        try:
            with self.connection_manager.get_cursor() as cursor:
                cursor.execute("""
                    INSERT INTO news_sources (id, name, feed_url, country, language, credibility_score,
                                              political_leaning, tier, cross_reference_required, is_active)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        feed_url = EXCLUDED.feed_url,
                        country = EXCLUDED.country,
                        language = EXCLUDED.language,
                        credibility_score = EXCLUDED.credibility_score,
                        political_leaning = EXCLUDED.political_leaning,
                        tier = EXCLUDED.tier,
                        cross_reference_required = EXCLUDED.cross_reference_required,
                        is_active = EXCLUDED.is_active
                """, (
                    source.id, source.name, source.feed_url, source.country, source.language,
                    source.credibility_score, source.political_leaning, source.tier,
                    source.cross_reference_required, source.is_active
                ))
        except psycopg.Error as e:
            raise DatabaseOperationError('upsert', 'news_sources', e) from e

    def get_source(self, source_id: str) -> Optional[NewsSource]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"SELECT {SOURCE_COLUMNS} FROM news_sources WHERE id = %s", (source_id,))
            row = cursor.fetchone()
            return NewsSource.from_dict(row) if row else None

    def list_sources(self, active_only: bool = True) -> List[NewsSource]:
        query = f"SELECT {SOURCE_COLUMNS} FROM news_sources"
        if active_only:
            query += " WHERE is_active"
        query += " ORDER BY position"
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(query)
            return [NewsSource.from_dict(row) for row in cursor.fetchall()]

    def record_fetch_success(self, source_id: str, fetched_at: datetime) -> None:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("""
                UPDATE news_sources SET last_fetched_at = %s, error_count = 0 WHERE id = %s
            """, (fetched_at, source_id))

    def record_fetch_failure(self, source_id: str) -> int:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("""
                UPDATE news_sources SET error_count = error_count + 1
                WHERE id = %s
                RETURNING error_count
            """, (source_id,))
            row = cursor.fetchone()
            return row['error_count'] if row else 0
