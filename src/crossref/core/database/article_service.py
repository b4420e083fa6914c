#!/usr/bin/env python3
"""
Article Database Service

Handles all database operations related to raw articles.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import psycopg
from psycopg.types.json import Jsonb

from ..exceptions import DatabaseOperationError
from ..models import RawArticle, ArticleStatus
from ..time_utils import utc_now

logger = logging.getLogger(__name__)

ARTICLE_COLUMNS = """
    id, source_id, title, url, description, content, author, published_at,
    guid, categories, quality_score, status, fetched_at
"""


class ArticleService:
    """Service for article-related database operations."""

    def __init__(self, connection_manager):
        """
        Initialize article service.

        Args:
            connection_manager: Database connection manager instance
        """
        self.connection_manager = connection_manager

    def upsert_articles(self, articles: Iterable[RawArticle]) -> List[str]:
        """
        Store articles, absorbing duplicates on (source_id, url).

        Args:
            articles: RawArticle objects

        Returns:
            Ids of newly inserted rows
        """
        articles = list(articles)
        if not articles:
            return []

        new_ids = []
        try:
            with self.connection_manager.get_cursor() as cursor:
                for article in articles:
                    cursor.execute("""
                        INSERT INTO raw_articles (id, source_id, title, url, description, content, author,
                                                  published_at, guid, categories, quality_score, status, fetched_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT DO NOTHING
                        RETURNING id
                    """, (
                        article.id, article.source_id, article.title, article.url, article.description,
                        article.content, article.author, article.published_at, article.guid,
                        Jsonb(list(article.categories)), article.quality_score, article.status,
                        article.fetched_at or utc_now()
                    ))
                    row = cursor.fetchone()
                    if row:
                        new_ids.append(row['id'])
        except psycopg.Error as e:
            raise DatabaseOperationError('insert', 'raw_articles', e) from e

        logger.info(f"Stored {len(new_ids)} new articles out of {len(articles)} provided")
        return new_ids

    def get_articles(self, article_ids: Iterable[str]) -> List[RawArticle]:
        ids = list(article_ids)
        if not ids:
            return []
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"SELECT {ARTICLE_COLUMNS} FROM raw_articles WHERE id = ANY(%s)", (ids,))
            by_id = {row['id']: RawArticle.from_dict(row) for row in cursor.fetchall()}
        return [by_id[a] for a in ids if a in by_id]

    def get_recent_articles(self, since: datetime, status: Optional[str] = None,
                            source_ids: Optional[Iterable[str]] = None) -> List[RawArticle]:
        conditions = ["fetched_at >= %s"]
        params: list = [since]
        if status is not None:
            conditions.append("status = %s")
            params.append(status)
        if source_ids is not None:
            conditions.append("source_id = ANY(%s)")
            params.append(list(source_ids))

        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"""
                SELECT {ARTICLE_COLUMNS}
                FROM raw_articles
                WHERE {' AND '.join(conditions)}
                ORDER BY COALESCE(published_at, fetched_at) DESC, id DESC
            """, params)
            return [RawArticle.from_dict(row) for row in cursor.fetchall()]

    def mark_articles_processed(self, article_ids: Iterable[str]) -> int:
        ids = list(article_ids)
        if not ids:
            return 0
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("""
                UPDATE raw_articles SET status = %s
                WHERE id = ANY(%s) AND status = %s
            """, (ArticleStatus.PROCESSED, ids, ArticleStatus.PENDING))
            return cursor.rowcount

    def count_articles(self) -> int:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) as count FROM raw_articles")
            result = cursor.fetchone()
            return result['count'] if result else 0
