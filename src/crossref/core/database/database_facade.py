#!/usr/bin/env python3
"""
Database Facade

PostgreSQL implementation of the Repository interface, delegating to one
service per table.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .base import Repository
from .connection_manager import ConnectionManager, PIPELINE_TABLES
from .source_service import SourceService
from .article_service import ArticleService
from .cluster_service import ClusterService
from .task_service import TaskService
from ..models import NewsSource, RawArticle, StoryCluster, Task

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name('schema.sql')


class DatabaseFacade(Repository):
    """Unified database interface using modular services."""

    def __init__(self, config):
        """
        Initialize database facade with configuration.

        Args:
            config: Master Config object (uses config.database)
        """
        self.config = config
        self.connection_manager = ConnectionManager(config.database)

        self.sources = SourceService(self.connection_manager)
        self.articles = ArticleService(self.connection_manager)
        self.clusters = ClusterService(self.connection_manager)
        self.tasks = TaskService(self.connection_manager)

    def apply_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        sql = SCHEMA_PATH.read_text(encoding='utf-8')
        with self.connection_manager.transaction() as cursor:
            cursor.execute(sql)
        logger.info(f"Applied schema from {SCHEMA_PATH.name}")

    # Source operations

    def upsert_source(self, source: NewsSource) -> None:
        self.sources.upsert_source(source)

    def get_source(self, source_id: str) -> Optional[NewsSource]:
        return self.sources.get_source(source_id)

    def list_sources(self, active_only: bool = True) -> List[NewsSource]:
        return self.sources.list_sources(active_only)

    def record_fetch_success(self, source_id: str, fetched_at: datetime) -> None:
        self.sources.record_fetch_success(source_id, fetched_at)

    def record_fetch_failure(self, source_id: str) -> int:
        return self.sources.record_fetch_failure(source_id)

    # Article operations

    def upsert_articles(self, articles: Iterable[RawArticle]) -> List[str]:
        return self.articles.upsert_articles(articles)

    def get_articles(self, article_ids: Iterable[str]) -> List[RawArticle]:
        return self.articles.get_articles(article_ids)

    def get_recent_articles(self, since: datetime, status: Optional[str] = None,
                            source_ids: Optional[Iterable[str]] = None) -> List[RawArticle]:
        return self.articles.get_recent_articles(since, status, source_ids)

    def mark_articles_processed(self, article_ids: Iterable[str]) -> int:
        return self.articles.mark_articles_processed(article_ids)

    def count_articles(self) -> int:
        return self.articles.count_articles()

    # Cluster operations

    def insert_cluster(self, cluster: StoryCluster) -> None:
        self.clusters.insert_cluster(cluster)

    def get_cluster(self, cluster_id: str) -> Optional[StoryCluster]:
        return self.clusters.get_cluster(cluster_id)

    def list_clusters(self, status: Optional[str] = None) -> List[StoryCluster]:
        return self.clusters.list_clusters(status)

    def get_due_rechecks(self, now: datetime) -> List[StoryCluster]:
        return self.clusters.get_due_rechecks(now)

    def save_cluster(self, cluster: StoryCluster, expected_status: str) -> bool:
        return self.clusters.save_cluster(cluster, expected_status)

    # Task operations

    def insert_task(self, task: Task) -> None:
        self.tasks.insert_task(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get_task(task_id)

    def save_task(self, task: Task, expected_status: str) -> bool:
        return self.tasks.save_task(task, expected_status)

    def get_eligible_tasks(self, now: datetime, limit: int = 10) -> List[Task]:
        return self.tasks.get_eligible_tasks(now, limit)

    def get_stale_running_tasks(self, started_before: datetime) -> List[Task]:
        return self.tasks.get_stale_running_tasks(started_before)

    def count_pending_tasks(self) -> int:
        return self.tasks.count_pending_tasks()

    def count_tasks_by_status(self) -> Dict[str, int]:
        return self.tasks.count_tasks_by_status()

    # Health and maintenance

    def health_check(self) -> Dict[str, Any]:
        """Comprehensive database health check with table row counts."""
        health = self.connection_manager.health_check()
        if not health.get('connected'):
            return health

        health['backend'] = 'postgresql'
        health['tables'] = {}
        with self.connection_manager.get_cursor() as cursor:
            for table in PIPELINE_TABLES:
                if table in health['missing_tables']:
                    continue
                cursor.execute(f"SELECT COUNT(*) as count FROM {table}")
                health['tables'][table] = cursor.fetchone()['count']
        return health

    def close(self) -> None:
        """Close database connections."""
        self.connection_manager.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
