#!/usr/bin/env python3
"""
In-memory repository.

Used when no DATABASE_URL is configured and throughout the test suite.
Same semantics as the PostgreSQL facade: idempotent article upserts and
compare-and-set status writes.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .base import Repository
from ..models import (
    NewsSource, RawArticle, StoryCluster, Task,
    ArticleStatus, ClusterStatus, TaskStatus,
)
from ..time_utils import utc_now

logger = logging.getLogger(__name__)


class MemoryRepository(Repository):
    """Lock-protected dictionaries that hand out copies only."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sources: Dict[str, NewsSource] = {}
        self._articles: Dict[str, RawArticle] = {}
        self._clusters: Dict[str, StoryCluster] = {}
        self._tasks: Dict[str, Task] = {}

    # Sources

    def upsert_source(self, source: NewsSource) -> None:
        with self._lock:
            existing = self._sources.get(source.id)
            stored = copy.deepcopy(source)
            if existing is not None:
                stored.last_fetched_at = existing.last_fetched_at
                stored.error_count = existing.error_count
            self._sources[source.id] = stored

    def get_source(self, source_id: str) -> Optional[NewsSource]:
        with self._lock:
            source = self._sources.get(source_id)
            return copy.deepcopy(source) if source else None

    def list_sources(self, active_only: bool = True) -> List[NewsSource]:
        with self._lock:
            return [copy.deepcopy(s) for s in self._sources.values() if s.is_active or not active_only]

    def record_fetch_success(self, source_id: str, fetched_at: datetime) -> None:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return
            source.last_fetched_at = fetched_at
            source.error_count = 0

    def record_fetch_failure(self, source_id: str) -> int:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return 0
            source.error_count += 1
            return source.error_count

    # Articles

    def upsert_articles(self, articles: Iterable[RawArticle]) -> List[str]:
        new_ids = []
        with self._lock:
            for article in articles:
                if article.id in self._articles:
                    continue
                stored = copy.deepcopy(article)
                if stored.fetched_at is None:
                    stored.fetched_at = utc_now()
                self._articles[stored.id] = stored
                new_ids.append(stored.id)
        logger.debug(f"Stored {len(new_ids)} new articles")
        return new_ids

    def get_articles(self, article_ids: Iterable[str]) -> List[RawArticle]:
        with self._lock:
            return [copy.deepcopy(self._articles[a]) for a in article_ids if a in self._articles]

    def get_recent_articles(self, since: datetime, status: Optional[str] = None,
                            source_ids: Optional[Iterable[str]] = None) -> List[RawArticle]:
        wanted_sources = set(source_ids) if source_ids is not None else None
        with self._lock:
            matches = [
                a for a in self._articles.values()
                if (a.fetched_at or since) >= since
                and (status is None or a.status == status)
                and (wanted_sources is None or a.source_id in wanted_sources)
            ]
            matches.sort(key=lambda a: (a.published_at or a.fetched_at or since, a.id), reverse=True)
            return [copy.deepcopy(a) for a in matches]

    def mark_articles_processed(self, article_ids: Iterable[str]) -> int:
        updated = 0
        with self._lock:
            for article_id in article_ids:
                article = self._articles.get(article_id)
                if article and article.status == ArticleStatus.PENDING:
                    article.status = ArticleStatus.PROCESSED
                    updated += 1
        return updated

    def count_articles(self) -> int:
        with self._lock:
            return len(self._articles)

    # Clusters

    def insert_cluster(self, cluster: StoryCluster) -> None:
        with self._lock:
            if cluster.id in self._clusters:
                raise ValueError(f"Cluster {cluster.id} already exists")
            self._clusters[cluster.id] = copy.deepcopy(cluster)

    def get_cluster(self, cluster_id: str) -> Optional[StoryCluster]:
        with self._lock:
            cluster = self._clusters.get(cluster_id)
            return copy.deepcopy(cluster) if cluster else None

    def list_clusters(self, status: Optional[str] = None) -> List[StoryCluster]:
        with self._lock:
            clusters = [c for c in self._clusters.values() if status is None or c.status == status]
            clusters.sort(key=lambda c: c.created_at, reverse=True)
            return [copy.deepcopy(c) for c in clusters]

    def get_due_rechecks(self, now: datetime) -> List[StoryCluster]:
        with self._lock:
            due = [
                c for c in self._clusters.values()
                if c.status == ClusterStatus.DETECTING
                and c.next_recheck_at is not None
                and c.next_recheck_at <= now
            ]
            due.sort(key=lambda c: c.next_recheck_at)
            return [copy.deepcopy(c) for c in due]

    def save_cluster(self, cluster: StoryCluster, expected_status: str) -> bool:
        with self._lock:
            stored = self._clusters.get(cluster.id)
            if stored is None or stored.status != expected_status or stored.version != cluster.version:
                return False
            cluster.version += 1
            cluster.updated_at = utc_now()
            self._clusters[cluster.id] = copy.deepcopy(cluster)
            return True

    # Tasks

    def insert_task(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.id] = copy.deepcopy(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def save_task(self, task: Task, expected_status: str) -> bool:
        with self._lock:
            stored = self._tasks.get(task.id)
            if stored is None or stored.status != expected_status:
                return False
            self._tasks[task.id] = copy.deepcopy(task)
            return True

    def get_eligible_tasks(self, now: datetime, limit: int = 10) -> List[Task]:
        with self._lock:
            eligible = sorted(
                (t for t in self._tasks.values() if t.is_eligible(now)),
                key=Task.sort_key
            )
            return [copy.deepcopy(t) for t in eligible[:limit]]

    def get_stale_running_tasks(self, started_before: datetime) -> List[Task]:
        with self._lock:
            stale = sorted(
                (t for t in self._tasks.values()
                 if t.status == TaskStatus.RUNNING and t.started_at is not None and t.started_at < started_before),
                key=lambda t: t.started_at
            )
            return [copy.deepcopy(t) for t in stale]

    def count_pending_tasks(self) -> int:
        with self._lock:
            return sum(1 for t in self._tasks.values() if t.status == TaskStatus.PENDING)

    def count_tasks_by_status(self) -> Dict[str, int]:
        counts = {status: 0 for status in TaskStatus.ALL}
        with self._lock:
            for task in self._tasks.values():
                counts[task.status] += 1
        return counts

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'connected': True,
                'backend': 'memory',
                'tables': {
                    'news_sources': len(self._sources),
                    'raw_articles': len(self._articles),
                    'story_clusters': len(self._clusters),
                    'tasks': len(self._tasks)
                }
            }
