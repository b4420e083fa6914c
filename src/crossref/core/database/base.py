#!/usr/bin/env python3
"""
Repository interface.

The repository is the single source of truth for sources, articles,
clusters and tasks. Implementations never hand out shared writable
objects: every read returns a fresh copy, and status-changing writes are
compare-and-set against the caller's expected status.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..models import NewsSource, RawArticle, StoryCluster, Task


class Repository(ABC):
    """Durable store used by every pipeline component."""

    # Sources

    @abstractmethod
    def upsert_source(self, source: NewsSource) -> None:
        """Insert or update configuration fields, preserving fetch bookkeeping."""

    @abstractmethod
    def get_source(self, source_id: str) -> Optional[NewsSource]:
        pass

    @abstractmethod
    def list_sources(self, active_only: bool = True) -> List[NewsSource]:
        """Sources in configuration order."""

    @abstractmethod
    def record_fetch_success(self, source_id: str, fetched_at: datetime) -> None:
        """Stamp last-fetched time and reset the error counter."""

    @abstractmethod
    def record_fetch_failure(self, source_id: str) -> int:
        """Increment the error counter and return the new value."""

    # Articles

    @abstractmethod
    def upsert_articles(self, articles: Iterable[RawArticle]) -> List[str]:
        """
        Insert articles keyed by (source id, URL).

        Existing rows are left untouched; duplicates are absorbed silently.

        Returns:
            Ids of the articles that were newly inserted
        """

    @abstractmethod
    def get_articles(self, article_ids: Iterable[str]) -> List[RawArticle]:
        """Articles for the given ids, in the order requested; unknown ids are skipped."""

    @abstractmethod
    def get_recent_articles(self, since: datetime, status: Optional[str] = None,
                            source_ids: Optional[Iterable[str]] = None) -> List[RawArticle]:
        """Articles fetched since a cutoff, newest first."""

    @abstractmethod
    def mark_articles_processed(self, article_ids: Iterable[str]) -> int:
        pass

    @abstractmethod
    def count_articles(self) -> int:
        pass

    # Clusters

    @abstractmethod
    def insert_cluster(self, cluster: StoryCluster) -> None:
        pass

    @abstractmethod
    def get_cluster(self, cluster_id: str) -> Optional[StoryCluster]:
        pass

    @abstractmethod
    def list_clusters(self, status: Optional[str] = None) -> List[StoryCluster]:
        pass

    @abstractmethod
    def get_due_rechecks(self, now: datetime) -> List[StoryCluster]:
        """Clusters still detecting whose recheck time has elapsed."""

    @abstractmethod
    def save_cluster(self, cluster: StoryCluster, expected_status: str) -> bool:
        """
        Compare-and-set write.

        Applies only if the stored row still has `expected_status` and the
        same version the caller read. Bumps the version on success.

        Returns:
            True if the write was applied
        """

    # Tasks

    @abstractmethod
    def insert_task(self, task: Task) -> None:
        pass

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    def save_task(self, task: Task, expected_status: str) -> bool:
        """Compare-and-set write keyed on the stored task status."""

    @abstractmethod
    def get_eligible_tasks(self, now: datetime, limit: int = 10) -> List[Task]:
        """Pending tasks due by `now`, ordered by priority then schedule time."""

    @abstractmethod
    def get_stale_running_tasks(self, started_before: datetime) -> List[Task]:
        """Running tasks claimed before `started_before`, oldest first."""

    @abstractmethod
    def count_pending_tasks(self) -> int:
        """Pending tasks regardless of schedule time."""

    @abstractmethod
    def count_tasks_by_status(self) -> Dict[str, int]:
        pass

    # Diagnostics

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        pass

    def close(self) -> None:
        """Release resources held by the repository."""
