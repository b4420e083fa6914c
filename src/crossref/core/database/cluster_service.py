#!/usr/bin/env python3
"""
Cluster Database Service

Story cluster persistence. Updates are compare-and-set on (status, version)
so two workers touching the same cluster can never both apply a transition.
"""

import logging
from datetime import datetime
from typing import List, Optional

import psycopg
from psycopg.types.json import Jsonb

from ..exceptions import DatabaseOperationError
from ..models import StoryCluster, ClusterStatus
from ..time_utils import utc_now

logger = logging.getLogger(__name__)

CLUSTER_COLUMNS = """
    id, topic, keywords, article_ids, status, trigger_article_id, sources_found, sources_missing,
    candidate_article_ids, matched_article_ids, similarity_threshold, recheck_attempts, max_recheck_attempts,
    next_recheck_at, corroboration_score, recommendation, failure_reason, confidence_score,
    time_period_start, time_period_end, synthesis, version, created_at, updated_at
"""


def _cluster_params(cluster: StoryCluster) -> dict:
    return {
        'id': cluster.id,
        'topic': cluster.topic,
        'keywords': Jsonb(list(cluster.keywords)),
        'article_ids': Jsonb(list(cluster.article_ids)),
        'status': cluster.status,
        'trigger_article_id': cluster.trigger_article_id,
        'sources_found': Jsonb(list(cluster.sources_found)),
        'sources_missing': Jsonb(list(cluster.sources_missing)),
        'candidate_article_ids': Jsonb(list(cluster.candidate_article_ids)),
        'matched_article_ids': Jsonb(list(cluster.matched_article_ids)),
        'similarity_threshold': cluster.similarity_threshold,
        'recheck_attempts': cluster.recheck_attempts,
        'max_recheck_attempts': cluster.max_recheck_attempts,
        'next_recheck_at': cluster.next_recheck_at,
        'corroboration_score': cluster.corroboration_score,
        'recommendation': cluster.recommendation,
        'failure_reason': cluster.failure_reason,
        'confidence_score': cluster.confidence_score,
        'time_period_start': cluster.time_period_start,
        'time_period_end': cluster.time_period_end,
        'synthesis': Jsonb(cluster.synthesis) if cluster.synthesis is not None else None,
        'version': cluster.version,
        'created_at': cluster.created_at,
        'updated_at': cluster.updated_at,
    }


class ClusterService:
    """Service for story-cluster database operations."""

    def __init__(self, connection_manager):
        self.connection_manager = connection_manager

    def insert_cluster(self, cluster: StoryCluster) -> None:
        try:
            with self.connection_manager.get_cursor() as cursor:
                cursor.execute(f"""
                    INSERT INTO story_clusters ({CLUSTER_COLUMNS})
                    VALUES (%(id)s, %(topic)s, %(keywords)s, %(article_ids)s, %(status)s, %(trigger_article_id)s,
                            %(sources_found)s, %(sources_missing)s, %(candidate_article_ids)s, %(matched_article_ids)s,
                            %(similarity_threshold)s, %(recheck_attempts)s, %(max_recheck_attempts)s,
                            %(next_recheck_at)s, %(corroboration_score)s, %(recommendation)s,
                            %(failure_reason)s, %(confidence_score)s, %(time_period_start)s,
                            %(time_period_end)s, %(synthesis)s, %(version)s, %(created_at)s, %(updated_at)s)
                """, _cluster_params(cluster))
        except psycopg.Error as e:
            raise DatabaseOperationError('insert', 'story_clusters', e) from e

    def get_cluster(self, cluster_id: str) -> Optional[StoryCluster]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"SELECT {CLUSTER_COLUMNS} FROM story_clusters WHERE id = %s", (cluster_id,))
            row = cursor.fetchone()
            return StoryCluster.from_dict(row) if row else None

    def list_clusters(self, status: Optional[str] = None) -> List[StoryCluster]:
        with self.connection_manager.get_cursor() as cursor:
            if status is None:
                cursor.execute(f"SELECT {CLUSTER_COLUMNS} FROM story_clusters ORDER BY created_at DESC")
            else:
                cursor.execute(f"""
                    SELECT {CLUSTER_COLUMNS} FROM story_clusters
                    WHERE status = %s ORDER BY created_at DESC
                """, (status,))
            return [StoryCluster.from_dict(row) for row in cursor.fetchall()]

    def get_due_rechecks(self, now: datetime) -> List[StoryCluster]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"""
                SELECT {CLUSTER_COLUMNS} FROM story_clusters
                WHERE status = %s AND next_recheck_at IS NOT NULL AND next_recheck_at <= %s
                ORDER BY next_recheck_at
            """, (ClusterStatus.DETECTING, now))
            return [StoryCluster.from_dict(row) for row in cursor.fetchall()]

    def save_cluster(self, cluster: StoryCluster, expected_status: str) -> bool:
        """
        Apply a cluster update only if nobody else changed it first.

        Args:
            cluster: Cluster carrying the version it was read at
            expected_status: Status the stored row must still have

        Returns:
            True if the update was applied
        """
        params = _cluster_params(cluster)
        params['updated_at'] = utc_now()
        params['new_version'] = cluster.version + 1
        params['expected_status'] = expected_status
        try:
            with self.connection_manager.get_cursor() as cursor:
                cursor.execute("""
                    UPDATE story_clusters SET
                        topic = %(topic)s, keywords = %(keywords)s, article_ids = %(article_ids)s,
                        status = %(status)s, trigger_article_id = %(trigger_article_id)s,
                        sources_found = %(sources_found)s, sources_missing = %(sources_missing)s,
                        candidate_article_ids = %(candidate_article_ids)s, matched_article_ids = %(matched_article_ids)s,
                        recheck_attempts = %(recheck_attempts)s, next_recheck_at = %(next_recheck_at)s,
                        corroboration_score = %(corroboration_score)s, recommendation = %(recommendation)s,
                        failure_reason = %(failure_reason)s, confidence_score = %(confidence_score)s,
                        time_period_start = %(time_period_start)s, time_period_end = %(time_period_end)s,
                        synthesis = %(synthesis)s, version = %(new_version)s, updated_at = %(updated_at)s
                    WHERE id = %(id)s AND status = %(expected_status)s AND version = %(version)s
                """, params)
                applied = cursor.rowcount == 1
        except psycopg.Error as e:
            raise DatabaseOperationError('update', 'story_clusters', e) from e

        if applied:
            cluster.version += 1
            cluster.updated_at = params['updated_at']
        return applied
