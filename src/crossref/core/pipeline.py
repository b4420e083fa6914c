#!/usr/bin/env python3
"""
Cross-reference pipeline orchestration.

Drives one full crawl pass (fetch → persist → cluster → verify), the recheck
sweep, manual verification of a single cluster, and the status report the
operational commands print.
"""

import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

from .cache import ResponseCache
from .clustering import StoryClusterer
from .database import Repository
from .feed_fetcher import FetchOutcome
from .models import ArticleStatus, ClusterStatus, RawArticle, Recommendation
from .sources import SourceRegistry
from .verification import CrossReferenceVerifier, RecheckScheduler, RuleTable
from .verification.recheck import FetcherFactory
from .time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

STATUS_CACHE_KEY = 'clusters:status'
STATUS_CACHE_TTL = 60


class CrossReferencePipeline:
    """Coordinates the fetch, cluster and verify stages for one pass."""

    def __init__(self,
                 repository: Repository,
                 registry: SourceRegistry,
                 fetcher_factory: FetcherFactory,
                 clusterer: StoryClusterer,
                 verifier: CrossReferenceVerifier,
                 recheck_scheduler: RecheckScheduler,
                 rules: RuleTable,
                 cache: Optional[ResponseCache] = None,
                 pending_window_hours: int = 48,
                 clock: Clock = utc_now):
        """
        Initialize pipeline.

        Args:
            repository: Source of truth for articles, clusters and tasks
            registry: Configured sources
            fetcher_factory: Returns a fresh FeedFetcher (async context manager)
            clusterer: Story clusterer
            verifier: Cross-reference verifier
            recheck_scheduler: Drives due rechecks
            rules: Active rule table (reported in status)
            cache: Response cache for the status report
            pending_window_hours: Unclustered articles younger than this are re-offered
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.registry = registry
        self.fetcher_factory = fetcher_factory
        self.clusterer = clusterer
        self.verifier = verifier
        self.recheck_scheduler = recheck_scheduler
        self.rules = rules
        self.cache = cache
        self.pending_window = timedelta(hours=pending_window_hours)
        self._clock = clock

    async def _fetch_all(self) -> List[FetchOutcome]:
        """Fetch primary sources first, then every other tier."""
        sources = self.registry.primary_first()
        primary = [s for s in sources if s.tier == 'primary']
        others = [s for s in sources if s.tier != 'primary']

        async with self.fetcher_factory() as fetcher:
            outcomes = await fetcher.ingest_sources(primary)
            logger.info(f"Primary tier fetched: {sum(len(o.new_article_ids) for o in outcomes)} new articles")
            outcomes += await fetcher.ingest_sources(others)
        return outcomes

    def _clustering_batch(self, outcomes: List[FetchOutcome]) -> List[RawArticle]:
        """New articles in fetch order, followed by earlier unclustered ones."""
        batch: List[RawArticle] = []
        seen = set()
        for outcome in outcomes:
            for article in outcome.new_articles:
                if article.id not in seen:
                    seen.add(article.id)
                    batch.append(article)

        carried = self.repository.get_recent_articles(self._clock() - self.pending_window,
                                                      status=ArticleStatus.PENDING)
        carried = [a for a in carried if a.id not in seen]
        carried.sort(key=lambda a: (a.fetched_at or self._clock(), a.id))
        return batch + carried

    async def run_full_crawl(self, verify: bool = True) -> Dict[str, Any]:
        """
        Run one crawl pass over every active source.

        Args:
            verify: Verify newly created clusters in the same pass

        Returns:
            Crawl summary
        """
        start_time = time.time()
        logger.info("Starting full crawl")

        outcomes = await self._fetch_all()
        batch = self._clustering_batch(outcomes)

        clusters = self.clusterer.cluster(batch)
        for cluster in clusters:
            self.repository.insert_cluster(cluster)
            self.repository.mark_articles_processed(cluster.article_ids)
        if clusters and self.cache is not None:
            self.cache.invalidate_prefix('clusters:')

        recommendations = {r: 0 for r in Recommendation.RANK}
        verification_errors = []
        if verify:
            for cluster in clusters:
                try:
                    result = self.verifier.verify(cluster.id)
                except Exception as e:
                    logger.error(f"Verification failed for cluster {cluster.id}: {e}", exc_info=True)
                    verification_errors.append({'cluster_id': cluster.id, 'error': str(e)})
                    continue
                recommendations[result.recommendation] += 1

        successful = [o for o in outcomes if o.success]
        summary = {
            'total_sources': len(outcomes),
            'successful_sources': len(successful),
            'failed_sources': len(outcomes) - len(successful),
            'total_articles': sum(len(o.articles) for o in outcomes),
            'new_articles': sum(len(o.new_article_ids) for o in outcomes),
            'errors': [{'source_id': o.source_id, 'error': o.error} for o in outcomes if not o.success],
            'clusters_created': len(clusters),
            'recommendations': recommendations,
            'verification_errors': verification_errors,
            'duration_seconds': round(time.time() - start_time, 2),
            'timestamp': self._clock().isoformat()
        }
        logger.info(
            f"Crawl complete: {summary['successful_sources']}/{summary['total_sources']} sources, "
            f"{summary['new_articles']} new articles, {summary['clusters_created']} clusters"
        )
        return summary

    async def run_recheck_sweep(self) -> Dict[str, Any]:
        summary = await self.recheck_scheduler.run_due_rechecks()
        if summary['processed'] and self.cache is not None:
            self.cache.invalidate_prefix('clusters:')
        return summary

    def verify_cluster(self, cluster_id: str) -> Dict[str, Any]:
        """Manually verify one cluster and return the result document."""
        return self.verifier.verify(cluster_id).to_dict()

    def _build_status(self) -> Dict[str, Any]:
        clusters = self.repository.list_clusters()
        by_status = {status: 0 for status in ClusterStatus.ALL}
        for cluster in clusters:
            by_status[cluster.status] += 1

        awaiting = [c for c in clusters if c.status == ClusterStatus.DETECTING and c.next_recheck_at is not None]
        multi_source = sum(1 for c in clusters if c.is_multi_source)

        return {
            'clusters_by_status': by_status,
            'total_clusters': len(clusters),
            'awaiting_recheck': len(awaiting),
            'next_recheck_at': min(c.next_recheck_at for c in awaiting).isoformat() if awaiting else None,
            'multi_source_clusters': multi_source,
            'single_source_clusters': len(clusters) - multi_source,
            'total_articles': self.repository.count_articles(),
            'sources_by_tier': self.registry.counts_by_tier(),
            'rules': self.rules.to_list(),
            'tasks': self.repository.count_tasks_by_status(),
            'timestamp': self._clock().isoformat()
        }

    def get_status(self) -> Dict[str, Any]:
        """Status report, cached briefly and invalidated on every cluster write."""
        if self.cache is None:
            return self._build_status()
        return self.cache.get_or_set(STATUS_CACHE_KEY, self._build_status, ttl=STATUS_CACHE_TTL)
