#!/usr/bin/env python3
"""
Recheck Scheduler

Revisits clusters waiting on corroboration. For each due cluster only the
missing sources are refetched (bypassing the feed cache), matching articles
are attached as candidates and the verifier runs again. The verifier owns
the attempt budget, so a cluster is re-verified at most max_attempts times
before it is forced to `failed`, and failed clusters are never selected.
"""

import logging
from typing import Any, Callable, Dict, List

from .verifier import CrossReferenceVerifier
from ..clustering.keywords import extract_keywords, jaccard_similarity
from ..database import Repository
from ..feed_fetcher import FeedFetcher
from ..models import ClusterStatus, Recommendation, StoryCluster, CrossReferenceResult
from ..sources.matching import SourceMatcher
from ..time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[], FeedFetcher]


class RecheckScheduler:
    """Drives bounded, delayed re-verification of detecting clusters."""

    def __init__(self,
                 repository: Repository,
                 verifier: CrossReferenceVerifier,
                 fetcher_factory: FetcherFactory,
                 matcher: SourceMatcher,
                 clock: Clock = utc_now):
        self.repository = repository
        self.verifier = verifier
        self.fetcher_factory = fetcher_factory
        self.matcher = matcher
        self._clock = clock

    def _missing_sources(self, cluster: StoryCluster):
        sources = []
        for reference in cluster.sources_missing:
            source = self.repository.get_source(reference)
            if source is None:
                resolved_id = self.matcher.resolve_id(reference)
                source = self.repository.get_source(resolved_id) if resolved_id else None
            if source is None:
                logger.warning(f"Missing source '{reference}' for cluster {cluster.id} is not configured")
                continue
            sources.append(source)
        return sources

    def _attach_candidates(self, cluster: StoryCluster, articles) -> int:
        """Attach fetched articles that pass the admission threshold; returns how many were added."""
        known = set(cluster.article_ids) | set(cluster.candidate_article_ids)
        added = 0
        for article in articles:
            if article.id in known:
                continue
            keywords = extract_keywords(article.text, self.verifier.max_keywords, self.verifier.min_keyword_length)
            if jaccard_similarity(cluster.keywords, keywords) >= self.verifier.admission_threshold:
                cluster.candidate_article_ids.append(article.id)
                known.add(article.id)
                added += 1
        return added

    async def recheck_cluster(self, cluster: StoryCluster, fetcher: FeedFetcher) -> CrossReferenceResult:
        """
        Refetch the cluster's missing sources and verify it again.

        Args:
            cluster: A detecting cluster whose recheck time has elapsed
            fetcher: Open FeedFetcher

        Returns:
            The verifier's result
        """
        sources = self._missing_sources(cluster)
        outcomes = await fetcher.ingest_sources(sources, use_cache=False)
        fetched = [article for outcome in outcomes for article in outcome.articles]

        added = self._attach_candidates(cluster, fetched)
        if added:
            if self.repository.save_cluster(cluster, expected_status=ClusterStatus.DETECTING):
                logger.info(f"Attached {added} candidate articles to cluster {cluster.id}")
            else:
                logger.warning(f"Cluster {cluster.id} changed while attaching candidates")

        return self.verifier.verify(cluster.id)

    async def run_due_rechecks(self) -> Dict[str, Any]:
        """
        Process every cluster whose recheck time has elapsed.

        Returns:
            Summary with processed, successful, still_waiting,
            exceeded_attempts and per-cluster errors
        """
        now = self._clock()
        due = self.repository.get_due_rechecks(now)
        summary: Dict[str, Any] = {
            'processed': 0,
            'successful': 0,
            'still_waiting': 0,
            'exceeded_attempts': 0,
            'errors': [],
            'timestamp': now.isoformat()
        }
        if not due:
            logger.info("No clusters due for recheck")
            return summary

        logger.info(f"Rechecking {len(due)} clusters")
        async with self.fetcher_factory() as fetcher:
            for cluster in due:
                try:
                    result = await self.recheck_cluster(cluster, fetcher)
                except Exception as e:
                    logger.error(f"Recheck failed for cluster {cluster.id}: {e}", exc_info=True)
                    summary['errors'].append({'cluster_id': cluster.id, 'error': str(e)})
                    continue

                summary['processed'] += 1
                if result.recommendation == Recommendation.IMMEDIATE:
                    summary['successful'] += 1
                elif result.recommendation == Recommendation.DELAYED:
                    summary['still_waiting'] += 1
                else:
                    summary['exceeded_attempts'] += 1

        logger.info(
            f"Recheck sweep: {summary['processed']} processed, {summary['successful']} ready, "
            f"{summary['still_waiting']} waiting, {summary['exceeded_attempts']} failed"
        )
        return summary
