#!/usr/bin/env python3
"""
Cross-Reference Verifier

Decides whether a story cluster is corroborated enough to go downstream.
This is the only component allowed to move a cluster to `analyzing`.

Decision order for a cluster with an applicable rule:

1. matched required sources >= minimum_matches  -> immediate
2. no required source matched                   -> insufficient
3. recheck budget exhausted                     -> insufficient
4. otherwise (1 <= matched < minimum)           -> delayed

A cluster without any trigger article has no applicable rule and is
insufficient straight away. Status writes are compare-and-set against
`detecting`, so a cluster is verified into a terminal or analyzing state
at most once.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .rules import RuleTable
from ..cache import ResponseCache
from ..clustering.keywords import extract_keywords, jaccard_similarity
from ..database import Repository
from ..exceptions import ClusterNotFoundError
from ..models import (
    RawArticle, StoryCluster, ClusterStatus, CrossReferenceResult, Recommendation,
    TaskType, SynthesizePayload,
)
from ..time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

NO_RULE_REASON = 'no cross-reference rule applies (no trigger source in cluster)'
NO_MATCH_REASON = 'no required source corroborates the trigger article'
EXHAUSTED_REASON = 'exceeded max recheck attempts'

SYNTHESIS_PRIORITY = 4

TaskSubmitter = Callable[..., str]


def best_candidate(candidates: List[RawArticle]) -> RawArticle:
    """Highest quality first, then most recent, then lowest id for stability."""
    def key(article: RawArticle):
        moment = article.published_at or article.fetched_at
        return (-article.quality_score, -(moment.timestamp() if moment else 0.0), article.id)
    return sorted(candidates, key=key)[0]


class CrossReferenceVerifier:
    """Applies the rule table to clusters and persists the outcome."""

    def __init__(self,
                 repository: Repository,
                 rules: RuleTable,
                 admission_threshold: float = 0.30,
                 candidate_window_hours: int = 48,
                 max_keywords: int = 10,
                 min_keyword_length: int = 4,
                 task_submitter: Optional[TaskSubmitter] = None,
                 cache: Optional[ResponseCache] = None,
                 clock: Clock = utc_now):
        """
        Initialize verifier.

        Args:
            repository: Source of truth for clusters and articles
            rules: Validated rule table
            admission_threshold: Minimum similarity for pool candidates
            candidate_window_hours: How far back to look for pool candidates
            max_keywords: Keywords extracted per candidate article
            min_keyword_length: Shorter tokens are ignored
            task_submitter: Called as submit(type, payload, priority=...) on immediate
            cache: Response cache to invalidate after cluster writes
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.rules = rules
        self.admission_threshold = admission_threshold
        self.candidate_window = timedelta(hours=candidate_window_hours)
        self.max_keywords = max_keywords
        self.min_keyword_length = min_keyword_length
        self.task_submitter = task_submitter
        self.cache = cache
        self._clock = clock

    def candidate_pool(self, cluster: StoryCluster, members: List[RawArticle],
                       now: datetime, source_ids: List[str]) -> List[RawArticle]:
        """
        Members, attached candidates, and recent articles from the wanted sources
        whose keywords pass the admission threshold against the cluster keywords.
        """
        pool: Dict[str, RawArticle] = {a.id: a for a in members}
        for article in self.repository.get_articles(cluster.candidate_article_ids):
            pool.setdefault(article.id, article)

        if source_ids:
            recent = self.repository.get_recent_articles(now - self.candidate_window, source_ids=source_ids)
            for article in recent:
                if article.id in pool:
                    continue
                keywords = extract_keywords(article.text, self.max_keywords, self.min_keyword_length)
                if jaccard_similarity(cluster.keywords, keywords) >= self.admission_threshold:
                    pool[article.id] = article

        return list(pool.values())

    def evaluate(self, cluster: StoryCluster) -> CrossReferenceResult:
        """
        Compute the verification outcome without writing anything.

        Args:
            cluster: Cluster to evaluate

        Returns:
            CrossReferenceResult with applied=False
        """
        now = self._clock()
        members = self.repository.get_articles(cluster.article_ids)
        rule = self.rules.rule_for_sources([a.source_id for a in members])

        if rule is None:
            return CrossReferenceResult(
                cluster_id=cluster.id,
                recommendation=Recommendation.INSUFFICIENT,
                corroboration_score=0.0,
                reason=NO_RULE_REASON
            )

        trigger_id = self.rules.trigger_id(rule)
        trigger_article = next(a for a in members if a.source_id == trigger_id)

        required: List[str] = []
        unresolved: List[str] = []
        for reference in rule.required_sources:
            source_id = self.rules.required_id(reference)
            if source_id is None:
                unresolved.append(reference)
            elif source_id not in required:
                required.append(source_id)

        pool = self.candidate_pool(cluster, members, now, required)

        matched: List[RawArticle] = []
        missing: List[str] = []
        for source_id in required:
            candidates = [a for a in pool if a.source_id == source_id]
            if candidates:
                matched.append(best_candidate(candidates))
            else:
                missing.append(source_id)
        missing.extend(unresolved)

        score = len(matched) / len(rule.required_sources)

        if len(matched) >= rule.minimum_matches:
            recommendation, reason, recheck_at = Recommendation.IMMEDIATE, None, None
        elif not matched:
            recommendation, reason, recheck_at = Recommendation.INSUFFICIENT, NO_MATCH_REASON, None
        elif cluster.recheck_attempts >= cluster.max_recheck_attempts:
            recommendation, reason, recheck_at = Recommendation.INSUFFICIENT, EXHAUSTED_REASON, None
        else:
            recommendation, reason, recheck_at = Recommendation.DELAYED, None, now + rule.recheck_delay

        return CrossReferenceResult(
            cluster_id=cluster.id,
            recommendation=recommendation,
            corroboration_score=score,
            trigger_article=trigger_article,
            matched_articles=matched,
            missing_sources=missing,
            recheck_at=recheck_at,
            rule_trigger=rule.trigger_source,
            reason=reason
        )

    def apply_result(self, cluster: StoryCluster, result: CrossReferenceResult) -> None:
        """Fold a result into the cluster's fields (in memory only)."""
        members = self.repository.get_articles(cluster.article_ids)
        found: List[str] = []
        for source_id in [a.source_id for a in members] + result.matched_source_ids:
            if source_id not in found:
                found.append(source_id)

        cluster.sources_found = found
        cluster.sources_missing = [s for s in result.missing_sources if s not in found]
        cluster.corroboration_score = result.corroboration_score
        cluster.recommendation = result.recommendation
        if result.trigger_article is not None:
            cluster.trigger_article_id = result.trigger_article.id

        for article in result.matched_articles:
            if article.id not in cluster.article_ids and article.id not in cluster.candidate_article_ids:
                cluster.candidate_article_ids.append(article.id)
        cluster.matched_article_ids = [a.id for a in result.matched_articles if a.id not in cluster.article_ids]

        if result.recommendation == Recommendation.IMMEDIATE:
            cluster.status = ClusterStatus.ANALYZING
            cluster.next_recheck_at = None
            cluster.failure_reason = None
        elif result.recommendation == Recommendation.DELAYED:
            cluster.recheck_attempts += 1
            cluster.next_recheck_at = result.recheck_at
        else:
            cluster.status = ClusterStatus.FAILED
            cluster.next_recheck_at = None
            cluster.failure_reason = result.reason

    def verify(self, cluster_id: str) -> CrossReferenceResult:
        """
        Verify one cluster and persist the outcome.

        Clusters no longer in `detecting` are evaluated but left untouched.

        Args:
            cluster_id: Cluster to verify

        Returns:
            CrossReferenceResult; `applied` tells whether the cluster was updated

        Raises:
            ClusterNotFoundError: If the cluster does not exist
        """
        cluster = self.repository.get_cluster(cluster_id)
        if cluster is None:
            raise ClusterNotFoundError(cluster_id)

        result = self.evaluate(cluster)
        if cluster.status != ClusterStatus.DETECTING:
            logger.info(f"Cluster {cluster_id} is {cluster.status}; verification result not applied")
            return result

        self.apply_result(cluster, result)
        if not self.repository.save_cluster(cluster, expected_status=ClusterStatus.DETECTING):
            logger.warning(f"Cluster {cluster_id} changed concurrently; verification result discarded")
            return result

        result.applied = True
        if self.cache is not None:
            self.cache.invalidate_prefix('clusters:')

        logger.info(
            f"Cluster {cluster_id} verified: {result.recommendation} "
            f"(score {result.corroboration_score:.2f}, attempts {cluster.recheck_attempts}/{cluster.max_recheck_attempts})"
        )

        if result.recommendation == Recommendation.IMMEDIATE and self.task_submitter is not None:
            self.task_submitter(TaskType.SYNTHESIZE, SynthesizePayload(cluster_id=cluster_id),
                                priority=SYNTHESIS_PRIORITY)
        return result
