#!/usr/bin/env python3
"""
Story Clusterer

Greedy lexical clustering. Articles are visited in input order; each
unclustered article seeds a group and pulls in every other unclustered
article whose keyword set has Jaccard similarity >= the admission threshold
against the seed's. The seed's keywords become the cluster keyword set, so
every member satisfies the similarity predicate against it.

First match wins and assignment is deterministic by input order, not by
article recency. This is not a global optimum.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from .keywords import extract_keywords, jaccard_similarity, rank_keywords
from ..models import RawArticle, StoryCluster, ClusterStatus
from ..time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

TOPIC_KEYWORDS = 3
TOPIC_TITLE_LENGTH = 80


class StoryClusterer:
    """Groups articles that describe the same event."""

    def __init__(self,
                 admission_threshold: float = 0.30,
                 cluster_similarity_threshold: float = 0.80,
                 max_keywords: int = 10,
                 min_keyword_length: int = 4,
                 max_recheck_attempts: int = 3,
                 clock: Clock = utc_now):
        """
        Initialize clusterer.

        Args:
            admission_threshold: Minimum Jaccard similarity to join a cluster
            cluster_similarity_threshold: Stored on each cluster as metadata only
            max_keywords: Keywords extracted per article
            min_keyword_length: Shorter tokens are ignored
            max_recheck_attempts: Recheck budget stamped on new clusters
            clock: Returns the current aware datetime
        """
        self.admission_threshold = admission_threshold
        self.cluster_similarity_threshold = cluster_similarity_threshold
        self.max_keywords = max_keywords
        self.min_keyword_length = min_keyword_length
        self.max_recheck_attempts = max_recheck_attempts
        self._clock = clock

    def keywords_for(self, article: RawArticle) -> List[str]:
        return extract_keywords(article.text, self.max_keywords, self.min_keyword_length)

    def is_admissible(self, cluster_keywords: List[str], article_keywords: List[str]) -> bool:
        return jaccard_similarity(cluster_keywords, article_keywords) >= self.admission_threshold

    def partition(self, articles: List[RawArticle]) -> List[List[RawArticle]]:
        """
        Split articles into groups; singletons are valid groups.

        Args:
            articles: Batch in processing order; duplicates by id are ignored

        Returns:
            Groups in seed order, each seed first
        """
        unique: List[RawArticle] = []
        seen = set()
        for article in articles:
            if article.id not in seen:
                seen.add(article.id)
                unique.append(article)

        keywords: Dict[str, List[str]] = {a.id: self.keywords_for(a) for a in unique}
        assigned = set()
        groups: List[List[RawArticle]] = []

        for index, seed in enumerate(unique):
            if seed.id in assigned:
                continue
            assigned.add(seed.id)
            group = [seed]
            seed_keywords = keywords[seed.id]

            for candidate in unique[index + 1:]:
                if candidate.id in assigned:
                    continue
                if self.is_admissible(seed_keywords, keywords[candidate.id]):
                    group.append(candidate)
                    assigned.add(candidate.id)

            groups.append(group)

        logger.debug(f"Partitioned {len(unique)} articles into {len(groups)} groups")
        return groups

    def build_cluster(self, group: List[RawArticle]) -> StoryCluster:
        """Create a detecting StoryCluster from a group; the first article is the seed."""
        seed = group[0]
        member_keywords = [self.keywords_for(a) for a in group]
        timestamps = [a.published_at or a.fetched_at for a in group if (a.published_at or a.fetched_at)]

        sources_found = []
        for article in group:
            if article.source_id not in sources_found:
                sources_found.append(article.source_id)

        return StoryCluster(
            topic=self.derive_topic(group, member_keywords),
            keywords=member_keywords[0],
            article_ids=[a.id for a in group],
            status=ClusterStatus.DETECTING,
            sources_found=sources_found,
            similarity_threshold=self.cluster_similarity_threshold,
            max_recheck_attempts=self.max_recheck_attempts,
            confidence_score=self.confidence_score(group),
            time_period_start=min(timestamps) if timestamps else None,
            time_period_end=max(timestamps) if timestamps else None,
            created_at=self._clock(),
            updated_at=self._clock()
        )

    def cluster(self, articles: List[RawArticle]) -> List[StoryCluster]:
        """
        Cluster a batch and return the multi-article clusters.

        Singleton groups are not persisted; their articles stay pending and
        are offered again in the next pass.
        """
        clusters = [self.build_cluster(group) for group in self.partition(articles) if len(group) > 1]
        logger.info(f"Created {len(clusters)} clusters from {len(articles)} articles")
        return clusters

    def derive_topic(self, group: List[RawArticle], member_keywords: Optional[List[List[str]]] = None) -> str:
        """Top three keywords across members, or a truncated title when there are none."""
        if member_keywords is None:
            member_keywords = [self.keywords_for(a) for a in group]
        top = rank_keywords(member_keywords, TOPIC_KEYWORDS)
        if top:
            return ' '.join(top)
        title = group[0].title
        if len(title) > TOPIC_TITLE_LENGTH:
            return title[:TOPIC_TITLE_LENGTH - 3].rstrip() + '...'
        return title

    def confidence_score(self, group: List[RawArticle]) -> float:
        """
        Heuristic confidence in [0, 1].

        60% mean quality, 30% source diversity (saturating at three outlets),
        10% tightness of the publication window (saturating at 48 hours).
        """
        if not group:
            return 0.0
        mean_quality = sum(a.quality_score for a in group) / len(group) / 100
        diversity = min(len({a.source_id for a in group}) / 3, 1.0)

        times = [a.published_at for a in group if a.published_at]
        if len(times) > 1:
            span = max(times) - min(times)
            tightness = 1.0 - min(span / timedelta(hours=48), 1.0)
        else:
            tightness = 1.0

        return round(0.6 * mean_quality + 0.3 * diversity + 0.1 * tightness, 3)
