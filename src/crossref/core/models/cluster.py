#!/usr/bin/env python3
"""
Story cluster and verification result models.

A StoryCluster is a hypothesis that several articles describe the same event.
Its status moves through a small state machine:

    detecting -> analyzing -> complete
    detecting -> failed

`analyzing` is only reachable through the Cross-Reference Verifier.
"""

import uuid
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from .article import RawArticle
from ..time_utils import parse_datetime, isoformat, utc_now


class ClusterStatus:
    DETECTING = 'detecting'
    ANALYZING = 'analyzing'
    COMPLETE = 'complete'
    FAILED = 'failed'

    ALL = (DETECTING, ANALYZING, COMPLETE, FAILED)


class Recommendation:
    IMMEDIATE = 'immediate'
    DELAYED = 'delayed'
    INSUFFICIENT = 'insufficient'

    # Ordering used to reason about monotonic progress
    RANK = {INSUFFICIENT: 0, DELAYED: 1, IMMEDIATE: 2}


@dataclass
class StoryCluster:
    """A group of articles believed to cover the same story."""
    topic: str
    keywords: List[str]
    article_ids: List[str]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = ClusterStatus.DETECTING
    trigger_article_id: Optional[str] = None
    sources_found: List[str] = field(default_factory=list)
    sources_missing: List[str] = field(default_factory=list)
    candidate_article_ids: List[str] = field(default_factory=list)
    matched_article_ids: List[str] = field(default_factory=list)
    similarity_threshold: float = 0.8
    recheck_attempts: int = 0
    max_recheck_attempts: int = 3
    next_recheck_at: Optional[datetime] = None
    corroboration_score: float = 0.0
    recommendation: Optional[str] = None
    failure_reason: Optional[str] = None
    confidence_score: float = 0.0
    time_period_start: Optional[datetime] = None
    time_period_end: Optional[datetime] = None
    synthesis: Optional[Dict[str, Any]] = None
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.status not in ClusterStatus.ALL:
            raise ValueError(f"Invalid cluster status: {self.status}")
        overlap = set(self.sources_found) & set(self.sources_missing)
        if overlap:
            raise ValueError(f"Sources cannot be both found and missing: {sorted(overlap)}")

    @property
    def article_count(self) -> int:
        return len(self.article_ids)

    @property
    def is_multi_source(self) -> bool:
        return len(self.sources_found) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'topic': self.topic,
            'keywords': list(self.keywords),
            'article_ids': list(self.article_ids),
            'article_count': self.article_count,
            'status': self.status,
            'trigger_article_id': self.trigger_article_id,
            'sources_found': list(self.sources_found),
            'sources_missing': list(self.sources_missing),
            'candidate_article_ids': list(self.candidate_article_ids),
            'matched_article_ids': list(self.matched_article_ids),
            'similarity_threshold': self.similarity_threshold,
            'recheck_attempts': self.recheck_attempts,
            'max_recheck_attempts': self.max_recheck_attempts,
            'next_recheck_at': isoformat(self.next_recheck_at),
            'corroboration_score': self.corroboration_score,
            'recommendation': self.recommendation,
            'failure_reason': self.failure_reason,
            'confidence_score': self.confidence_score,
            'time_period_start': isoformat(self.time_period_start),
            'time_period_end': isoformat(self.time_period_end),
            'synthesis': self.synthesis,
            'version': self.version,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoryCluster':
        """Create StoryCluster from dictionary or database row."""
        return cls(
            id=data['id'],
            topic=data.get('topic', ''),
            keywords=list(data.get('keywords') or []),
            article_ids=list(data.get('article_ids') or []),
            status=data.get('status', ClusterStatus.DETECTING),
            trigger_article_id=data.get('trigger_article_id'),
            sources_found=list(data.get('sources_found') or []),
            sources_missing=list(data.get('sources_missing') or []),
            candidate_article_ids=list(data.get('candidate_article_ids') or []),
            matched_article_ids=list(data.get('matched_article_ids') or []),
            similarity_threshold=float(data.get('similarity_threshold', 0.8)),
            recheck_attempts=int(data.get('recheck_attempts', 0)),
            max_recheck_attempts=int(data.get('max_recheck_attempts', 3)),
            next_recheck_at=parse_datetime(data.get('next_recheck_at')),
            corroboration_score=float(data.get('corroboration_score', 0.0) or 0.0),
            recommendation=data.get('recommendation'),
            failure_reason=data.get('failure_reason'),
            confidence_score=float(data.get('confidence_score', 0.0) or 0.0),
            time_period_start=parse_datetime(data.get('time_period_start')),
            time_period_end=parse_datetime(data.get('time_period_end')),
            synthesis=data.get('synthesis'),
            version=int(data.get('version', 0)),
            created_at=parse_datetime(data.get('created_at')) or utc_now(),
            updated_at=parse_datetime(data.get('updated_at')) or utc_now()
        )

    def __repr__(self):
        return f"StoryCluster(id='{self.id[:8]}', topic='{self.topic}', status='{self.status}', articles={self.article_count})"


@dataclass
class CrossReferenceResult:
    """
    Outcome of one verification pass over a cluster.

    Not persisted on its own; the verifier folds it into the cluster.
    """
    cluster_id: str
    recommendation: str
    corroboration_score: float
    trigger_article: Optional[RawArticle] = None
    matched_articles: List[RawArticle] = field(default_factory=list)
    missing_sources: List[str] = field(default_factory=list)
    recheck_at: Optional[datetime] = None
    rule_trigger: Optional[str] = None
    reason: Optional[str] = None
    applied: bool = False

    @property
    def matched_source_ids(self) -> List[str]:
        return [article.source_id for article in self.matched_articles]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cluster_id': self.cluster_id,
            'recommendation': self.recommendation,
            'corroboration_score': round(self.corroboration_score, 4),
            'trigger_article_id': self.trigger_article.id if self.trigger_article else None,
            'matched_article_ids': [article.id for article in self.matched_articles],
            'matched_sources': self.matched_source_ids,
            'missing_sources': list(self.missing_sources),
            'recheck_at': isoformat(self.recheck_at),
            'rule_trigger': self.rule_trigger,
            'reason': self.reason,
            'applied': self.applied
        }
