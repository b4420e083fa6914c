#!/usr/bin/env python3
"""
News source data model.

A configured feed origin. Only the Feed Fetcher mutates the bookkeeping
fields (last fetched timestamp, error counter).
"""

from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass

from ..time_utils import parse_datetime, isoformat

SOURCE_TIERS = ('primary', 'secondary', 'specialty', 'international')


@dataclass
class NewsSource:
    """A syndication feed the pipeline crawls."""
    id: str
    name: str
    feed_url: str
    country: str = "NL"
    language: str = "nl"
    credibility_score: int = 50
    political_leaning: str = "center"
    tier: str = "secondary"
    cross_reference_required: bool = False
    is_active: bool = True

    # Bookkeeping
    last_fetched_at: Optional[datetime] = None
    error_count: int = 0

    def __post_init__(self):
        """Clean and validate data after initialization."""
        self.id = self.id.strip()
        self.name = self.name.strip()
        self.feed_url = self.feed_url.strip()
        self.tier = self.tier.strip().lower()
        if self.tier not in SOURCE_TIERS:
            raise ValueError(f"Invalid tier '{self.tier}' for source {self.id}; expected one of {SOURCE_TIERS}")
        self.credibility_score = max(0, min(100, int(self.credibility_score)))

    @property
    def is_trigger_eligible(self) -> bool:
        """Only primary sources that demand cross-referencing may trigger a rule."""
        return self.tier == 'primary' and self.cross_reference_required

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'feed_url': self.feed_url,
            'country': self.country,
            'language': self.language,
            'credibility_score': self.credibility_score,
            'political_leaning': self.political_leaning,
            'tier': self.tier,
            'cross_reference_required': self.cross_reference_required,
            'is_active': self.is_active,
            'last_fetched_at': isoformat(self.last_fetched_at),
            'error_count': self.error_count
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NewsSource':
        """Create NewsSource from a configuration entry or database row."""
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            feed_url=data.get('feed_url') or data.get('rss_feed_url', ''),
            country=data.get('country', 'NL'),
            language=data.get('language', 'nl'),
            credibility_score=data.get('credibility_score', 50),
            political_leaning=data.get('political_leaning', 'center'),
            tier=data.get('tier', 'secondary'),
            cross_reference_required=bool(data.get('cross_reference_required', False)),
            is_active=bool(data.get('is_active', True)),
            last_fetched_at=parse_datetime(data.get('last_fetched_at')),
            error_count=int(data.get('error_count', 0) or 0)
        )
