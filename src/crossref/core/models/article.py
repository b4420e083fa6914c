#!/usr/bin/env python3
"""
Article data model.

Represents one normalized feed entry. Identity is (source id, URL), so the
id is derived from those two fields and re-ingesting the same entry always
lands on the same row.
"""

import hashlib
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from ..time_utils import parse_datetime, isoformat


class ArticleStatus:
    PENDING = 'pending'
    PROCESSED = 'processed'


def make_article_id(source_id: str, url: str) -> str:
    """Deterministic article id for a (source, URL) pair."""
    return hashlib.sha256(f"{source_id}|{url}".encode('utf-8')).hexdigest()[:32]


@dataclass
class RawArticle:
    """A single article as fetched from a feed."""
    source_id: str
    title: str
    url: str
    description: str = ""
    content: str = ""
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    guid: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    quality_score: int = 50
    status: str = ArticleStatus.PENDING
    fetched_at: Optional[datetime] = None
    id: str = ""

    def __post_init__(self):
        """Clean and validate data after initialization."""
        self.title = (self.title or "").strip()
        self.url = (self.url or "").strip()
        self.description = (self.description or "").strip()
        self.content = (self.content or "").strip()
        if isinstance(self.author, str):
            self.author = self.author.strip() or None
        self.quality_score = max(0, min(100, int(self.quality_score)))
        if not self.id:
            self.id = make_article_id(self.source_id, self.url)

    @property
    def text(self) -> str:
        """Title plus description, the text keywords are extracted from."""
        return f"{self.title} {self.description}".strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'source_id': self.source_id,
            'title': self.title,
            'url': self.url,
            'description': self.description,
            'content': self.content,
            'author': self.author,
            'published_at': isoformat(self.published_at),
            'guid': self.guid,
            'categories': list(self.categories),
            'quality_score': self.quality_score,
            'status': self.status,
            'fetched_at': isoformat(self.fetched_at)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RawArticle':
        """Create RawArticle from dictionary."""
        return cls(
            id=data.get('id', ''),
            source_id=data['source_id'],
            title=data.get('title', ''),
            url=data.get('url', ''),
            description=data.get('description', '') or '',
            content=data.get('content', '') or '',
            author=data.get('author'),
            published_at=parse_datetime(data.get('published_at')),
            guid=data.get('guid'),
            categories=list(data.get('categories') or []),
            quality_score=data.get('quality_score', 50),
            status=data.get('status', ArticleStatus.PENDING),
            fetched_at=parse_datetime(data.get('fetched_at'))
        )

    def __repr__(self):
        return f"RawArticle(title='{self.title[:50]}...', source_id='{self.source_id}')"
