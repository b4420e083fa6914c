#!/usr/bin/env python3
"""
News source registry.

Loads the configured outlets from JSON, seeds them into the repository and
answers tier-ordered lookups for the crawler.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from ..database import Repository
from ..exceptions import ConfigurationError
from ..models import NewsSource, SOURCE_TIERS
from .matching import SourceMatcher

logger = logging.getLogger(__name__)


def load_sources(path: str) -> List[NewsSource]:
    """
    Read source definitions from a JSON file.

    Args:
        path: File holding a list of source objects (or {"sources": [...]})

    Returns:
        NewsSource objects in file order

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError('SOURCES_FILE', f"file not found: {path}")

    try:
        data = json.loads(file_path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        raise ConfigurationError('SOURCES_FILE', f"invalid JSON in {path}: {e}") from e

    entries = data.get('sources', []) if isinstance(data, dict) else data
    sources = []
    seen = set()
    for entry in entries:
        try:
            source = NewsSource.from_dict(entry)
        except (KeyError, ValueError) as e:
            raise ConfigurationError('SOURCES_FILE', f"invalid source entry {entry!r}: {e}") from e
        if source.id in seen:
            raise ConfigurationError('SOURCES_FILE', f"duplicate source id '{source.id}'")
        seen.add(source.id)
        sources.append(source)

    logger.info(f"Loaded {len(sources)} sources from {file_path.name}")
    return sources


class SourceRegistry:
    """Configured sources backed by the repository."""

    def __init__(self, repository: Repository, sources: List[NewsSource]):
        """
        Args:
            repository: Durable store the sources are seeded into
            sources: Source definitions in configuration order
        """
        self.repository = repository
        self._configured = list(sources)
        self.matcher = SourceMatcher(self._configured)

    def seed(self) -> int:
        """Upsert every configured source, keeping fetch bookkeeping intact."""
        for source in self._configured:
            self.repository.upsert_source(source)
        logger.debug(f"Seeded {len(self._configured)} sources")
        return len(self._configured)

    def get(self, source_id: str) -> Optional[NewsSource]:
        return self.repository.get_source(source_id)

    def list_sources(self, tier: Optional[str] = None) -> List[NewsSource]:
        sources = self.repository.list_sources(active_only=True)
        if tier is not None:
            sources = [s for s in sources if s.tier == tier]
        return sources

    def primary_first(self) -> List[NewsSource]:
        """Active sources ordered by tier, keeping configuration order within a tier."""
        sources = self.repository.list_sources(active_only=True)
        return sorted(sources, key=lambda s: SOURCE_TIERS.index(s.tier))

    def counts_by_tier(self) -> Dict[str, int]:
        counts = {tier: 0 for tier in SOURCE_TIERS}
        for source in self.repository.list_sources(active_only=True):
            counts[source.tier] += 1
        return counts

    def health_check(self, source: NewsSource, timeout: int = 10) -> Dict[str, Any]:
        """Check feed availability with a HEAD request."""
        try:
            response = requests.head(source.feed_url, timeout=timeout, allow_redirects=True)
            return {
                'source_id': source.id,
                'available': response.status_code == 200,
                'status_code': response.status_code,
                'response_time_ms': response.elapsed.total_seconds() * 1000,
                'error_count': source.error_count
            }
        except requests.RequestException as e:
            return {
                'source_id': source.id,
                'available': False,
                'error': str(e),
                'error_count': source.error_count
            }
