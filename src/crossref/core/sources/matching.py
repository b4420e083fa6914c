#!/usr/bin/env python3
"""
Fuzzy source-name matching.

Rule tables and article metadata refer to outlets by hand-typed names
("De Telegraaf RSS", "telegraaf.nl", "Telegraaf"). Everything is reduced to
a normalized key before comparing. Resolution precedence:

1. exact equality of normalized keys
2. substring containment in either direction

Within one precedence level the first source in configuration order wins.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Set
from urllib.parse import urlparse

from ..models import NewsSource

logger = logging.getLogger(__name__)

NOISE_TOKENS = {'rss', 'feed', 'feeds', 'www', 'de', 'het', 'the', 'news', 'nieuws'}

# Second-level labels that are never the outlet name
GENERIC_HOST_LABELS = {'feeds', 'rss', 'www', 'co', 'com'}

_URL_SCHEME = re.compile(r'^[a-z][a-z0-9+.-]*://')
_TLD_SUFFIX = re.compile(r'\.(nl|com|org|net|be|co\.uk|uk|de|eu|news|info)(?=$|/)')
_NON_WORD = re.compile(r'[^a-z0-9]+')


def normalize_source_name(value: str) -> str:
    """
    Reduce a source reference to a comparable key.

    >>> normalize_source_name("De Telegraaf RSS")
    'telegraaf'
    >>> normalize_source_name("https://www.telegraaf.nl/")
    'telegraaf'
    """
    text = (value or '').strip().lower()
    text = _URL_SCHEME.sub('', text)
    if text.startswith('www.'):
        text = text[4:]
    text = _TLD_SUFFIX.sub('', text)
    tokens = [t for t in _NON_WORD.split(text) if t and t not in NOISE_TOKENS]
    return ' '.join(tokens)


def feed_host_label(feed_url: str) -> str:
    """Outlet label from a feed URL host, e.g. feeds.nos.nl -> nos."""
    host = urlparse(feed_url).hostname or ''
    labels = [label for label in host.lower().split('.') if label]
    if len(labels) >= 2:
        labels = labels[:-1]
    for label in reversed(labels):
        if label not in GENERIC_HOST_LABELS:
            return label
    return ''


class SourceMatcher:
    """Resolves loose source references to configured NewsSource objects."""

    def __init__(self, sources: Iterable[NewsSource]):
        self._sources: List[NewsSource] = list(sources)
        self._keys: Dict[str, Set[str]] = {s.id: self._keys_for(s) for s in self._sources}
        self._resolved: Dict[str, Optional[NewsSource]] = {}

    @staticmethod
    def _keys_for(source: NewsSource) -> Set[str]:
        keys = {normalize_source_name(source.name), normalize_source_name(source.id)}
        host_label = feed_host_label(source.feed_url)
        if host_label:
            keys.add(host_label)
        return {key for key in keys if key}

    @property
    def sources(self) -> List[NewsSource]:
        return list(self._sources)

    def get(self, source_id: str) -> Optional[NewsSource]:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def match_strength(self, source: NewsSource, reference: str) -> int:
        """
        How strongly a source matches a reference.

        Returns:
            2 for exact normalized equality, 1 for substring containment, 0 otherwise
        """
        wanted = normalize_source_name(reference)
        if not wanted:
            return 0
        keys = self._keys.get(source.id) or self._keys_for(source)
        if wanted in keys:
            return 2
        if any(wanted in key or key in wanted for key in keys):
            return 1
        return 0

    def matches(self, source: NewsSource, reference: str) -> bool:
        return self.match_strength(source, reference) > 0

    def resolve(self, reference: str) -> Optional[NewsSource]:
        """
        Best configured source for a reference, or None.

        Args:
            reference: Name, id, domain or URL of an outlet

        Returns:
            The first exact match in configuration order, else the first
            substring match, else None
        """
        if reference in self._resolved:
            return self._resolved[reference]

        best: Optional[NewsSource] = None
        best_strength = 0
        ambiguous: List[str] = []
        for source in self._sources:
            strength = self.match_strength(source, reference)
            if strength > best_strength:
                best, best_strength = source, strength
                ambiguous = []
            elif strength and strength == best_strength:
                ambiguous.append(source.id)

        if best is not None and ambiguous:
            logger.warning(
                f"Source reference '{reference}' is ambiguous; using {best.id} over {', '.join(ambiguous)}"
            )
        self._resolved[reference] = best
        return best

    def resolve_id(self, reference: str) -> Optional[str]:
        source = self.resolve(reference)
        return source.id if source else None
