"""Source configuration, registry and fuzzy name matching."""

from .matching import SourceMatcher, normalize_source_name
from .registry import SourceRegistry, load_sources

__all__ = ['SourceMatcher', 'normalize_source_name', 'SourceRegistry', 'load_sources']
