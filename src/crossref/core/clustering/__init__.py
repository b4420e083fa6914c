"""Keyword extraction and greedy story clustering."""

from .keywords import extract_keywords, jaccard_similarity
from .clusterer import StoryClusterer

__all__ = ['extract_keywords', 'jaccard_similarity', 'StoryClusterer']
