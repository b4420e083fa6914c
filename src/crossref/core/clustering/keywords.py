#!/usr/bin/env python3
"""
Keyword extraction and lexical similarity.

Keywords are the top-K tokens by frequency after lowercasing, stripping
punctuation, dropping short tokens and removing Dutch and English stop
words. There is no stemming, so morphological variants ("verkiezing",
"verkiezingen") count as different keywords.
"""

import re
import unicodedata
from collections import Counter
from typing import Iterable, List, Set

STOP_WORDS = {
    # Dutch
    'het', 'de', 'een', 'van', 'en', 'in', 'op', 'met', 'voor', 'door',
    'aan', 'bij', 'uit', 'over', 'onder', 'tussen', 'tijdens', 'naar',
    'zijn', 'wordt', 'worden', 'werd', 'werden', 'heeft', 'hebben', 'had', 'maar',
    'deze', 'dit', 'die', 'dat', 'want', 'omdat', 'niet', 'nog', 'ook', 'meer',
    'veel', 'geen', 'kunnen', 'kan', 'zich', 'alle', 'waar', 'toen', 'dan', 'als',
    'haar', 'hun', 'hem', 'wat', 'wie', 'welke', 'waarom', 'hoe', 'tegen',
    'sinds', 'vanaf', 'zonder', 'binnen', 'buiten', 'jaar', 'gaat', 'gaan', 'komt',
    'komen', 'moet', 'moeten', 'zegt', 'zeggen', 'volgens', 'eerste', 'nieuwe',
    # English
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'that', 'this', 'these', 'those', 'with', 'from', 'have', 'has', 'been', 'were',
    'will', 'would', 'could', 'should', 'their', 'there', 'about', 'after', 'before',
    'into', 'over', 'said', 'says', 'than', 'they', 'them', 'what', 'when', 'which',
    'while', 'where', 'your', 'more', 'most', 'also', 'just', 'only', 'some', 'such',
    'being', 'does', 'during', 'between', 'through', 'against', 'because', 'other',
}

_NON_WORD = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """Lowercase, NFKC-normalize and replace punctuation with spaces."""
    if not text:
        return ''
    text = unicodedata.normalize('NFKC', text).lower()
    text = _NON_WORD.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip()


def tokenize(text: str, min_length: int = 4) -> List[str]:
    """Meaningful tokens in document order."""
    return [
        token for token in normalize_text(text).split()
        if len(token) >= min_length and token not in STOP_WORDS and not token.isdigit()
    ]


def extract_keywords(text: str, max_keywords: int = 10, min_length: int = 4) -> List[str]:
    """
    Top-K keywords by frequency.

    Ties keep first-occurrence order, so extraction is deterministic.

    Args:
        text: Source text (typically title plus description)
        max_keywords: K
        min_length: Shorter tokens are dropped

    Returns:
        Up to K keywords, most frequent first
    """
    counts = Counter(tokenize(text, min_length))
    return [word for word, _ in counts.most_common(max_keywords)]


def jaccard_similarity(first: Iterable[str], second: Iterable[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets are not similar."""
    a: Set[str] = set(first)
    b: Set[str] = set(second)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def rank_keywords(keyword_lists: Iterable[Iterable[str]], limit: int) -> List[str]:
    """Frequency-rank keywords across several lists."""
    counts: Counter = Counter()
    for keywords in keyword_lists:
        counts.update(keywords)
    return [word for word, _ in counts.most_common(limit)]
