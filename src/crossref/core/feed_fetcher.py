#!/usr/bin/env python3
"""
Async Feed Fetcher

Retrieves RSS/Atom feeds in parallel, normalizes entries into RawArticle
objects and upserts them into the repository. A failing source never fails
the batch: timeouts, HTTP errors and unparseable XML are logged, counted on
the source's error counter and turned into an empty result.
"""

import asyncio
import hashlib
import html
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

import aiohttp
import feedparser
import pytz

from .cache import ResponseCache
from .database import Repository
from .exceptions import SourceError, SourceConnectionError, SourceParseError, SourceTimeoutError
from .models import NewsSource, RawArticle
from .time_utils import Clock, parse_datetime, utc_now

logger = logging.getLogger(__name__)

Transport = Callable[[str], Awaitable[bytes]]

_HTML_TAG = re.compile(r'<[^>]+>')
_WHITESPACE = re.compile(r'\s+')

MAX_CATEGORIES = 5


def clean_text(value: Optional[str], max_length: int) -> str:
    """Strip markup, unescape entities, collapse whitespace and truncate."""
    if not value:
        return ''
    text = html.unescape(_HTML_TAG.sub(' ', value))
    text = _WHITESPACE.sub(' ', text).strip()
    return text[:max_length]


def calculate_quality_score(title: str, description: str, content: str, author: Optional[str],
                            categories: List[str], guid: Optional[str], credibility_score: int) -> int:
    """
    Advisory quality score from structural signals.

    Starts at 50, shifts by source credibility and rewards complete entries.

    Returns:
        Score clamped to 0..100
    """
    score = 50.0
    score += (credibility_score - 50) * 0.4

    if 10 < len(title) < 200:
        score += 15
    if len(description) > 50:
        score += 10
    if len(content) > 200:
        score += 10
    if author:
        score += 10
    if categories:
        score += 5
    if guid:
        score += 5

    return int(round(max(0.0, min(100.0, score))))


@dataclass
class FetchOutcome:
    """Result of fetching one source."""
    source_id: str
    success: bool
    articles: List[RawArticle] = field(default_factory=list)
    new_article_ids: List[str] = field(default_factory=list)
    skipped_stale: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def new_articles(self) -> List[RawArticle]:
        new_ids = set(self.new_article_ids)
        return [a for a in self.articles if a.id in new_ids]

    def to_dict(self) -> dict:
        return {
            'source_id': self.source_id,
            'success': self.success,
            'fetched': len(self.articles),
            'new': len(self.new_article_ids),
            'skipped_stale': self.skipped_stale,
            'error': self.error,
            'duration_seconds': round(self.duration_seconds, 3)
        }


class FeedFetcher:
    """Async feed fetcher with bounded concurrency, per-feed timeouts and caching."""

    def __init__(self,
                 repository: Repository,
                 timeout: float = 10,
                 max_concurrent: int = 5,
                 freshness_hours: int = 48,
                 user_agent: str = 'Mozilla/5.0 (compatible; NewsCrossRef/1.0)',
                 cache: Optional[ResponseCache] = None,
                 cache_ttl: int = 900,
                 max_title_length: int = 500,
                 max_description_length: int = 2000,
                 transport: Optional[Transport] = None,
                 clock: Clock = utc_now):
        """
        Initialize feed fetcher.

        Args:
            repository: Store for articles and source bookkeeping
            timeout: Per-feed timeout in seconds
            max_concurrent: Maximum concurrent requests
            freshness_hours: Entries older than this are dropped
            user_agent: User-Agent header for feed requests
            cache: Optional response cache for raw feed bodies
            cache_ttl: TTL for cached feed bodies
            max_title_length: Titles are truncated to this length
            max_description_length: Descriptions are truncated to this length
            transport: Async callable url -> bytes, replaces the aiohttp session
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.freshness_window = timedelta(hours=freshness_hours)
        self.user_agent = user_agent
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.max_title_length = max_title_length
        self.max_description_length = max_description_length
        self._transport = transport
        self._clock = clock
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        if self._transport is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.user_agent}
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _download(self, url: str) -> bytes:
        if self._transport is not None:
            return await self._transport(url)
        if not self._session:
            raise RuntimeError("FeedFetcher must be used as async context manager")
        async with self._session.get(url) as response:
            response.raise_for_status()
            return await response.read()

    async def _fetch_body(self, source: NewsSource, use_cache: bool) -> bytes:
        """Download a feed body, translating transport failures into SourceError."""
        cache_key = self._cache_key(source.feed_url)
        if use_cache and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for feed: {source.feed_url}")
                return cached
            logger.debug(f"Cache miss for feed: {source.feed_url}")

        try:
            body = await asyncio.wait_for(self._download(source.feed_url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SourceTimeoutError(source.name, self.timeout) from e
        except aiohttp.ClientError as e:
            raise SourceConnectionError(source.name, source.feed_url, e) from e
        except OSError as e:
            raise SourceConnectionError(source.name, source.feed_url, e) from e

        if self.cache is not None:
            self.cache.set(cache_key, body, self.cache_ttl)
        return body

    def _parse_body(self, source: NewsSource, body: bytes) -> feedparser.FeedParserDict:
        feed = feedparser.parse(body)
        if feed.bozo and not feed.entries:
            raise SourceParseError(source.name, 'feed XML', feed.get('bozo_exception') or ValueError('no entries'))
        if feed.bozo:
            logger.warning(f"Feed parsing warning for {source.name}: {feed.get('bozo_exception')}")
        return feed

    async def fetch_source(self, source: NewsSource, use_cache: bool = True) -> FetchOutcome:
        """
        Fetch and normalize one source without storing anything.

        Updates the source's bookkeeping: last-fetched time and error reset on
        success, error counter increment on failure.

        Args:
            source: Source to fetch
            use_cache: Allow a cached feed body (rechecks pass False)

        Returns:
            FetchOutcome; on failure `success` is False and `articles` is empty
        """
        started = time.monotonic()
        try:
            body = await self._fetch_body(source, use_cache)
            feed = self._parse_body(source, body)
        except SourceError as e:
            error_count = self.repository.record_fetch_failure(source.id)
            logger.error(f"Fetch failed for {source.id} (errors: {error_count}): {e.message}")
            return FetchOutcome(
                source_id=source.id,
                success=False,
                error=e.message,
                duration_seconds=time.monotonic() - started
            )

        now = self._clock()
        articles = self.parse_entries(feed, source, fetched_at=now)
        fresh = [a for a in articles if self.is_fresh(a, now)]
        self.repository.record_fetch_success(source.id, now)

        logger.info(f"Fetched {len(fresh)} fresh articles from {source.id} ({len(articles) - len(fresh)} stale)")
        return FetchOutcome(
            source_id=source.id,
            success=True,
            articles=fresh,
            skipped_stale=len(articles) - len(fresh),
            duration_seconds=time.monotonic() - started
        )

    async def ingest_source(self, source: NewsSource, use_cache: bool = True) -> FetchOutcome:
        """Fetch one source and upsert its fresh articles."""
        outcome = await self.fetch_source(source, use_cache=use_cache)
        if outcome.articles:
            outcome.new_article_ids = self.repository.upsert_articles(outcome.articles)
        return outcome

    async def ingest_sources(self, sources: List[NewsSource], use_cache: bool = True) -> List[FetchOutcome]:
        """
        Fetch and ingest many sources in parallel.

        Args:
            sources: Sources to fetch
            use_cache: Allow cached feed bodies

        Returns:
            One FetchOutcome per source, in input order
        """
        if not sources:
            return []

        logger.info(f"Fetching {len(sources)} feeds in parallel")
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def ingest_with_semaphore(source: NewsSource) -> FetchOutcome:
            async with semaphore:
                return await self.ingest_source(source, use_cache=use_cache)

        outcomes = await asyncio.gather(*(ingest_with_semaphore(s) for s in sources))

        successful = sum(1 for o in outcomes if o.success)
        logger.info(f"Fetched {successful}/{len(sources)} feeds in {time.monotonic() - start_time:.2f}s")
        return list(outcomes)

    def parse_entries(self, feed: feedparser.FeedParserDict, source: NewsSource,
                      fetched_at: Optional[datetime] = None) -> List[RawArticle]:
        """
        Map feed entries to RawArticle objects.

        Entries without a title or link are skipped.
        """
        articles = []
        for entry in feed.get('entries', []):
            title = clean_text(entry.get('title'), self.max_title_length)
            url = (entry.get('link') or '').strip()
            if not title or not url:
                logger.debug(f"Skipping entry without title/link from {source.id}")
                continue

            description = clean_text(entry.get('summary'), self.max_description_length)
            content = self._extract_content(entry) or description
            author = (entry.get('author') or '').strip() or None
            categories = [t.get('term') for t in entry.get('tags', []) if t.get('term')][:MAX_CATEGORIES]
            guid = entry.get('id') or entry.get('guid') or url

            articles.append(RawArticle(
                source_id=source.id,
                title=title,
                url=url,
                description=description,
                content=content,
                author=author,
                published_at=self.parse_published_date(entry),
                guid=guid,
                categories=categories,
                quality_score=calculate_quality_score(
                    title, description, content, author, categories, guid, source.credibility_score
                ),
                fetched_at=fetched_at
            ))
        return articles

    def _extract_content(self, entry) -> str:
        """Full text from content:encoded when the feed carries it."""
        for block in entry.get('content', []) or []:
            value = block.get('value')
            if value:
                return clean_text(value, 20000)
        return ''

    def parse_published_date(self, entry) -> Optional[datetime]:
        """Parse published date from feed entry, normalized to UTC."""
        for date_field in ['published', 'updated', 'created']:
            parsed = parse_datetime(entry.get(date_field))
            if parsed is not None:
                return parsed

        struct = entry.get('published_parsed') or entry.get('updated_parsed')
        if struct:
            try:
                return pytz.utc.localize(datetime(*struct[:6]))
            except (TypeError, ValueError) as e:
                logger.debug(f"Failed to parse published_parsed: {e}")
        return None

    def is_fresh(self, article: RawArticle, now: datetime) -> bool:
        """Undated entries are kept; dated ones must fall inside the freshness window."""
        if article.published_at is None:
            return True
        return article.published_at >= now - self.freshness_window

    def _cache_key(self, url: str) -> str:
        return f"feed:{hashlib.md5(url.encode()).hexdigest()}"
