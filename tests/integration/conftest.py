import sys
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from xml.sax.saxutils import escape

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from crossref.core.cache import ResponseCache  # noqa: E402
from crossref.core.clustering import StoryClusterer  # noqa: E402
from crossref.core.database import MemoryRepository  # noqa: E402
from crossref.core.feed_fetcher import FeedFetcher  # noqa: E402
from crossref.core.models import NewsSource, RawArticle, StoryCluster  # noqa: E402
from crossref.core.sources import SourceRegistry  # noqa: E402
from crossref.core.tasks import TaskRunner  # noqa: E402
from crossref.core.verification import (  # noqa: E402
    CrossReferenceVerifier, RecheckScheduler, RuleTable, DEFAULT_RULES,
)

STORY_TITLE = "Kabinet presenteert strenge klimaatplannen voor zware industrie"
STORY_DESCRIPTION = "Minister kondigt uitstootregels aan voor staalfabrieken en raffinaderijen"
OTHER_TITLE = "Voetbalclub Ajax wint spannende wedstrijd tegen Feyenoord"
OTHER_DESCRIPTION = "Supporters vieren overwinning tijdens klassieker in Amsterdam"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def build_rss(items: List[Dict[str, Any]], title: str = "Test feed") -> bytes:
    """Render a minimal RSS 2.0 document with content:encoded and dc:creator support."""
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/" '
        'xmlns:dc="http://purl.org/dc/elements/1.1/">',
        f"<channel><title>{escape(title)}</title><link>https://example.com</link>",
        "<description>Test</description>",
    ]
    for item in items:
        parts.append("<item>")
        parts.append(f"<title>{escape(item['title'])}</title>")
        parts.append(f"<link>{escape(item['link'])}</link>")
        if item.get("description"):
            parts.append(f"<description>{escape(item['description'])}</description>")
        if item.get("content"):
            parts.append(f"<content:encoded><![CDATA[{item['content']}]]></content:encoded>")
        if item.get("author"):
            parts.append(f"<dc:creator>{escape(item['author'])}</dc:creator>")
        if item.get("guid"):
            parts.append(f"<guid>{escape(item['guid'])}</guid>")
        for category in item.get("categories", []):
            parts.append(f"<category>{escape(category)}</category>")
        if item.get("published"):
            parts.append(f"<pubDate>{format_datetime(item['published'])}</pubDate>")
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "\n".join(parts).encode("utf-8")


class FakeTransport:
    """Async url -> bytes callable; values may be bytes or an exception to raise."""

    def __init__(self, responses: Optional[Dict[str, Union[bytes, Exception]]] = None, delay: float = 0.0) -> None:
        self.responses: Dict[str, Union[bytes, Exception]] = dict(responses or {})
        self.delay = delay
        self.calls: List[str] = []

    async def __call__(self, url: str) -> bytes:
        import asyncio

        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(url)
        if response is None:
            raise ConnectionError(f"no route to {url}")
        if isinstance(response, Exception):
            raise response
        return response


class FakeOpenAIClient:
    def __init__(self, fail_times: int = 0, image_url: Optional[str] = None) -> None:
        self.fail_times = fail_times
        self.image_url = image_url
        self.calls: List[Dict[str, Any]] = []
        self.image_prompts: List[str] = []

    def synthesize_story(self, topic: str, articles: List[RawArticle], source_names: Dict[str, str]) -> Dict[str, Any]:
        self.calls.append({"topic": topic, "articles": articles, "source_names": source_names})
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("text generation unavailable")
        return {"title": f"Unified: {topic}", "body": "Combined report.", "confidence": 0.9}

    def generate_image(self, prompt: str) -> Optional[str]:
        self.image_prompts.append(prompt)
        return self.image_url


class FakeNotifier:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: List[Dict[str, Any]] = []

    def send(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.succeed:
            raise ConnectionError(f"listener {url} unavailable")
        self.sent.append({"url": url, "payload": payload})
        return {"url": url, "status_code": 200}


def make_sources() -> List[NewsSource]:
    return [
        NewsSource(id="nu", name="NU.nl", feed_url="https://www.nu.nl/rss/Algemeen", credibility_score=75,
                   tier="primary", cross_reference_required=True),
        NewsSource(id="nos", name="NOS", feed_url="https://feeds.nos.nl/nosnieuwsalgemeen", credibility_score=90,
                   tier="primary"),
        NewsSource(id="volkskrant", name="de Volkskrant", feed_url="https://www.volkskrant.nl/voorpagina/rss.xml",
                   credibility_score=85, tier="secondary"),
        NewsSource(id="telegraaf", name="De Telegraaf", feed_url="https://www.telegraaf.nl/rss",
                   credibility_score=70, tier="secondary"),
        NewsSource(id="bbc", name="BBC News", feed_url="https://feeds.bbci.co.uk/news/world/rss.xml",
                   country="GB", language="en", credibility_score=88, tier="international"),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sources() -> List[NewsSource]:
    return make_sources()


@pytest.fixture
def repository(sources) -> MemoryRepository:
    repo = MemoryRepository()
    for source in sources:
        repo.upsert_source(source)
    return repo


@pytest.fixture
def registry(repository, sources) -> SourceRegistry:
    return SourceRegistry(repository, sources)


@pytest.fixture
def rule_table(registry) -> RuleTable:
    return RuleTable(DEFAULT_RULES, registry.matcher)


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(default_ttl=900)


@pytest.fixture
def make_article(clock):
    """Build (but do not store) an article fetched at the fake clock's time."""

    def _factory(source_id: str, slug: str, title: str = STORY_TITLE, description: str = STORY_DESCRIPTION,
                 quality_score: int = 60, published_at: Optional[datetime] = None) -> RawArticle:
        return RawArticle(
            source_id=source_id,
            title=title,
            url=f"https://{source_id}.example/{slug}",
            description=description,
            quality_score=quality_score,
            published_at=published_at or clock(),
            fetched_at=clock(),
        )

    return _factory


@pytest.fixture
def store_cluster(repository, clock):
    """Persist articles plus a detecting cluster built around them."""

    def _factory(articles: List[RawArticle]) -> StoryCluster:
        repository.upsert_articles(articles)
        clusterer = StoryClusterer(clock=clock)
        group = list(articles)
        cluster = clusterer.build_cluster(group)
        repository.insert_cluster(cluster)
        return cluster

    return _factory


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fetcher_factory(repository, clock, transport, cache):
    def _factory() -> FeedFetcher:
        return FeedFetcher(repository, timeout=1, cache=cache, transport=transport, clock=clock)

    return _factory


@pytest.fixture
def runner(repository, clock) -> TaskRunner:
    return TaskRunner(repository, concurrency=3, poll_interval=0.01, clock=clock)


@pytest.fixture
def submitted():
    """Records synthesize submissions made by the verifier."""
    calls: List[Dict[str, Any]] = []

    def _submit(task_type, payload, priority=None, delay=0, max_retries=None):
        calls.append({"type": task_type, "payload": payload, "priority": priority})
        return f"task-{len(calls)}"

    _submit.calls = calls
    return _submit


@pytest.fixture
def verifier(repository, rule_table, clock, submitted, cache) -> CrossReferenceVerifier:
    return CrossReferenceVerifier(repository, rule_table, task_submitter=submitted, cache=cache, clock=clock)


@pytest.fixture
def recheck_scheduler(repository, verifier, fetcher_factory, registry, clock) -> RecheckScheduler:
    return RecheckScheduler(repository, verifier, fetcher_factory, registry.matcher, clock=clock)
