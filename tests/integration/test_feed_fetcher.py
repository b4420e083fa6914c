import asyncio
from datetime import timedelta

from crossref.core.feed_fetcher import FeedFetcher, calculate_quality_score, clean_text

from conftest import FakeTransport, build_rss


def _ingest(fetcher_factory, source, use_cache=True):
    async def _run():
        async with fetcher_factory() as fetcher:
            return await fetcher.ingest_source(source, use_cache=use_cache)

    return asyncio.run(_run())


def test_parses_entries_with_full_content_author_and_categories(repository, sources, transport, fetcher_factory, clock):
    """Test that content:encoded, dc:creator, guid and categories are captured."""
    nu = sources[0]
    transport.responses[nu.feed_url] = build_rss([
        {
            "title": "  Kabinet   presenteert klimaatplannen ",
            "link": "https://www.nu.nl/a/1",
            "description": "<p>Korte <b>samenvatting</b> van het nieuws</p>",
            "content": "<p>" + "Volledige tekst. " * 20 + "</p>",
            "author": "Jan Jansen",
            "guid": "nu-1",
            "categories": ["politiek", "klimaat", "economie", "binnenland", "europa", "extra"],
            "published": clock() - timedelta(hours=1),
        }
    ])

    outcome = _ingest(fetcher_factory, nu)

    assert outcome.success
    assert len(outcome.new_article_ids) == 1
    article = outcome.articles[0]
    assert article.title == "Kabinet presenteert klimaatplannen"
    assert article.description == "Korte samenvatting van het nieuws"
    assert article.content.startswith("Volledige tekst.")
    assert article.author == "Jan Jansen"
    assert article.guid == "nu-1"
    assert len(article.categories) == 5
    assert article.published_at == clock() - timedelta(hours=1)
    assert repository.get_source("nu").last_fetched_at == clock()


def test_description_used_when_no_full_content(sources, transport, fetcher_factory, clock):
    """Test that content falls back to the summary."""
    nu = sources[0]
    transport.responses[nu.feed_url] = build_rss([
        {"title": "Titel van artikel", "link": "https://www.nu.nl/a/2", "description": "Alleen samenvatting",
         "published": clock()},
    ])

    outcome = _ingest(fetcher_factory, nu)

    assert outcome.articles[0].content == "Alleen samenvatting"
    assert outcome.articles[0].guid == "https://www.nu.nl/a/2"


def test_stale_entries_are_dropped_and_undated_kept(sources, transport, fetcher_factory, clock):
    """Test the 48 hour freshness window."""
    nu = sources[0]
    transport.responses[nu.feed_url] = build_rss([
        {"title": "Vers artikel", "link": "https://www.nu.nl/fresh", "published": clock() - timedelta(hours=47)},
        {"title": "Oud artikel", "link": "https://www.nu.nl/stale", "published": clock() - timedelta(hours=49)},
        {"title": "Zonder datum", "link": "https://www.nu.nl/undated"},
    ])

    outcome = _ingest(fetcher_factory, nu)

    urls = {a.url for a in outcome.articles}
    assert urls == {"https://www.nu.nl/fresh", "https://www.nu.nl/undated"}
    assert outcome.skipped_stale == 1


def test_ingest_is_idempotent(repository, sources, transport, fetcher_factory, clock):
    """Test that ingesting the same feed twice creates no duplicates."""
    nu = sources[0]
    transport.responses[nu.feed_url] = build_rss([
        {"title": "Eerste artikel", "link": "https://www.nu.nl/1", "published": clock()},
        {"title": "Tweede artikel", "link": "https://www.nu.nl/2", "published": clock()},
    ])

    first = _ingest(fetcher_factory, nu, use_cache=False)
    count_after_first = repository.count_articles()
    second = _ingest(fetcher_factory, nu, use_cache=False)

    assert len(first.new_article_ids) == 2
    assert second.success
    assert second.new_article_ids == []
    assert repository.count_articles() == count_after_first == 2


def test_connection_failure_returns_empty_outcome_and_counts_error(repository, sources, fetcher_factory):
    """Test that a failing source is absorbed and bumps its error counter."""
    volkskrant = sources[2]

    first = _ingest(fetcher_factory, volkskrant)
    second = _ingest(fetcher_factory, volkskrant)

    assert not first.success
    assert first.articles == []
    assert "Failed to connect" in first.error
    assert not second.success
    assert repository.get_source("volkskrant").error_count == 2


def test_timeout_is_a_fetch_failure(repository, sources, clock):
    """Test that an unresponsive feed times out without failing the batch."""
    nu, nos = sources[0], sources[1]
    transport = FakeTransport({nu.feed_url: build_rss([]), nos.feed_url: build_rss([])}, delay=0.5)

    async def _run():
        async with FeedFetcher(repository, timeout=0.05, transport=transport, clock=clock) as fetcher:
            return await fetcher.ingest_sources([nu, nos])

    outcomes = asyncio.run(_run())

    assert [o.source_id for o in outcomes] == ["nu", "nos"]
    assert all(not o.success for o in outcomes)
    assert "Timeout" in outcomes[0].error
    assert repository.get_source("nu").error_count == 1


def test_malformed_feed_is_absorbed(repository, sources, transport, fetcher_factory):
    """Test that unparseable XML yields an empty failed outcome."""
    nu = sources[0]
    transport.responses[nu.feed_url] = b"this is not a feed <<< at all"

    outcome = _ingest(fetcher_factory, nu)

    assert not outcome.success
    assert outcome.articles == []
    assert repository.get_source("nu").error_count == 1


def test_success_resets_error_counter(repository, sources, transport, fetcher_factory, clock):
    """Test that a successful fetch clears earlier errors."""
    nu = sources[0]
    _ingest(fetcher_factory, nu)
    assert repository.get_source("nu").error_count == 1

    transport.responses[nu.feed_url] = build_rss([{"title": "Hersteld", "link": "https://www.nu.nl/ok", "published": clock()}])
    outcome = _ingest(fetcher_factory, nu)

    assert outcome.success
    assert repository.get_source("nu").error_count == 0


def test_feed_body_is_cached_unless_bypassed(sources, transport, fetcher_factory, clock):
    """Test read-through caching of feed bodies and the recheck bypass."""
    nu = sources[0]
    transport.responses[nu.feed_url] = build_rss([{"title": "Gecached", "link": "https://www.nu.nl/c", "published": clock()}])

    _ingest(fetcher_factory, nu)
    _ingest(fetcher_factory, nu)
    assert transport.calls == [nu.feed_url]

    _ingest(fetcher_factory, nu, use_cache=False)
    assert transport.calls == [nu.feed_url, nu.feed_url]


def test_quality_score_rewards_complete_entries():
    """Test the advisory quality score."""
    bare = calculate_quality_score("Kort", "", "", None, [], None, 50)
    complete = calculate_quality_score("Een degelijke titel van een artikel", "x" * 60, "y" * 300,
                                       "Auteur", ["politiek"], "guid-1", 90)

    assert bare == 50
    assert complete == 100
    assert 0 <= calculate_quality_score("", "", "", None, [], None, 0) <= 100


def test_clean_text_strips_markup_and_truncates():
    """Test that HTML is removed, entities unescaped and length capped."""
    assert clean_text("<p>Caf&eacute;   <i>nieuws</i></p>", 100) == "Café nieuws"
    assert clean_text("a" * 600, 500) == "a" * 500
    assert clean_text(None, 10) == ""
