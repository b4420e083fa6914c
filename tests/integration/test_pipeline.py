import asyncio

import pytest

from crossref.core.clustering import StoryClusterer
from crossref.core.models import ArticleStatus, ClusterStatus, Recommendation
from crossref.core.pipeline import CrossReferencePipeline

from conftest import OTHER_DESCRIPTION, OTHER_TITLE, STORY_DESCRIPTION, STORY_TITLE, build_rss


@pytest.fixture
def pipeline(repository, registry, fetcher_factory, verifier, recheck_scheduler, rule_table, cache, clock):
    return CrossReferencePipeline(
        repository, registry, fetcher_factory, StoryClusterer(clock=clock), verifier,
        recheck_scheduler, rule_table, cache=cache, clock=clock
    )


def _story_feed(host, clock, title=STORY_TITLE, description=STORY_DESCRIPTION, slug="1"):
    return build_rss([{"title": title, "link": f"https://{host}/{slug}", "description": description,
                       "published": clock()}])


@pytest.fixture
def loaded_transport(transport, sources, clock):
    nu, nos, volkskrant, telegraaf, bbc = sources
    transport.responses[nu.feed_url] = _story_feed("www.nu.nl", clock)
    transport.responses[nos.feed_url] = _story_feed("nos.nl", clock)
    transport.responses[volkskrant.feed_url] = _story_feed("www.volkskrant.nl", clock)
    transport.responses[bbc.feed_url] = _story_feed("www.bbc.co.uk", clock, OTHER_TITLE, OTHER_DESCRIPTION)
    return transport


def test_full_crawl_clusters_and_verifies(pipeline, repository, loaded_transport, sources, submitted):
    """Test one pass from feeds to an immediate recommendation."""
    summary = asyncio.run(pipeline.run_full_crawl())

    assert summary["total_sources"] == 5
    assert summary["successful_sources"] == 4
    assert summary["failed_sources"] == 1
    assert summary["errors"][0]["source_id"] == "telegraaf"
    assert summary["new_articles"] == 4
    assert summary["clusters_created"] == 1
    assert summary["recommendations"][Recommendation.IMMEDIATE] == 1
    assert summary["verification_errors"] == []

    cluster = repository.list_clusters()[0]
    assert cluster.status == ClusterStatus.ANALYZING
    assert sorted(cluster.sources_found) == ["nos", "nu", "volkskrant"]
    assert len(submitted.calls) == 1

    # the unrelated article stays available for a later pass
    pending = repository.get_recent_articles(cluster.created_at, status=ArticleStatus.PENDING)
    assert [a.source_id for a in pending] == ["bbc"]


def test_primary_sources_fetched_first(pipeline, loaded_transport, sources):
    """Test that the primary tier is fetched before the rest."""
    asyncio.run(pipeline.run_full_crawl(verify=False))

    primary_urls = {sources[0].feed_url, sources[1].feed_url}
    assert set(loaded_transport.calls[:2]) == primary_urls


def test_crawl_without_verification_leaves_clusters_detecting(pipeline, repository, loaded_transport):
    """Test the --no-verify path."""
    summary = asyncio.run(pipeline.run_full_crawl(verify=False))

    assert summary["clusters_created"] == 1
    assert sum(summary["recommendations"].values()) == 0
    assert repository.list_clusters()[0].status == ClusterStatus.DETECTING


def test_pending_articles_carry_over_to_next_crawl(pipeline, repository, loaded_transport, sources, clock):
    """Test that an earlier singleton joins a cluster with a later article."""
    asyncio.run(pipeline.run_full_crawl())

    clock.advance(minutes=30)
    telegraaf = sources[3]
    loaded_transport.responses[telegraaf.feed_url] = _story_feed(
        "www.telegraaf.nl", clock, OTHER_TITLE, OTHER_DESCRIPTION, slug="ajax"
    )
    summary = asyncio.run(pipeline.run_full_crawl())

    assert summary["new_articles"] == 1
    assert summary["clusters_created"] == 1
    assert summary["recommendations"][Recommendation.INSUFFICIENT] == 1

    sports = [c for c in repository.list_clusters() if set(c.sources_found) == {"telegraaf", "bbc"}]
    assert len(sports) == 1
    assert sports[0].status == ClusterStatus.FAILED


def test_status_report_is_cached_and_invalidated(pipeline, repository, loaded_transport, store_cluster,
                                                 make_article):
    """Test the status report contents and cache invalidation on cluster writes."""
    asyncio.run(pipeline.run_full_crawl())

    status = pipeline.get_status()
    assert status["total_clusters"] == 1
    assert status["clusters_by_status"][ClusterStatus.ANALYZING] == 1
    assert status["multi_source_clusters"] == 1
    assert status["total_articles"] == 4
    assert status["sources_by_tier"]["primary"] == 2
    assert status["rules"][0]["trigger_source"] == "nu.nl"

    fire = {"title": "Brand verwoest historische molen in Zaanse dorp",
            "description": "Brandweer kon oude houten molen niet meer redden"}
    cluster = store_cluster([make_article("nu", "late", **fire), make_article("volkskrant", "late", **fire)])
    assert pipeline.get_status()["total_clusters"] == 1

    result = pipeline.verify_cluster(cluster.id)

    assert result["recommendation"] == Recommendation.DELAYED
    refreshed = pipeline.get_status()
    assert refreshed["total_clusters"] == 2
    assert refreshed["awaiting_recheck"] == 1
    assert refreshed["next_recheck_at"] is not None


def test_recheck_sweep_through_pipeline(pipeline, store_cluster, make_article, clock):
    """Test the sweep entry point with nothing due, then one cluster due."""
    assert asyncio.run(pipeline.run_recheck_sweep())["processed"] == 0

    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    pipeline.verify_cluster(cluster.id)
    clock.advance(hours=1)

    summary = asyncio.run(pipeline.run_recheck_sweep())

    assert summary["processed"] == 1
    assert summary["still_waiting"] == 1
