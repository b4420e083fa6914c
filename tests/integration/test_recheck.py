import asyncio
from datetime import timedelta

from crossref.core.models import ClusterStatus, Recommendation
from crossref.core.verification.verifier import EXHAUSTED_REASON

from conftest import STORY_DESCRIPTION, STORY_TITLE, build_rss


def test_recheck_finds_late_corroboration(repository, verifier, recheck_scheduler, store_cluster,
                                          make_article, transport, sources, clock):
    """Scenario: a missing outlet publishes after the delay and the cluster becomes ready."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    assert verifier.verify(cluster.id).recommendation == Recommendation.DELAYED

    clock.advance(hours=1)
    nos, telegraaf = sources[1], sources[3]
    transport.responses[nos.feed_url] = build_rss([
        {"title": STORY_TITLE, "link": "https://nos.nl/artikel/1", "description": STORY_DESCRIPTION,
         "published": clock()},
    ])

    summary = asyncio.run(recheck_scheduler.run_due_rechecks())

    assert summary["processed"] == 1
    assert summary["successful"] == 1
    assert sorted(transport.calls) == sorted([nos.feed_url, telegraaf.feed_url])

    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.ANALYZING
    assert stored.recommendation == Recommendation.IMMEDIATE
    assert "nos" in stored.sources_found
    assert stored.next_recheck_at is None


def test_recheck_is_bounded_and_fails_after_budget(repository, verifier, recheck_scheduler, store_cluster,
                                                   make_article, clock):
    """Scenario: the remaining outlets never publish, so three rechecks end in failure."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    verifier.verify(cluster.id)
    summaries = []

    for _ in range(3):
        clock.advance(hours=1)
        summaries.append(asyncio.run(recheck_scheduler.run_due_rechecks()))

    assert [s["still_waiting"] for s in summaries] == [1, 1, 0]
    assert summaries[-1]["exceeded_attempts"] == 1

    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.FAILED
    assert stored.failure_reason == EXHAUSTED_REASON
    assert stored.recheck_attempts == stored.max_recheck_attempts

    clock.advance(hours=5)
    assert repository.get_due_rechecks(clock()) == []
    assert asyncio.run(recheck_scheduler.run_due_rechecks())["processed"] == 0


def test_recheck_waits_for_the_delay(repository, verifier, recheck_scheduler, store_cluster, make_article,
                                     transport, clock):
    """Test that a cluster is not revisited before its recheck time."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    verifier.verify(cluster.id)

    clock.advance(minutes=59)
    summary = asyncio.run(recheck_scheduler.run_due_rechecks())

    assert summary["processed"] == 0
    assert transport.calls == []
    assert repository.get_cluster(cluster.id).recheck_attempts == 1


def test_recheck_attaches_fetched_candidates(repository, verifier, recheck_scheduler, store_cluster,
                                             make_article, transport, sources, clock):
    """Test that only fetched articles passing admission are attached."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    verifier.verify(cluster.id)
    clock.advance(hours=1, minutes=5)

    telegraaf = sources[3]
    transport.responses[telegraaf.feed_url] = build_rss([
        {"title": STORY_TITLE, "link": "https://www.telegraaf.nl/1", "description": STORY_DESCRIPTION,
         "published": clock() - timedelta(minutes=10)},
        {"title": "Weerbericht voor het weekend", "link": "https://www.telegraaf.nl/2",
         "description": "Zonnig en warm met temperaturen boven twintig graden", "published": clock()},
    ])

    summary = asyncio.run(recheck_scheduler.run_due_rechecks())

    stored = repository.get_cluster(cluster.id)
    assert summary["successful"] == 1
    assert len(stored.candidate_article_ids) == 1
    assert sorted(stored.sources_found) == ["nu", "telegraaf", "volkskrant"]
    assert stored.status == ClusterStatus.ANALYZING
    assert stored.recheck_attempts == 1
