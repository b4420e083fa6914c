from datetime import timedelta

import pytest

from crossref.core.exceptions import ClusterNotFoundError
from crossref.core.models import ClusterStatus, Recommendation, TaskType
from crossref.core.verification.verifier import NO_MATCH_REASON, NO_RULE_REASON, SYNTHESIS_PRIORITY

from conftest import OTHER_DESCRIPTION, OTHER_TITLE


def test_two_of_three_required_sources_is_immediate(repository, verifier, store_cluster, make_article, submitted):
    """Scenario: trigger plus two required outlets corroborate the story."""
    cluster = store_cluster([
        make_article("nu", "x"),
        make_article("volkskrant", "a"),
        make_article("nos", "b"),
    ])

    result = verifier.verify(cluster.id)

    assert result.recommendation == Recommendation.IMMEDIATE
    assert result.corroboration_score == pytest.approx(2 / 3)
    assert result.applied
    assert result.trigger_article.source_id == "nu"
    assert sorted(result.matched_source_ids) == ["nos", "volkskrant"]
    assert result.missing_sources == ["telegraaf"]

    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.ANALYZING
    assert stored.recommendation == Recommendation.IMMEDIATE
    assert set(stored.sources_found) == {"nu", "volkskrant", "nos"}
    assert stored.sources_missing == ["telegraaf"]
    assert not set(stored.sources_found) & set(stored.sources_missing)

    assert len(submitted.calls) == 1
    assert submitted.calls[0]["type"] == TaskType.SYNTHESIZE
    assert submitted.calls[0]["payload"].cluster_id == cluster.id
    assert submitted.calls[0]["priority"] == SYNTHESIS_PRIORITY


def test_one_required_source_is_delayed_with_recheck(repository, verifier, store_cluster, make_article, clock, submitted):
    """Scenario: only one required outlet matches."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])

    result = verifier.verify(cluster.id)

    assert result.recommendation == Recommendation.DELAYED
    assert result.corroboration_score == pytest.approx(1 / 3)
    assert result.recheck_at == clock() + timedelta(hours=1)

    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.DETECTING
    assert stored.recheck_attempts == 1
    assert stored.next_recheck_at == clock() + timedelta(hours=1)
    assert sorted(stored.sources_missing) == ["nos", "telegraaf"]
    assert submitted.calls == []


def test_trigger_without_matches_is_insufficient(repository, verifier, store_cluster, make_article, submitted):
    """A trigger story no required outlet covers fails without spending rechecks."""
    cluster = store_cluster([make_article("nu", "x"), make_article("bbc", "y")])

    result = verifier.verify(cluster.id)

    assert result.recommendation == Recommendation.INSUFFICIENT
    assert result.reason == NO_MATCH_REASON
    assert result.corroboration_score == 0.0
    assert result.recheck_at is None
    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.FAILED
    assert stored.failure_reason == NO_MATCH_REASON
    assert stored.recheck_attempts == 0
    assert stored.next_recheck_at is None
    assert submitted.calls == []


def test_cluster_without_trigger_is_insufficient(repository, verifier, store_cluster, make_article):
    """Test that no applicable rule fails the cluster."""
    cluster = store_cluster([make_article("nos", "a"), make_article("volkskrant", "b")])

    result = verifier.verify(cluster.id)

    assert result.recommendation == Recommendation.INSUFFICIENT
    assert result.reason == NO_RULE_REASON
    stored = repository.get_cluster(cluster.id)
    assert stored.status == ClusterStatus.FAILED
    assert stored.failure_reason == NO_RULE_REASON


def test_candidate_pool_includes_recent_non_member_articles(repository, verifier, store_cluster, make_article):
    """Test that matching articles outside the cluster count as candidates."""
    cluster = store_cluster([make_article("nu", "x"), make_article("bbc", "y")])
    repository.upsert_articles([
        make_article("telegraaf", "t"),
        make_article("nos", "n", title=OTHER_TITLE, description=OTHER_DESCRIPTION),
    ])
    repository.upsert_articles([make_article("volkskrant", "v")])

    result = verifier.verify(cluster.id)

    assert result.recommendation == Recommendation.IMMEDIATE
    assert sorted(result.matched_source_ids) == ["telegraaf", "volkskrant"]
    stored = repository.get_cluster(cluster.id)
    assert len(stored.candidate_article_ids) == 2


def test_highest_quality_candidate_is_selected(verifier, store_cluster, make_article):
    """Test best-candidate selection per required source."""
    weak = make_article("volkskrant", "weak", quality_score=40)
    strong = make_article("volkskrant", "strong", quality_score=90)
    cluster = store_cluster([make_article("nu", "x"), weak, strong, make_article("nos", "n")])

    result = verifier.verify(cluster.id)

    matched = {a.source_id: a.id for a in result.matched_articles}
    assert matched["volkskrant"] == strong.id


def test_recommendation_only_moves_forward_as_matches_grow(repository, verifier, store_cluster, make_article):
    """Verifier monotonicity as the matched-source set grows."""
    cluster = store_cluster([make_article("nu", "x")])
    ranks = []

    def rank():
        return Recommendation.RANK[verifier.evaluate(repository.get_cluster(cluster.id)).recommendation]

    ranks.append(rank())
    repository.upsert_articles([make_article("volkskrant", "a")])
    ranks.append(rank())
    repository.upsert_articles([make_article("nos", "b")])
    ranks.append(rank())

    assert ranks == sorted(ranks)
    assert ranks[-1] == Recommendation.RANK[Recommendation.IMMEDIATE]


def test_terminal_clusters_are_not_rewritten(repository, verifier, store_cluster, make_article, submitted):
    """Test that a second verification of an analyzing cluster changes nothing."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a"), make_article("nos", "b")])
    verifier.verify(cluster.id)
    version = repository.get_cluster(cluster.id).version

    again = verifier.verify(cluster.id)

    assert again.recommendation == Recommendation.IMMEDIATE
    assert not again.applied
    assert repository.get_cluster(cluster.id).version == version
    assert len(submitted.calls) == 1


def test_stale_cluster_write_is_rejected(repository, verifier, store_cluster, make_article):
    """Test the compare-and-set guard on cluster saves."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    stale = repository.get_cluster(cluster.id)

    verifier.verify(cluster.id)
    stale.status = ClusterStatus.FAILED

    assert not repository.save_cluster(stale, expected_status=ClusterStatus.DETECTING)
    assert repository.get_cluster(cluster.id).status == ClusterStatus.DETECTING


def test_verification_invalidates_cluster_cache(verifier, store_cluster, make_article, cache):
    """Test that cached cluster reads are dropped after a write."""
    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    cache.set("clusters:status", {"stale": True})

    verifier.verify(cluster.id)

    assert cache.get("clusters:status") is None


def test_unknown_cluster_raises(verifier):
    """Test lookup of a missing cluster."""
    with pytest.raises(ClusterNotFoundError):
        verifier.verify("does-not-exist")
