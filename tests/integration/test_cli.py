import json

import pytest

from crossref.cli_router import CLIRouter
from crossref.core.config import ApplicationConfig, Config, DatabaseConfig, IntegrationConfig
from crossref.core.container import Container, _setup_default_services
from crossref.core.feed_fetcher import FeedFetcher
from crossref.core.models import TaskStatus


@pytest.fixture
def container(repository, transport, clock, cache):
    """Default wiring with the bundled configuration, an in-memory store and a fake transport."""
    container = Container()
    _setup_default_services(container)
    container.register_instance("config", Config(database=DatabaseConfig(), integrations=IntegrationConfig(),
                                                 app=ApplicationConfig()))
    container.register_instance("repository", repository)
    container.register_instance("clock", clock)
    container.register_instance("cache", cache)
    container.register_factory(
        "feed_fetcher", lambda: FeedFetcher(repository, timeout=1, cache=cache, transport=transport, clock=clock)
    )
    return container


@pytest.fixture
def cli(container):
    return CLIRouter(container=container)


def _json_body(output):
    """Strip the title banner printed before a JSON document."""
    return json.loads(output[output.index("{"):])


def test_no_command_prints_help(cli, capsys):
    assert cli.route_command([]) == 1
    assert "crawl" in capsys.readouterr().out


def test_crawl_run_survives_failing_sources(cli, capsys):
    """Test that a crawl where every feed fails still exits 0."""
    assert cli.route_command(["crawl", "run"]) == 0

    summary = _json_body(capsys.readouterr().out)
    assert summary["total_sources"] == 7
    assert summary["failed_sources"] == 7
    assert summary["clusters_created"] == 0


def test_crossref_status_and_verify(cli, capsys, store_cluster, make_article):
    assert cli.route_command(["crossref", "status"]) == 0
    status = _json_body(capsys.readouterr().out)
    assert status["total_clusters"] == 0
    assert status["sources_by_tier"]["specialty"] == 1

    cluster = store_cluster([make_article("nu", "x"), make_article("volkskrant", "a")])
    assert cli.route_command(["crossref", "verify", "--cluster-id", cluster.id]) == 0
    assert _json_body(capsys.readouterr().out)["recommendation"] == "delayed"

    assert cli.route_command(["crossref", "verify", "--cluster-id", "missing"]) == 1


def test_crossref_recheck_with_nothing_due(cli, capsys):
    assert cli.route_command(["crossref", "recheck"]) == 0
    assert _json_body(capsys.readouterr().out)["processed"] == 0


def test_tasks_submit_and_stats(cli, repository, capsys):
    """Test queueing through the CLI and the error exit codes."""
    assert cli.route_command(["tasks", "submit", "--type", "fetch", "--payload", '{"source_id": "nu"}',
                              "--delay", "60"]) == 0
    assert "Submitted fetch task" in capsys.readouterr().out
    assert repository.count_tasks_by_status()[TaskStatus.PENDING] == 1

    assert cli.route_command(["tasks", "stats"]) == 0
    stats = _json_body(capsys.readouterr().out)
    assert stats["tasks"]["pending"] == 1
    assert "synthesize" in stats["handlers"]

    assert cli.route_command(["tasks", "submit", "--type", "fetch", "--payload", "not json"]) == 22
    assert cli.route_command(["tasks", "submit", "--type", "bogus"]) == 78
    assert cli.route_command(["tasks", "show", "--task-id", "missing"]) == 1


def test_tasks_run_reports_failures_without_crashing(cli, capsys):
    """Test that a failing task is rescheduled instead of crashing the command."""
    assert cli.route_command(["tasks", "submit", "--type", "synthesize", "--payload", '{"cluster_id": "c1"}']) == 0
    capsys.readouterr()

    assert cli.route_command(["tasks", "run"]) == 0
    output = capsys.readouterr().out
    assert "Executed 1 tasks" in output
    assert _json_body(output)["retried"] == 1


def test_health_check(cli, capsys):
    assert cli.route_command(["health", "check"]) == 0
    output = capsys.readouterr().out
    assert "Repository (memory): OK" in output
    assert "openai: not configured" in output
    assert "System healthy" in output
