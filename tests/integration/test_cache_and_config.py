import pytest

from crossref.core.cache import ResponseCache
from crossref.core.config import ConfigManager


class Ticker:
    """Manually advanced monotonic timer."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_entries_expire_after_ttl():
    timer = Ticker()
    cache = ResponseCache(default_ttl=10, timer=timer)

    cache.set("feed:a", b"<rss/>")
    timer.now = 9.0
    assert cache.get("feed:a") == b"<rss/>"

    timer.now = 11.0
    assert cache.get("feed:a") is None
    assert cache.get_stats()["entries"] == 0


def test_cache_evicts_least_recently_used():
    timer = Ticker()
    cache = ResponseCache(max_entries=2, timer=timer)

    cache.set("a", 1)
    timer.now = 1.0
    cache.set("b", 2)
    timer.now = 2.0
    cache.get("a")
    timer.now = 3.0
    cache.set("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3
    assert cache.get_stats()["evictions"] == 1


def test_get_or_set_and_prefix_invalidation():
    """Test read-through population and prefix invalidation."""
    cache = ResponseCache()
    calls = []

    def build():
        calls.append(1)
        return {"total": 3}

    assert cache.get_or_set("clusters:status", build) == {"total": 3}
    assert cache.get_or_set("clusters:status", build) == {"total": 3}
    assert len(calls) == 1

    cache.set("feed:nu", b"x")
    assert cache.invalidate_prefix("clusters:") == 1
    assert cache.get("clusters:status") is None
    assert cache.get("feed:nu") == b"x"


@pytest.fixture
def clean_env(monkeypatch):
    for key in ["DATABASE_URL", "WEBHOOK_URLS", "ADMISSION_THRESHOLD", "TASK_CONCURRENCY", "LOG_LEVEL",
                "OPENAI_API_KEY", "ENABLE_IMAGE_GENERATION"]:
        # setenv first so teardown also removes values loaded from .env
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_config_defaults(clean_env):
    config = ConfigManager(env_file_path=".env.missing").get_config()

    assert config.app.admission_threshold == 0.30
    assert config.app.max_recheck_attempts == 3
    assert config.app.task_concurrency == 3
    assert not config.has_database()
    assert config.integration_status() == {
        "database": False, "openai": False, "image_generation": False, "webhooks": False
    }


def test_webhook_urls_are_split_and_trimmed(clean_env):
    clean_env.setenv("WEBHOOK_URLS", "https://a.example/hook, https://b.example/hook ,")
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    clean_env.setenv("ENABLE_IMAGE_GENERATION", "true")

    config = ConfigManager(env_file_path=".env.missing").get_config()

    assert config.integrations.webhook_urls == ["https://a.example/hook", "https://b.example/hook"]
    assert config.integration_status()["image_generation"]


@pytest.mark.parametrize("key,value", [
    ("DATABASE_URL", "mysql://localhost/news"),
    ("ADMISSION_THRESHOLD", "1.5"),
    ("TASK_CONCURRENCY", "0"),
    ("TASK_CONCURRENCY", "three"),
    ("RECHECK_INTERVAL_HOURS", "0"),
    ("WEBHOOK_URLS", "ftp://hooks.example"),
    ("LOG_LEVEL", "chatty"),
])
def test_invalid_configuration_is_rejected(clean_env, key, value):
    clean_env.setenv(key, value)

    with pytest.raises(ValueError):
        ConfigManager(env_file_path=".env.missing").get_config()


def test_dotenv_fills_gaps_without_overriding_environment(clean_env, tmp_path, monkeypatch):
    from crossref.core import config as config_module

    (tmp_path / ".env").write_text(
        "# local settings\n"
        "export WEBHOOK_URLS='https://hooks.example/a'\n"
        "TASK_CONCURRENCY=5\n"
        "not an assignment\n"
        "LOG_LEVEL=debug\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(config_module, "PROJECT_ROOT", tmp_path)
    clean_env.setenv("TASK_CONCURRENCY", "2")

    config = ConfigManager().get_config()

    assert config.integrations.webhook_urls == ["https://hooks.example/a"]
    assert config.app.task_concurrency == 2
    assert config.app.log_level == "DEBUG"
