#!/usr/bin/env python3
"""
Dependency Injection Container

Builds every pipeline service once with its dependencies injected
(repository, rule table, cache, clock), so no component reaches for a
hidden module-level instance. The CLI resets the global container on
exit, which closes the repository. Tests build their own Container with
register_instance() overrides.
"""

import logging
import threading
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Container:
    """Named service registry with singleton and factory lifecycles."""

    def __init__(self):
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._singletons: Dict[str, Any] = {}
        # Re-entrant: singleton factories resolve their own dependencies through get()
        self._lock = threading.RLock()

    def register_singleton(self, service_name: str, factory: Callable[[], T]) -> None:
        """
        Register a service created once on first use.

        Args:
            service_name: Unique name for the service
            factory: Zero-argument callable building the instance
        """
        with self._lock:
            factory._is_singleton = True
            self._factories[service_name] = factory
            self._singletons.pop(service_name, None)

    def register_factory(self, service_name: str, factory: Callable[[], T]) -> None:
        """Register a service built anew on every get()."""
        with self._lock:
            self._factories[service_name] = factory

    def register_instance(self, service_name: str, instance: T) -> None:
        """Register a pre-built instance (used by tests to swap in fakes)."""
        with self._lock:
            self._singletons[service_name] = instance

    def get(self, service_name: str) -> Any:
        """
        Resolve a service by name.

        Raises:
            KeyError: If the service is not registered
        """
        with self._lock:
            if service_name in self._singletons:
                return self._singletons[service_name]
            if service_name not in self._factories:
                raise KeyError(f"Service '{service_name}' not registered")

            factory = self._factories[service_name]
            instance = factory()
            if getattr(factory, '_is_singleton', False):
                self._singletons[service_name] = instance
                logger.debug(f"Created singleton instance for '{service_name}'")
            return instance

    def clear(self) -> None:
        """Drop all registrations, closing the repository if one was built."""
        with self._lock:
            repository = self._singletons.get('repository')
            if repository is not None:
                repository.close()
            self._factories.clear()
            self._singletons.clear()


def singleton(factory_func: Callable[[], T]) -> Callable[[], T]:
    """Mark a factory function as singleton."""
    @wraps(factory_func)
    def wrapper():
        return factory_func()

    wrapper._is_singleton = True
    return wrapper


_container: Optional[Container] = None
_container_lock = threading.Lock()


def get_container() -> Container:
    """Get global container instance (thread-safe singleton)."""
    global _container
    if _container is None:
        with _container_lock:
            if _container is None:
                _container = Container()
                _setup_default_services(_container)
    return _container


def reset_container() -> None:
    """Reset global container (useful for testing)."""
    global _container
    with _container_lock:
        if _container:
            _container.clear()
        _container = None


def _setup_default_services(container: Container) -> None:
    """Register the pipeline's services in dependency order."""

    @singleton
    def create_config():
        from .config import get_config
        return get_config()

    @singleton
    def create_clock():
        from .time_utils import utc_now
        return utc_now

    @singleton
    def create_cache():
        from .cache import ResponseCache
        config = container.get('config')
        return ResponseCache(default_ttl=config.app.feed_cache_ttl_seconds)

    @singleton
    def create_repository():
        from .database import create_repository as build_repository
        return build_repository(container.get('config'))

    @singleton
    def create_source_registry():
        from .sources import SourceRegistry, load_sources
        config = container.get('config')
        registry = SourceRegistry(container.get('repository'), load_sources(config.app.sources_file))
        registry.seed()
        return registry

    @singleton
    def create_rule_table():
        from .verification import RuleTable, load_rules
        config = container.get('config')
        rules = load_rules(config.app.rules_file, default_delay_hours=config.app.recheck_interval_hours)
        return RuleTable(rules, container.get('source_registry').matcher)

    def create_feed_fetcher():
        from .feed_fetcher import FeedFetcher
        config = container.get('config')
        return FeedFetcher(
            repository=container.get('repository'),
            timeout=config.app.feed_timeout,
            max_concurrent=config.app.max_concurrent_feeds,
            freshness_hours=config.app.freshness_hours,
            user_agent=config.app.feed_user_agent,
            cache=container.get('cache'),
            cache_ttl=config.app.feed_cache_ttl_seconds,
            max_title_length=config.app.max_title_length,
            max_description_length=config.app.max_description_length,
            clock=container.get('clock')
        )

    @singleton
    def create_clusterer():
        from .clustering import StoryClusterer
        config = container.get('config')
        return StoryClusterer(
            admission_threshold=config.app.admission_threshold,
            cluster_similarity_threshold=config.app.cluster_similarity_metadata,
            max_keywords=config.app.max_keywords,
            min_keyword_length=config.app.min_keyword_length,
            max_recheck_attempts=config.app.max_recheck_attempts,
            clock=container.get('clock')
        )

    @singleton
    def create_task_runner():
        from .tasks import TaskRunner
        config = container.get('config')
        return TaskRunner(
            repository=container.get('repository'),
            concurrency=config.app.task_concurrency,
            default_priority=config.app.task_default_priority,
            default_max_retries=config.app.task_max_retries,
            poll_interval=config.app.task_poll_interval,
            lease_seconds=config.app.task_lease_seconds,
            webhook_urls=config.integrations.webhook_urls,
            clock=container.get('clock')
        )

    @singleton
    def create_verifier():
        from .verification import CrossReferenceVerifier
        config = container.get('config')
        return CrossReferenceVerifier(
            repository=container.get('repository'),
            rules=container.get('rule_table'),
            admission_threshold=config.app.admission_threshold,
            candidate_window_hours=config.app.candidate_window_hours,
            max_keywords=config.app.max_keywords,
            min_keyword_length=config.app.min_keyword_length,
            task_submitter=container.get('task_runner').submit,
            cache=container.get('cache'),
            clock=container.get('clock')
        )

    @singleton
    def create_recheck_scheduler():
        from .verification import RecheckScheduler
        return RecheckScheduler(
            repository=container.get('repository'),
            verifier=container.get('verifier'),
            fetcher_factory=lambda: container.get('feed_fetcher'),
            matcher=container.get('source_registry').matcher,
            clock=container.get('clock')
        )

    def create_openai_client():
        from ..integrations.openai_client import OpenAIClient
        from .exceptions import MissingDependencyError
        config = container.get('config')
        if not config.has_openai():
            raise MissingDependencyError('OpenAI', 'OPENAI_API_KEY')
        return OpenAIClient(
            api_key=config.integrations.openai_api_key,
            model=config.integrations.openai_model,
            image_model=config.integrations.openai_image_model
        )

    def create_webhook_notifier():
        from ..integrations.webhook_notifier import WebhookNotifier
        config = container.get('config')
        return WebhookNotifier(timeout=config.integrations.webhook_timeout)

    @singleton
    def create_synthesizer():
        from .synthesis import StorySynthesizer
        config = container.get('config')
        return StorySynthesizer(
            repository=container.get('repository'),
            client_factory=lambda: container.get('openai_client'),
            enable_images=config.integrations.enable_images,
            cache=container.get('cache'),
            clock=container.get('clock')
        )

    @singleton
    def create_pipeline():
        from .pipeline import CrossReferencePipeline
        from .tasks import register_default_handlers
        config = container.get('config')
        runner = container.get('task_runner')
        register_default_handlers(
            runner,
            repository=container.get('repository'),
            fetcher_factory=lambda: container.get('feed_fetcher'),
            verifier=container.get('verifier'),
            synthesizer=container.get('synthesizer'),
            notifier_factory=lambda: container.get('webhook_notifier')
        )
        return CrossReferencePipeline(
            repository=container.get('repository'),
            registry=container.get('source_registry'),
            fetcher_factory=lambda: container.get('feed_fetcher'),
            clusterer=container.get('clusterer'),
            verifier=container.get('verifier'),
            recheck_scheduler=container.get('recheck_scheduler'),
            rules=container.get('rule_table'),
            cache=container.get('cache'),
            pending_window_hours=config.app.freshness_hours,
            clock=container.get('clock')
        )

    container.register_singleton('config', create_config)
    container.register_singleton('clock', create_clock)
    container.register_singleton('cache', create_cache)
    container.register_singleton('repository', create_repository)
    container.register_singleton('source_registry', create_source_registry)
    container.register_singleton('rule_table', create_rule_table)
    container.register_singleton('clusterer', create_clusterer)
    container.register_singleton('task_runner', create_task_runner)
    container.register_singleton('verifier', create_verifier)
    container.register_singleton('recheck_scheduler', create_recheck_scheduler)
    container.register_singleton('synthesizer', create_synthesizer)
    container.register_singleton('pipeline', create_pipeline)

    # Non-singletons
    container.register_factory('feed_fetcher', create_feed_fetcher)
    container.register_factory('openai_client', create_openai_client)
    container.register_factory('webhook_notifier', create_webhook_notifier)

    logger.debug("Default services registered in container")
