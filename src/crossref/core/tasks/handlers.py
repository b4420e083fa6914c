#!/usr/bin/env python3
"""
Task handlers.

One coroutine per task type. Handlers raise on failure and let the Task
Runner apply its retry/backoff policy; blocking calls run in a worker thread
so they never stall the event loop.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .runner import TaskRunner
from ..exceptions import SourceError, SourceNotFoundError
from ..feed_fetcher import FeedFetcher
from ..database import Repository
from ..models import (
    Task, TaskType, FetchPayload, VerifyPayload, SynthesizePayload, DeliverPayload,
)
from ..synthesis import StorySynthesizer
from ..verification import CrossReferenceVerifier

logger = logging.getLogger(__name__)


def make_fetch_handler(repository: Repository, fetcher_factory: Callable[[], FeedFetcher]):
    async def handle_fetch(payload: FetchPayload, task: Task) -> Optional[Dict[str, Any]]:
        source = repository.get_source(payload.source_id)
        if source is None:
            raise SourceNotFoundError(payload.source_id)
        async with fetcher_factory() as fetcher:
            outcome = await fetcher.ingest_source(source)
        if not outcome.success:
            raise SourceError(f"Fetch failed for {source.id}: {outcome.error}", context={'source_id': source.id})
        return outcome.to_dict()
    return handle_fetch


def make_verify_handler(verifier: CrossReferenceVerifier):
    async def handle_verify(payload: VerifyPayload, task: Task) -> Optional[Dict[str, Any]]:
        result = await asyncio.to_thread(verifier.verify, payload.cluster_id)
        return result.to_dict()
    return handle_verify


def make_synthesize_handler(synthesizer: StorySynthesizer):
    async def handle_synthesize(payload: SynthesizePayload, task: Task) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(synthesizer.synthesize, payload.cluster_id)
    return handle_synthesize


def make_deliver_handler(notifier_factory: Callable[[], Any]):
    async def handle_deliver(payload: DeliverPayload, task: Task) -> Optional[Dict[str, Any]]:
        notifier = notifier_factory()
        return await asyncio.to_thread(notifier.send, payload.url, payload.data)
    return handle_deliver


def register_default_handlers(runner: TaskRunner,
                              repository: Repository,
                              fetcher_factory: Callable[[], FeedFetcher],
                              verifier: CrossReferenceVerifier,
                              synthesizer: StorySynthesizer,
                              notifier_factory: Callable[[], Any]) -> None:
    """Wire the four built-in task types to their services."""
    runner.register_handler(TaskType.FETCH, make_fetch_handler(repository, fetcher_factory))
    runner.register_handler(TaskType.VERIFY, make_verify_handler(verifier))
    runner.register_handler(TaskType.SYNTHESIZE, make_synthesize_handler(synthesizer))
    runner.register_handler(TaskType.DELIVER, make_deliver_handler(notifier_factory))
