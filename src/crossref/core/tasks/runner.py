#!/usr/bin/env python3
"""
Task Runner

Generic executor for named, retryable, schedulable units of work. Tasks
live in the repository, not in the response cache, so a restart never
loses queued work.

Scheduling:
- eligible = pending and not scheduled in the future
- order = priority ascending (lower runs first), then schedule time
- at most `concurrency` handlers run at once; a slot is released when
  its task completes or fails

Failure handling: the retry counter is incremented; while it stays below
max_retries the task is rescheduled 2**retry_count seconds later, otherwise
it is marked failed. `done` and `failed` are terminal and every transition
is compare-and-set on the stored status.

A task left in `running` longer than the lease (crashed process, failed
status write) is put back through the same retry path at the start of
the next pass.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from ..database import Repository
from ..exceptions import ErrorRecovery, TaskNotFoundError, UnknownTaskTypeError
from ..models import Task, TaskStatus, TaskType, TaskPayload, DeliverPayload, build_payload
from ..time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

Handler = Callable[[TaskPayload, Task], Awaitable[Optional[Dict[str, Any]]]]

DELIVERY_PRIORITY = 3


class TaskRunner:
    """Priority/delay/retry execution engine backed by the repository."""

    def __init__(self,
                 repository: Repository,
                 concurrency: int = 3,
                 default_priority: int = 5,
                 default_max_retries: int = 3,
                 poll_interval: float = 2.0,
                 lease_seconds: int = 600,
                 webhook_urls: Optional[List[str]] = None,
                 clock: Clock = utc_now):
        """
        Initialize task runner.

        Args:
            repository: Durable task storage
            concurrency: Maximum handlers running at once
            default_priority: Priority used when submit() gets none
            default_max_retries: Retry budget used when submit() gets none
            poll_interval: Seconds between polls in the background loop
            lease_seconds: Age after which a running task is treated as abandoned
            webhook_urls: Listeners notified when a task completes
            clock: Returns the current aware datetime
        """
        self.repository = repository
        self.concurrency = concurrency
        self.default_priority = default_priority
        self.default_max_retries = default_max_retries
        self.poll_interval = poll_interval
        self.lease_seconds = lease_seconds
        self.webhook_urls = list(webhook_urls or [])
        self._clock = clock
        self._handlers: Dict[str, Handler] = {}
        self._stop_event: Optional[asyncio.Event] = None
        self._stats = {'executed': 0, 'succeeded': 0, 'retried': 0, 'failed': 0, 'recovered': 0, 'errors': 0}

    def register_handler(self, task_type: str, handler: Handler) -> None:
        """Register the coroutine that executes tasks of a type."""
        self._handlers[task_type] = handler
        logger.debug(f"Registered handler for task type '{task_type}'")

    @property
    def registered_types(self) -> List[str]:
        return sorted(self._handlers)

    def submit(self,
               task_type: str,
               payload: Union[TaskPayload, Dict[str, Any]],
               priority: Optional[int] = None,
               delay: float = 0,
               max_retries: Optional[int] = None) -> str:
        """
        Persist a new pending task and return its id; never waits for execution.

        Args:
            task_type: Registered task type
            payload: Typed payload, or a dict convertible to one
            priority: Lower runs first (default from configuration)
            delay: Seconds before the task becomes eligible
            max_retries: Retry budget (default from configuration)

        Raises:
            UnknownTaskTypeError: If no handler is registered for task_type
        """
        if task_type not in self._handlers:
            raise UnknownTaskTypeError(task_type, self._handlers.keys())

        now = self._clock()
        task = Task(
            type=task_type,
            payload=build_payload(task_type, payload),
            priority=self.default_priority if priority is None else priority,
            max_retries=self.default_max_retries if max_retries is None else max_retries,
            created_at=now,
            scheduled_at=now + timedelta(seconds=delay)
        )
        self.repository.insert_task(task)
        logger.info(f"Submitted {task_type} task {task.id} (priority {task.priority}, delay {delay}s)")
        return task.id

    def get_task(self, task_id: str) -> Task:
        task = self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _claim_next(self) -> Optional[Task]:
        """Move the best eligible task from pending to running."""
        now = self._clock()
        for task in self.repository.get_eligible_tasks(now, limit=self.concurrency * 2):
            task.status = TaskStatus.RUNNING
            task.started_at = now
            if self.repository.save_task(task, expected_status=TaskStatus.PENDING):
                return task
        return None

    async def _execute(self, task: Task) -> None:
        """Run one claimed task; bookkeeping errors are logged and the lease recovers the task."""
        try:
            handler = self._handlers.get(task.type)
            if handler is None:
                error = UnknownTaskTypeError(task.type, self._handlers.keys())
                task.status = TaskStatus.FAILED
                task.completed_at = self._clock()
                task.last_error = str(error)
                self._stats['failed'] += 1
                logger.error(f"Task {task.id} failed without retry: {error}")
                self.repository.save_task(task, expected_status=TaskStatus.RUNNING)
                return

            self._stats['executed'] += 1
            try:
                result = await handler(task.payload, task)
            except Exception as e:
                self._handle_failure(task, e)
                return

            self._handle_success(task, result)
        except Exception as e:
            self._stats['errors'] += 1
            logger.error(f"Task {task.id} ({task.type}) bookkeeping failed, left for lease recovery: {e}")

    def _handle_success(self, task: Task, result: Optional[Dict[str, Any]]) -> None:
        now = self._clock()
        task.status = TaskStatus.DONE
        task.completed_at = now
        task.result = result
        task.last_error = None
        if not self.repository.save_task(task, expected_status=TaskStatus.RUNNING):
            logger.warning(f"Task {task.id} was no longer running; completion ignored")
            return

        self._stats['succeeded'] += 1
        logger.info(f"Task {task.id} ({task.type}) done after {task.retry_count} retries")

        if task.type != TaskType.DELIVER:
            self._notify_listeners(task)

    def _retry_or_fail(self, task: Task, error: str) -> None:
        """Spend one retry: back off while budget remains, otherwise fail terminally."""
        now = self._clock()
        task.retry_count += 1
        task.last_error = error

        if task.retry_count < task.max_retries:
            backoff = ErrorRecovery.get_retry_delay(task.retry_count)
            task.status = TaskStatus.PENDING
            task.started_at = None
            task.scheduled_at = now + timedelta(seconds=backoff)
            self._stats['retried'] += 1
            logger.warning(
                f"Task {task.id} ({task.type}) failed (attempt {task.retry_count}/{task.max_retries}), "
                f"retrying in {backoff:.0f}s: {error}"
            )
        else:
            task.status = TaskStatus.FAILED
            task.completed_at = now
            self._stats['failed'] += 1
            logger.error(f"Task {task.id} ({task.type}) failed permanently after {task.retry_count} attempts: {error}")

    def _handle_failure(self, task: Task, error: Exception) -> None:
        self._retry_or_fail(task, f"{type(error).__name__}: {error}")
        if not self.repository.save_task(task, expected_status=TaskStatus.RUNNING):
            logger.warning(f"Task {task.id} was no longer running; failure ignored")

    def recover_stale_tasks(self) -> int:
        """
        Return tasks abandoned in `running` to the queue.

        A task still running `lease_seconds` after it was claimed belongs to a
        crashed process or a failed status write. Recovery spends one retry, so
        a task that keeps taking its worker down still ends failed.

        Returns:
            Number of tasks recovered
        """
        started_before = self._clock() - timedelta(seconds=self.lease_seconds)
        recovered = 0
        for task in self.repository.get_stale_running_tasks(started_before):
            self._retry_or_fail(task, f"lease expired after {self.lease_seconds}s in running")
            if self.repository.save_task(task, expected_status=TaskStatus.RUNNING):
                recovered += 1
                self._stats['recovered'] += 1
        if recovered:
            logger.warning(f"Recovered {recovered} tasks abandoned in running")
        return recovered

    def _notify_listeners(self, task: Task) -> None:
        """Queue one delivery task per configured webhook."""
        for url in self.webhook_urls:
            data = {
                'task_id': task.id,
                'task_type': task.type,
                'status': task.status,
                'result': task.result,
                'timestamp': (task.completed_at or self._clock()).isoformat()
            }
            self.submit(TaskType.DELIVER, DeliverPayload(url=url, data=data), priority=DELIVERY_PRIORITY)

    async def run_pending(self) -> int:
        """
        Run eligible tasks until none are left, keeping at most `concurrency` in flight.

        Abandoned running tasks are recovered first. Tasks that become eligible
        during the pass (new submissions, expired backoffs) are picked up as
        slots free. One task's failure never cancels the others.

        Returns:
            Number of task executions in this pass
        """
        self.recover_stale_tasks()
        executed = 0
        in_flight: Set[asyncio.Task] = set()

        while True:
            while len(in_flight) < self.concurrency:
                task = self._claim_next()
                if task is None:
                    break
                in_flight.add(asyncio.ensure_future(self._execute(task)))

            if not in_flight:
                break

            done, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            executed += len(done)

        return executed

    async def run_until_idle(self, max_seconds: Optional[float] = None) -> int:
        """
        Keep running until no pending tasks remain (including backed-off ones).

        Args:
            max_seconds: Stop after this long even if tasks remain

        Returns:
            Number of task executions
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + max_seconds if max_seconds is not None else None
        executed = 0

        while True:
            executed += await self.run_pending()
            if self.repository.count_pending_tasks() == 0:
                break
            if deadline is not None and loop.time() >= deadline:
                logger.info("Task runner stopped at time limit with tasks still pending")
                break
            await asyncio.sleep(self.poll_interval)

        return executed

    async def start(self) -> None:
        """Poll for work until stop() is called."""
        self._stop_event = asyncio.Event()
        logger.info(f"Task runner started (concurrency {self.concurrency})")
        while not self._stop_event.is_set():
            await self.run_pending()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Task runner stopped")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def get_stats(self) -> Dict[str, Any]:
        return {
            'concurrency': self.concurrency,
            'handlers': self.registered_types,
            'tasks': self.repository.count_tasks_by_status(),
            **self._stats
        }
