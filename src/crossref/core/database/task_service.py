#!/usr/bin/env python3
"""
Task Database Service

Durable storage for the Task Runner's queue.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import psycopg
from psycopg.types.json import Jsonb

from ..exceptions import DatabaseOperationError
from ..models import Task, TaskStatus

logger = logging.getLogger(__name__)

TASK_COLUMNS = """
    id, type, payload, priority, max_retries, retry_count, status, created_at,
    scheduled_at, started_at, completed_at, result, last_error
"""


class TaskService:
    """Service for task-queue database operations."""

    def __init__(self, connection_manager):
        self.connection_manager = connection_manager

    def insert_task(self, task: Task) -> None:
        try:
            with self.connection_manager.get_cursor() as cursor:
                cursor.execute(f"""
                    INSERT INTO tasks ({TASK_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """, (
                    task.id, task.type, Jsonb(task.payload.to_dict()), task.priority, task.max_retries,
                    task.retry_count, task.status, task.created_at, task.scheduled_at, task.started_at,
                    task.completed_at, Jsonb(task.result) if task.result is not None else None, task.last_error
                ))
        except psycopg.Error as e:
            raise DatabaseOperationError('insert', 'tasks', e) from e

    def get_task(self, task_id: str) -> Optional[Task]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = %s", (task_id,))
            row = cursor.fetchone()
            return Task.from_dict(row) if row else None

    def save_task(self, task: Task, expected_status: str) -> bool:
        try:
            with self.connection_manager.get_cursor() as cursor:
                cursor.execute("""
                    UPDATE tasks SET
                        priority = %s, retry_count = %s, status = %s, scheduled_at = %s,
                        started_at = %s, completed_at = %s, result = %s, last_error = %s
                    WHERE id = %s AND status = %s
                """, (
                    task.priority, task.retry_count, task.status, task.scheduled_at, task.started_at,
                    task.completed_at, Jsonb(task.result) if task.result is not None else None,
                    task.last_error, task.id, expected_status
                ))
                return cursor.rowcount == 1
        except psycopg.Error as e:
            raise DatabaseOperationError('update', 'tasks', e) from e

    def get_eligible_tasks(self, now: datetime, limit: int = 10) -> List[Task]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE status = %s AND (scheduled_at IS NULL OR scheduled_at <= %s)
                ORDER BY priority, COALESCE(scheduled_at, created_at), created_at
                LIMIT %s
            """, (TaskStatus.PENDING, now, limit))
            return [Task.from_dict(row) for row in cursor.fetchall()]

    def get_stale_running_tasks(self, started_before: datetime) -> List[Task]:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute(f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE status = %s AND started_at < %s
                ORDER BY started_at
            """, (TaskStatus.RUNNING, started_before))
            return [Task.from_dict(row) for row in cursor.fetchall()]

    def count_pending_tasks(self) -> int:
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) as count FROM tasks WHERE status = %s", (TaskStatus.PENDING,))
            return cursor.fetchone()['count']

    def count_tasks_by_status(self) -> Dict[str, int]:
        counts = {status: 0 for status in TaskStatus.ALL}
        with self.connection_manager.get_cursor() as cursor:
            cursor.execute("SELECT status, COUNT(*) as count FROM tasks GROUP BY status")
            for row in cursor.fetchall():
                counts[row['status']] = row['count']
        return counts
