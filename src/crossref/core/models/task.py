#!/usr/bin/env python3
"""
Task model and typed payloads.

Every task type has its own payload dataclass, so handlers receive typed
fields instead of an untyped dictionary.
"""

import uuid
from datetime import datetime
from typing import Dict, Any, Optional, Type, Union
from dataclasses import dataclass, field

from ..time_utils import parse_datetime, isoformat, utc_now


class TaskType:
    FETCH = 'fetch'
    VERIFY = 'verify'
    SYNTHESIZE = 'synthesize'
    DELIVER = 'deliver'


class TaskStatus:
    PENDING = 'pending'
    RUNNING = 'running'
    DONE = 'done'
    FAILED = 'failed'

    ALL = (PENDING, RUNNING, DONE, FAILED)
    TERMINAL = (DONE, FAILED)


@dataclass
class FetchPayload:
    """Fetch and ingest one source."""
    source_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'source_id': self.source_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FetchPayload':
        return cls(source_id=data['source_id'])


@dataclass
class VerifyPayload:
    """Run the cross-reference verifier on one cluster."""
    cluster_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'cluster_id': self.cluster_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VerifyPayload':
        return cls(cluster_id=data['cluster_id'])


@dataclass
class SynthesizePayload:
    """Generate the unified story for a verified cluster."""
    cluster_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'cluster_id': self.cluster_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SynthesizePayload':
        return cls(cluster_id=data['cluster_id'])


@dataclass
class DeliverPayload:
    """POST a JSON document to one listener URL."""
    url: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'url': self.url, 'data': self.data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeliverPayload':
        return cls(url=data['url'], data=dict(data.get('data') or {}))


TaskPayload = Union[FetchPayload, VerifyPayload, SynthesizePayload, DeliverPayload]

PAYLOAD_TYPES: Dict[str, Type] = {
    TaskType.FETCH: FetchPayload,
    TaskType.VERIFY: VerifyPayload,
    TaskType.SYNTHESIZE: SynthesizePayload,
    TaskType.DELIVER: DeliverPayload,
}


def build_payload(task_type: str, payload: Union[TaskPayload, Dict[str, Any]]) -> TaskPayload:
    """
    Coerce a payload into the dataclass registered for its task type.

    Raises:
        KeyError: If the task type has no payload class
        TypeError: If a dataclass payload does not match the task type
    """
    payload_cls = PAYLOAD_TYPES[task_type]
    if isinstance(payload, dict):
        return payload_cls.from_dict(payload)
    if not isinstance(payload, payload_cls):
        raise TypeError(f"Task type '{task_type}' expects {payload_cls.__name__}, got {type(payload).__name__}")
    return payload


@dataclass
class Task:
    """One schedulable, retryable unit of work."""
    type: str
    payload: TaskPayload
    priority: int = 5
    max_retries: int = 3
    retry_count: int = 0
    status: str = TaskStatus.PENDING
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None

    def __post_init__(self):
        if self.status not in TaskStatus.ALL:
            raise ValueError(f"Invalid task status: {self.status}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TaskStatus.TERMINAL

    def is_eligible(self, now: datetime) -> bool:
        """Pending and not scheduled in the future."""
        if self.status != TaskStatus.PENDING:
            return False
        return self.scheduled_at is None or self.scheduled_at <= now

    def sort_key(self):
        """Lower priority number first, then earliest schedule time."""
        return (self.priority, self.scheduled_at or self.created_at, self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'payload': self.payload.to_dict(),
            'priority': self.priority,
            'max_retries': self.max_retries,
            'retry_count': self.retry_count,
            'status': self.status,
            'created_at': isoformat(self.created_at),
            'scheduled_at': isoformat(self.scheduled_at),
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'result': self.result,
            'last_error': self.last_error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        return cls(
            id=data['id'],
            type=data['type'],
            payload=build_payload(data['type'], data.get('payload') or {}),
            priority=int(data.get('priority', 5)),
            max_retries=int(data.get('max_retries', 3)),
            retry_count=int(data.get('retry_count', 0)),
            status=data.get('status', TaskStatus.PENDING),
            created_at=parse_datetime(data.get('created_at')) or utc_now(),
            scheduled_at=parse_datetime(data.get('scheduled_at')),
            started_at=parse_datetime(data.get('started_at')),
            completed_at=parse_datetime(data.get('completed_at')),
            result=data.get('result'),
            last_error=data.get('last_error')
        )
