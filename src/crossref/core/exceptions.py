#!/usr/bin/env python3
"""
Standardized exception hierarchy for the cross-reference pipeline.

Expected conditions (empty feeds, no matching rule, insufficient coverage)
are modelled as return values. The types below cover the conditions that
really are exceptional, plus the transient source errors the Feed Fetcher
absorbs at its boundary.
"""

from typing import Optional, Dict, Any


class CrossRefError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            context: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context
        }


# Source-related exceptions
class SourceError(CrossRefError):
    """Base exception for news source errors."""
    pass


class SourceConnectionError(SourceError):
    """Failed to connect to news source."""

    def __init__(self, source_name: str, url: str, original_error: Exception):
        message = f"Failed to connect to {source_name} at {url}"
        context = {
            'source_name': source_name,
            'url': url,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


class SourceParseError(SourceError):
    """Failed to parse content from news source."""

    def __init__(self, source_name: str, parse_stage: str, original_error: Exception):
        message = f"Failed to parse {parse_stage} from {source_name}"
        context = {
            'source_name': source_name,
            'parse_stage': parse_stage,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


class SourceTimeoutError(SourceError):
    """Source request timed out."""

    def __init__(self, source_name: str, timeout_seconds: int):
        message = f"Timeout connecting to {source_name} after {timeout_seconds}s"
        context = {
            'source_name': source_name,
            'timeout_seconds': timeout_seconds
        }
        super().__init__(message, context=context)


class SourceNotFoundError(SourceError):
    """Referenced source id is not configured."""

    def __init__(self, source_id: str):
        super().__init__(f"Unknown news source: {source_id}", context={'source_id': source_id})


# Database-related exceptions
class DatabaseError(CrossRefError):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Failed to connect to database."""

    def __init__(self, connection_type: str, original_error: Exception):
        message = f"Failed to connect to database via {connection_type}"
        context = {
            'connection_type': connection_type,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


class DatabaseOperationError(DatabaseError):
    """Database operation failed."""

    def __init__(self, operation: str, table: str, original_error: Exception):
        message = f"Database {operation} failed on table {table}"
        context = {
            'operation': operation,
            'table': table,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


class ClusterNotFoundError(CrossRefError):
    """Story cluster id does not exist."""

    def __init__(self, cluster_id: str):
        super().__init__(f"Story cluster not found: {cluster_id}", context={'cluster_id': cluster_id})


class TaskNotFoundError(CrossRefError):
    """Task id does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", context={'task_id': task_id})


# Configuration-related exceptions
class ConfigurationError(CrossRefError):
    """Configuration is invalid or missing."""

    def __init__(self, config_key: str, issue: str):
        message = f"Configuration error for {config_key}: {issue}"
        context = {
            'config_key': config_key,
            'issue': issue
        }
        super().__init__(message, context=context)


class UnknownTaskTypeError(ConfigurationError):
    """No handler is registered for a task type."""

    def __init__(self, task_type: str, known_types=None):
        known = ', '.join(sorted(known_types or []))
        super().__init__('task_type', f"no handler registered for '{task_type}' (known: {known or 'none'})")
        self.task_type = task_type


class MissingRuleError(ConfigurationError):
    """A verification rule references something that cannot be resolved."""

    def __init__(self, rule_trigger: str, issue: str):
        super().__init__(f"rules[{rule_trigger}]", issue)


class MissingDependencyError(ConfigurationError):
    """An external integration is required but not configured."""

    def __init__(self, dependency: str, env_var: str):
        super().__init__(env_var, f"{dependency} is not configured")


# Downstream integration exceptions
class SynthesisError(CrossRefError):
    """Text or image generation failed."""

    def __init__(self, cluster_id: str, stage: str, original_error: Exception):
        message = f"Synthesis {stage} failed for cluster {cluster_id}"
        context = {
            'cluster_id': cluster_id,
            'stage': stage,
            'original_error': str(original_error)
        }
        super().__init__(message, context=context)


class DeliveryError(CrossRefError):
    """Outbound webhook delivery failed."""

    def __init__(self, url: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        if status_code is not None:
            message = f"Webhook {url} responded with HTTP {status_code}"
        else:
            message = f"Webhook delivery to {url} failed"
        context = {
            'url': url,
            'status_code': status_code,
            'original_error': str(original_error) if original_error else None
        }
        super().__init__(message, context=context)


# Error recovery utilities
class ErrorRecovery:
    """Utilities for error recovery and retry logic."""

    @staticmethod
    def get_retry_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 300.0) -> float:
        """
        Exponential backoff delay for a retry attempt.

        Args:
            attempt: Number of failures so far (1 for the first retry)
            base_delay: Multiplier applied to 2**attempt
            max_delay: Upper bound in seconds

        Returns:
            Delay in seconds
        """
        return min(base_delay * (2 ** attempt), max_delay)
