"""Durable priority task runner and its built-in handlers."""

from .runner import TaskRunner
from .handlers import register_default_handlers

__all__ = ['TaskRunner', 'register_default_handlers']
