#!/usr/bin/env python3
"""
Base command class for the operational CLI.

Commands resolve their services through the dependency container so tests
can hand in a container wired with fakes.
"""

import json
import logging
from abc import ABC, abstractmethod
from argparse import Namespace
from typing import Any, List, Optional

from crossref.core.container import get_container
from crossref.core.exceptions import ConfigurationError, CrossRefError

logger = logging.getLogger(__name__)


class BaseCommand(ABC):
    """
    Base class for all command endpoints.

    Provides container-backed service access, JSON output and the exit-code
    mapping shared by every command.
    """

    SUBCOMMANDS: List[str] = []

    def __init__(self, container=None):
        """
        Args:
            container: Optional container instance. If None, uses global container.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self._container = container or get_container()

    @property
    def config(self):
        return self._container.get('config')

    @property
    def repository(self):
        return self._container.get('repository')

    @property
    def pipeline(self):
        """The pipeline; resolving it also registers task handlers."""
        return self._container.get('pipeline')

    @property
    def task_runner(self):
        self._container.get('pipeline')
        return self._container.get('task_runner')

    @property
    def source_registry(self):
        return self._container.get('source_registry')

    @property
    def cache(self):
        return self._container.get('cache')

    @abstractmethod
    def execute(self, subcommand: str, args: Namespace) -> int:
        """
        Execute the command with given subcommand and arguments.

        Returns:
            Exit code (0 for success, non-zero for error)
        """

    def get_available_subcommands(self) -> List[str]:
        return list(self.SUBCOMMANDS)

    def unknown_subcommand(self, subcommand: str) -> int:
        available = ", ".join(self.get_available_subcommands())
        self.logger.error(f"Unknown subcommand '{subcommand}'. Available: {available}")
        return 1

    def print_json(self, data: Any, title: Optional[str] = None) -> None:
        if title:
            print(title)
            print("=" * 50)
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def handle_error(self, error: Exception, context: str = "") -> int:
        """
        Standard error handling for commands.

        Args:
            error: The exception that occurred
            context: Additional context about where the error occurred

        Returns:
            Appropriate exit code
        """
        error_msg = f"{context}: {error}" if context else str(error)

        if isinstance(error, KeyboardInterrupt):
            self.logger.info("Command interrupted by user")
            return 130
        if isinstance(error, ConfigurationError):
            self.logger.error(error_msg)
            return 78
        if isinstance(error, CrossRefError):
            self.logger.error(error_msg)
            return 1

        self.logger.error(error_msg, exc_info=True)
        if isinstance(error, FileNotFoundError):
            return 2
        elif isinstance(error, PermissionError):
            return 13
        elif isinstance(error, ValueError):
            return 22
        return 1
