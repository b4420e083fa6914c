#!/usr/bin/env python3
"""
Operational command endpoints for the cross-reference pipeline.

Each top-level CLI command is handled by one command class.
"""

from typing import Dict, Type

from .base import BaseCommand
from .crawl import CrawlCommand
from .crossref import CrossRefCommand
from .tasks import TasksCommand
from .health import HealthCommand

COMMANDS: Dict[str, Type[BaseCommand]] = {
    'crawl': CrawlCommand,
    'crossref': CrossRefCommand,
    'tasks': TasksCommand,
    'health': HealthCommand,
}


def get_command(command_name: str, container=None) -> BaseCommand:
    """Get a command instance by name."""
    if command_name not in COMMANDS:
        available = ', '.join(COMMANDS.keys())
        raise ValueError(f"Unknown command '{command_name}'. Available: {available}")

    return COMMANDS[command_name](container=container)

