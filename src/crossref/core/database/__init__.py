#!/usr/bin/env python3
"""
Database package for the cross-reference pipeline.

Two Repository implementations share one interface: an in-memory store for
local runs and tests, and a PostgreSQL facade built on psycopg.
"""

import logging

from .base import Repository
from .memory_store import MemoryRepository

logger = logging.getLogger(__name__)


def create_repository(config) -> Repository:
    """
    Build the repository the configuration asks for.

    Args:
        config: Master Config object

    Returns:
        DatabaseFacade when DATABASE_URL is set, otherwise MemoryRepository
    """
    if config.has_database():
        from .database_facade import DatabaseFacade
        logger.info("Using PostgreSQL repository")
        return DatabaseFacade(config)

    logger.warning("DATABASE_URL not set; using in-memory repository (state is lost on exit)")
    return MemoryRepository()


__all__ = ['Repository', 'MemoryRepository', 'create_repository']
