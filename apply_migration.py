#!/usr/bin/env python3
"""
Apply the database schema for the cross-reference pipeline.

Creates the news_sources, raw_articles, story_clusters and tasks tables in
the database named by DATABASE_URL. Every statement is idempotent.
"""

import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from crossref.core.config import get_config
from crossref.core.database.database_facade import DatabaseFacade, SCHEMA_PATH
from crossref.core.exceptions import DatabaseError


def apply_migration() -> bool:
    """Apply schema.sql to the configured database."""
    config = get_config()
    if not config.has_database():
        print("DATABASE_URL is not set; nothing to migrate (the in-memory store needs no schema)")
        return False

    print(f"Applying {SCHEMA_PATH.name}")
    print("=" * 60)
    try:
        with DatabaseFacade(config) as database:
            database.apply_schema()
            health = database.health_check()
    except DatabaseError as e:
        print(f"❌ Migration failed: {e}")
        return False

    for table, count in health.get('tables', {}).items():
        print(f"  📋 {table}: {count} records")
    print("✅ Schema applied")
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(0 if apply_migration() else 1)
