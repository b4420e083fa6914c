#!/usr/bin/env python3
"""
Crawl command: one full fetch → cluster → verify pass.
"""

import asyncio
from argparse import Namespace

from .base import BaseCommand


class CrawlCommand(BaseCommand):
    """Run full crawl passes over every configured source."""

    SUBCOMMANDS = ['run']

    def execute(self, subcommand: str, args: Namespace) -> int:
        try:
            if subcommand == "run":
                return self.run(args)
            return self.unknown_subcommand(subcommand)
        except (Exception, KeyboardInterrupt) as e:
            return self.handle_error(e, f"crawl {subcommand}")

    def run(self, args: Namespace) -> int:
        """Crawl all sources; partial source failures still exit 0."""
        verify = not getattr(args, 'no_verify', False)
        summary = asyncio.run(self.pipeline.run_full_crawl(verify=verify))
        self.print_json(summary, title="📰 Crawl Summary")
        if summary['failed_sources']:
            self.logger.warning(f"{summary['failed_sources']} sources failed during crawl")
        return 0
