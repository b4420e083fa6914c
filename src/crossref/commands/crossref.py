#!/usr/bin/env python3
"""
Cross-reference command endpoints: manual verification, recheck sweep and status.
"""

import asyncio
from argparse import Namespace

from .base import BaseCommand


class CrossRefCommand(BaseCommand):
    """Verify clusters and inspect cross-reference state."""

    SUBCOMMANDS = ['verify', 'recheck', 'status']

    def execute(self, subcommand: str, args: Namespace) -> int:
        try:
            if subcommand == "verify":
                return self.verify(args)
            elif subcommand == "recheck":
                return self.recheck(args)
            elif subcommand == "status":
                return self.status(args)
            return self.unknown_subcommand(subcommand)
        except (Exception, KeyboardInterrupt) as e:
            return self.handle_error(e, f"crossref {subcommand}")

    def verify(self, args: Namespace) -> int:
        result = self.pipeline.verify_cluster(args.cluster_id)
        self.print_json(result, title=f"🔎 Verification of cluster {args.cluster_id}")
        return 0

    def recheck(self, args: Namespace) -> int:
        """Recheck every cluster whose recheck time has elapsed."""
        summary = asyncio.run(self.pipeline.run_recheck_sweep())
        self.print_json(summary, title="🔁 Recheck Sweep")
        return 0

    def status(self, args: Namespace) -> int:
        self.print_json(self.pipeline.get_status(), title="📊 Cross-Reference Status")
        return 0
