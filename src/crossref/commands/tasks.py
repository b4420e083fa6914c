#!/usr/bin/env python3
"""
Task runner command endpoints.
"""

import asyncio
import json
from argparse import Namespace

from .base import BaseCommand


class TasksCommand(BaseCommand):
    """Submit, run and inspect queued tasks."""

    SUBCOMMANDS = ['run', 'submit', 'stats', 'show']

    def execute(self, subcommand: str, args: Namespace) -> int:
        try:
            if subcommand == "run":
                return self.run(args)
            elif subcommand == "submit":
                return self.submit(args)
            elif subcommand == "stats":
                return self.stats(args)
            elif subcommand == "show":
                return self.show(args)
            return self.unknown_subcommand(subcommand)
        except (Exception, KeyboardInterrupt) as e:
            return self.handle_error(e, f"tasks {subcommand}")

    def run(self, args: Namespace) -> int:
        """Execute eligible tasks once, or until the queue drains."""
        runner = self.task_runner
        if getattr(args, 'until_idle', False):
            executed = asyncio.run(runner.run_until_idle(max_seconds=args.max_seconds))
        else:
            executed = asyncio.run(runner.run_pending())
        print(f"⚙️  Executed {executed} tasks")
        self.print_json(runner.get_stats())
        return 0

    def submit(self, args: Namespace) -> int:
        try:
            payload = json.loads(args.payload) if args.payload else {}
        except json.JSONDecodeError as e:
            raise ValueError(f"--payload must be a JSON object: {e}") from e

        task_id = self.task_runner.submit(
            args.type,
            payload,
            priority=args.priority,
            delay=args.delay
        )
        print(f"✅ Submitted {args.type} task {task_id}")
        return 0

    def stats(self, args: Namespace) -> int:
        self.print_json(self.task_runner.get_stats(), title="📋 Task Queue")
        return 0

    def show(self, args: Namespace) -> int:
        task = self.task_runner.get_task(args.task_id)
        self.print_json(task.to_dict(), title=f"Task {task.id}")
        if not task.is_terminal:
            print(f"⏳ Still queued ({task.retry_count}/{task.max_retries} retries used)")
        return 0
