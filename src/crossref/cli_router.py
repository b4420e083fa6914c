#!/usr/bin/env python3
"""
CLI Router for the news cross-reference pipeline.

Each command simply invokes the corresponding core operation and reports
its result; scheduling (hourly crawl, 15-minute recheck sweep) is left to
an external scheduler such as cron.
"""

import argparse
import logging
import sys
from typing import List, Optional

from crossref.commands import get_command, COMMANDS
from crossref.core.container import reset_container

logger = logging.getLogger(__name__)


class CLIRouter:
    """
    CLI router for cross-reference commands.

    Command structure:
    - python run.py crawl run
    - python run.py crossref recheck
    - python run.py tasks run --until-idle
    - python run.py health check
    """

    def __init__(self, container=None):
        """
        Args:
            container: Optional dependency container handed to every command
        """
        self.container = container
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="News cross-reference pipeline",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=self._get_examples_text()
        )

        subparsers = parser.add_subparsers(
            dest='command',
            help='Available commands',
            metavar='{command}'
        )

        self._add_crawl_parser(subparsers)
        self._add_crossref_parser(subparsers)
        self._add_tasks_parser(subparsers)
        self._add_health_parser(subparsers)

        return parser

    def _add_crawl_parser(self, subparsers):
        crawl_parser = subparsers.add_parser('crawl', help='Fetch, cluster and verify news')
        crawl_subparsers = crawl_parser.add_subparsers(dest='subcommand', help='Crawl operations', metavar='{run}')

        run_parser = crawl_subparsers.add_parser('run', help='Run one full crawl pass over all sources')
        run_parser.add_argument('--no-verify', action='store_true', help='Cluster only; skip verification')

    def _add_crossref_parser(self, subparsers):
        crossref_parser = subparsers.add_parser('crossref', help='Cross-reference verification operations')
        crossref_subparsers = crossref_parser.add_subparsers(
            dest='subcommand',
            help='Cross-reference operations',
            metavar='{verify,recheck,status}'
        )

        verify_parser = crossref_subparsers.add_parser('verify', help='Verify one cluster now')
        verify_parser.add_argument('--cluster-id', required=True, help='Cluster to verify')

        crossref_subparsers.add_parser('recheck', help='Recheck clusters whose recheck time has elapsed')
        crossref_subparsers.add_parser('status', help='Show clusters, rules and task counts')

    def _add_tasks_parser(self, subparsers):
        tasks_parser = subparsers.add_parser('tasks', help='Task queue operations')
        tasks_subparsers = tasks_parser.add_subparsers(
            dest='subcommand',
            help='Task operations',
            metavar='{run,submit,stats,show}'
        )

        run_parser = tasks_subparsers.add_parser('run', help='Execute eligible tasks')
        run_parser.add_argument('--until-idle', action='store_true', help='Keep running until no tasks are pending')
        run_parser.add_argument('--max-seconds', type=float, default=None, help='Stop --until-idle after N seconds')

        submit_parser = tasks_subparsers.add_parser('submit', help='Queue a task')
        submit_parser.add_argument('--type', required=True, help='Task type (fetch, verify, synthesize, deliver)')
        submit_parser.add_argument('--payload', default='{}', help='JSON payload')
        submit_parser.add_argument('--priority', type=int, default=None, help='Lower runs first (default: 5)')
        submit_parser.add_argument('--delay', type=float, default=0, help='Seconds before the task is eligible')

        tasks_subparsers.add_parser('stats', help='Show task counts by status')

        show_parser = tasks_subparsers.add_parser('show', help='Show one task')
        show_parser.add_argument('--task-id', required=True, help='Task to show')

    def _add_health_parser(self, subparsers):
        health_parser = subparsers.add_parser('health', help='System health monitoring and diagnostics')
        health_subparsers = health_parser.add_subparsers(
            dest='subcommand',
            help='Health operations',
            metavar='{check,sources}'
        )

        health_subparsers.add_parser('check', help='Run comprehensive health check')
        health_subparsers.add_parser('sources', help='Probe every configured feed')

    def _get_examples_text(self) -> str:
        return """
Examples:
  # Hourly full crawl and 15-minute recheck sweep (from cron)
  python run.py crawl run
  python run.py crossref recheck

  # Drain the task queue (synthesis, webhook delivery)
  python run.py tasks run --until-idle --max-seconds 300

  # Inspection
  python run.py crossref status
  python run.py crossref verify --cluster-id <id>
  python run.py tasks show --task-id <id>
  python run.py health check
"""

    def route_command(self, args: Optional[List[str]] = None) -> int:
        """
        Route command to appropriate handler.

        Args:
            args: Command line arguments (uses sys.argv if None)

        Returns:
            Exit code
        """
        try:
            if args is None:
                args = sys.argv[1:]

            parsed_args = self.parser.parse_args(args)

            if not parsed_args.command:
                self.parser.print_help()
                return 1

            return self._handle_command(parsed_args)

        except SystemExit as e:
            # argparse calls sys.exit() on error or help
            return e.code if e.code is not None else 0

    def _handle_command(self, args: argparse.Namespace) -> int:
        logger.debug(f"Handling command: {args.command}")

        if args.command not in COMMANDS:
            available = ', '.join(COMMANDS.keys())
            logger.error(f"Unknown command '{args.command}'. Available: {available}")
            return 1

        subcommand = getattr(args, 'subcommand', None)
        if not subcommand:
            logger.error(f"No subcommand specified for '{args.command}'")
            self.parser.parse_args([args.command, '--help'])
            return 1

        command = get_command(args.command, container=self.container)
        return command.execute(subcommand, args)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        from crossref.core.config import get_config_manager
        get_config_manager().update_logging()
    except ValueError as e:
        logger.error(str(e))
        return 78

    router = CLIRouter()
    try:
        return router.route_command(args)
    finally:
        reset_container()


if __name__ == '__main__':
    sys.exit(main())
