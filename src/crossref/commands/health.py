#!/usr/bin/env python3
"""
Health check command for monitoring system status.

Reports repository connectivity, configuration, integration availability,
cache statistics and per-source feed availability.
"""

from argparse import Namespace

from .base import BaseCommand
from crossref.core.time_utils import to_display


class HealthCommand(BaseCommand):
    """Handle system health monitoring and diagnostics."""

    SUBCOMMANDS = ['check', 'sources']

    def execute(self, subcommand: str, args: Namespace) -> int:
        try:
            if subcommand == "check":
                return self.check(args)
            elif subcommand == "sources":
                return self.sources(args)
            return self.unknown_subcommand(subcommand)
        except (Exception, KeyboardInterrupt) as e:
            return self.handle_error(e, f"health {subcommand}")

    def check(self, args: Namespace) -> int:
        """Run comprehensive health check."""
        print("🏥 System Health Check")
        print("=" * 50)

        overall_healthy = True

        print("\n📊 Repository Status:")
        health = self.repository.health_check()
        if health.get('connected'):
            print(f"  ✅ Repository ({health.get('backend', 'unknown')}): OK")
            for table, count in health.get('tables', {}).items():
                print(f"  📋 {table}: {count} records")
            missing = health.get('missing_tables', [])
            if missing:
                print(f"  ❌ Missing tables: {', '.join(missing)} (run apply_migration.py)")
                overall_healthy = False
        else:
            print("  ❌ Repository connection: FAILED")
            print(f"     Error: {health.get('error', 'Unknown error')}")
            overall_healthy = False

        print("\n⚙️  Configuration:")
        print(f"  ✅ Environment: {self.config.environment}")
        registry = self.source_registry
        print(f"  ✅ Sources by tier: {registry.counts_by_tier()}")
        rules = self._container.get('rule_table')
        print(f"  ✅ Cross-reference rules: {len(rules.rules)} loaded and valid")

        print("\n🔌 Integration Status:")
        config = self.config
        integrations = config.integration_status()
        for name, configured in integrations.items():
            icon = "✅" if configured else "ℹ️ "
            print(f"  {icon} {name}: {'configured' if configured else 'not configured'}")
        if not integrations['openai']:
            print("     Synthesis tasks will fail until OPENAI_API_KEY is set")

        print("\n💾 Cache Status:")
        stats = self.cache.get_stats()
        print(f"  📊 {stats['entries']} entries, {stats['hit_rate']:.1f}% hit rate")

        print("\n⚙️  Task Queue:")
        for status, count in self.repository.count_tasks_by_status().items():
            print(f"  📋 {status}: {count}")

        print()
        print("✅ System healthy" if overall_healthy else "❌ System unhealthy")
        return 0 if overall_healthy else 1

    def sources(self, args: Namespace) -> int:
        """Probe every configured feed with a HEAD request."""
        registry = self.source_registry
        timeout = self.config.app.feed_timeout
        print("📡 Source Health")
        print("=" * 50)

        available = 0
        sources = registry.primary_first()
        for source in sources:
            result = registry.health_check(source, timeout=timeout)
            last_fetched = to_display(source.last_fetched_at)
            if result['available']:
                available += 1
                print(f"  ✅ {source.name} [{source.tier}]: {result['status_code']} "
                      f"in {result['response_time_ms']:.0f}ms (last fetched {last_fetched})")
            else:
                detail = result.get('error') or f"HTTP {result.get('status_code')}"
                print(f"  ❌ {source.name} [{source.tier}]: {detail} (errors: {result['error_count']}, "
                      f"last fetched {last_fetched})")

        print(f"\n{available}/{len(sources)} sources available")
        return 0
