#!/usr/bin/env python3
# scripts/refresh_stats.py
"""
CLI script for refreshing cached Moose stats for every tracked player.

Usage:
    python scripts/refresh_stats.py
    python scripts/refresh_stats.py --server "US Biweekly (Premium)" --strategy per_player
    python scripts/refresh_stats.py --tabs pvp pve --headed --verbose
"""

import sys
import os
import argparse
import asyncio
import functools
import logging

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from moose_tracker import config
from moose_tracker.roster import RefreshInProgressError, RosterService
from moose_tracker.scraper import TAB_DEFS, ScrapeSessionError, scrape_players


def print_summary(response: dict) -> None:
    print("\n" + "=" * 60)
    print(f"SERVER: {response.get('serverName')}")
    timings = response.get('timings') or {}
    if timings:
        print(f"Strategy: {timings.get('strategy')}  Duration: {timings.get('durationMs')}ms")
    print("=" * 60)

    for tab_key, tab in (response.get('tabs') or {}).items():
        print(f"\n[{tab_key}] {len(tab.get('stats') or {})} players, {len(tab.get('metrics') or [])} metrics")
        for label, stats in (tab.get('stats') or {}).items():
            preview = ", ".join(f"{k}={v}" for k, v in list(stats.items())[:4])
            print(f"  {label}: {preview}")

    missing = response.get('missing') or []
    if missing:
        print("\nMissing players:")
        for entry in missing:
            print(f"  ✗ {entry.get('label')}: {entry.get('reason')}")


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description='Refresh Moose stats for all tracked players',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/refresh_stats.py
  python scripts/refresh_stats.py --strategy per_player
  python scripts/refresh_stats.py --tabs pvp resources --headed
        """
    )
    parser.add_argument(
        '--server',
        default=config.DEFAULT_SERVER,
        choices=list(config.ALLOWED_SERVERS),
        help=f'Server leaderboard (default: {config.DEFAULT_SERVER})'
    )
    parser.add_argument(
        '--strategy',
        default=config.STRATEGY_PER_TAB,
        choices=[config.STRATEGY_PER_TAB, config.STRATEGY_PER_PLAYER],
        help='Traversal order (default: per_tab)'
    )
    parser.add_argument(
        '--tabs',
        nargs='+',
        choices=list(TAB_DEFS),
        help='Only scrape these tabs (default: all)'
    )
    parser.add_argument(
        '--headed',
        action='store_true',
        default=False,
        help='Run in headed mode (visible browser)'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    scrape_fn = functools.partial(scrape_players, headless=not args.headed)
    service = RosterService(scrape_fn=scrape_fn)

    try:
        response = asyncio.run(service.refresh(args.server, args.strategy, args.tabs))
    except ValueError as e:
        print(f"✗ ERROR: {e}")
        sys.exit(1)
    except RefreshInProgressError as e:
        print(f"✗ ERROR: {e}")
        sys.exit(1)
    except (ScrapeSessionError, RuntimeError) as e:
        print(f"✗ Scrape failed: {e}")
        sys.exit(2)

    print_summary(response)
    print("\n✓ Refresh complete")


if __name__ == '__main__':
    main()
