#!/usr/bin/env python3
"""
Weekly Slack activity report.

Usage:
    python -m reports.run_weekly                     # week before the current ISO week
    python -m reports.run_weekly --date 2024-03-06   # week before the one containing that date
    python -m reports.run_weekly --dry-run           # print only, no Slack delivery
    python -m reports.run_weekly --help

The OS scheduler runs this daily; in production it only proceeds on Mondays
unless MANUAL is set (or --manual is passed).

Environment variables:
    DATABASE_URL: SQLAlchemy URL of the platform database (required)
    SLACK_WEBHOOK_URL: Incoming webhook receiving the report
    SLACK_PRIVATE_ACTIVITY_CHANNEL: Channel the report is posted to
    APP_ENV: Deployment mode ("production" enables the Monday gate)
    MANUAL: Bypass the Monday gate
    START_DATE: Reference date (default: now)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import traceback
from datetime import date
from typing import List, Mapping, Optional

from reports import metrics, render, slack
from reports.config import ConfigError, ReportConfig, env_flag, load_config_from_env
from reports.timeframe import parse_reference, week_window
from store.database import create_engine_from_url, session_factory

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SKIPPED = 0

MONDAY = 0


def should_skip(env: Mapping[str, str], manual: bool = False, today: Optional[date] = None) -> bool:
    """
    True when APP_ENV is production and today is not Monday, unless MANUAL
    (or ``manual``) is set. Reads the environment only, so it runs before
    the rest of the configuration is loaded.
    """
    if manual or env_flag(env.get("MANUAL")):
        return False
    today = today or date.today()
    return env.get("APP_ENV", "").strip() == "production" and today.weekday() != MONDAY


async def generate(cfg: ReportConfig, dry_run: bool = False) -> str:
    """
    Collect metrics for the reporting week, render them and deliver to Slack.

    Returns:
        The rendered report text

    Raises:
        Any query or delivery failure, unchanged
    """
    window = week_window(cfg.start_date, tz=cfg.timezone, hour_offset=cfg.week_start_hour)
    print(f"[report] Collecting metrics from {window.start.isoformat()} to {window.end.isoformat()}...")

    engine = create_engine_from_url(cfg.database_url)
    try:
        collector = metrics.MetricsCollector(session_factory(engine), cfg.excluded_collective_id)
        result = await collector.collect(window)
    finally:
        await engine.dispose()

    report = render.render_report(result)
    print(report)

    if dry_run:
        print("[report] Dry run, Slack delivery skipped")
    else:
        await slack.post_message(
            report,
            cfg.slack_webhook_url or "",
            channel=cfg.slack_channel,
            record=cfg.record,
        )
    return report


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the weekly report.

    Returns:
        Exit code (0 for success or skipped run, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Post the weekly activity summary to Slack",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--date",
        type=str,
        help="Reference date (ISO-8601). Default: START_DATE or now",
    )
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Run regardless of the production Monday gate",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the report without posting it",
    )

    args = parser.parse_args(argv)

    if should_skip(os.environ, manual=args.manual):
        print("[report] APP_ENV is production and day is not Monday, script aborted!")
        return EXIT_SKIPPED

    try:
        cfg = load_config_from_env()
        if args.manual:
            cfg.manual = True
        if args.date:
            cfg.start_date = parse_reference(args.date)
    except (ValueError, ConfigError) as e:
        print(f"[report] ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        asyncio.run(generate(cfg, dry_run=args.dry_run))
        print("[report] Weekly reporting done!")
        return EXIT_OK

    except Exception as e:
        print(f"[report] ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
