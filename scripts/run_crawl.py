#!/usr/bin/env python3
"""Crawl the configured catalog seeds and write the product exports."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from rich import box
from rich.console import Console
from rich.table import Table

from core.crawl_runner import CrawlResult, run_crawl
from utils.config_loader import load_settings
from utils.error_handling import ConfigurationError, describe_error
from utils.logger import configure_crawler_logging

logger = logging.getLogger("scripts.run_crawl")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl paginated catalog pages and export deduplicated products"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON settings file (values override CRAWLER_* env vars)",
    )
    parser.add_argument(
        "--seed",
        dest="seeds",
        action="append",
        default=None,
        metavar="URL",
        help="Seed URL to crawl; repeat for several seeds (replaces configured seeds)",
    )
    parser.add_argument("--csv", dest="csv_path", help="CSV output path")
    parser.add_argument("--json", dest="json_path", help="Optional JSON output path")
    parser.add_argument(
        "--queue-limit",
        dest="storage_queue_limit",
        type=int,
        help="Number of unique products per flush (default: 5)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        help="Navigation attempts per page (default: 3)",
    )
    parser.add_argument(
        "--anti-bot-check",
        action="store_true",
        default=None,
        help="Stop a page walk when an anti-bot challenge page is served",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        help="Limit how many seeds are crawled at once (default: unlimited)",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Run the browser with a visible window",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Logging level (default: INFO)",
    )
    return parser


def render_summary(result: CrawlResult, console: Optional[Console] = None) -> None:
    console = console or Console()

    table = Table(title="Crawl summary", box=box.SIMPLE_HEAVY)
    table.add_column("Seed", overflow="fold")
    table.add_column("Status")
    table.add_column("Pages", justify="right")
    table.add_column("Products", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Error", overflow="fold")

    for outcome in result.report.outcomes:
        status = "[red]failed[/red]" if outcome.failed else "[green]done[/green]"
        error = describe_error(outcome.error) if outcome.error else ""
        table.add_row(
            outcome.seed_url,
            status,
            str(outcome.pages_visited),
            str(outcome.records_emitted),
            str(outcome.retry_count),
            error,
        )
    console.print(table)

    stats = result.stats
    console.print(
        f"Received [bold]{stats.received}[/bold] products, "
        f"skipped {stats.duplicates} duplicates, "
        f"flushed [bold]{stats.flushed}[/bold] in {stats.flush_count} batches"
    )
    if stats.mirror_failures:
        console.print(f"[yellow]{stats.mirror_failures} mirror uploads failed[/yellow]")
    if result.sink_error is not None:
        console.print(f"[red]Output incomplete: {result.sink_error}[/red]")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {
        "seed_urls": args.seeds,
        "csv_path": args.csv_path,
        "json_path": args.json_path,
        "storage_queue_limit": args.storage_queue_limit,
        "max_retries": args.max_retries,
        "anti_bot_check": args.anti_bot_check,
        "max_concurrency": args.max_concurrency,
        "headless": False if args.headed else None,
        "log_level": args.log_level,
    }

    try:
        settings = load_settings(args.config, **overrides)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    configure_crawler_logging(settings.log_level, settings.log_file)
    logger.info("Crawling %d seed(s)", len(settings.seed_urls))

    try:
        result = asyncio.run(run_crawl(settings))
    except KeyboardInterrupt:
        logger.warning("Crawl interrupted")
        return 130
    except Exception as exc:  # noqa: BLE001 - report fatal setup failures
        logger.exception("Crawl aborted: %s", describe_error(exc))
        return 2

    render_summary(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
