"""Command line: ``lapcat crawl``, ``lapcat rank``, ``lapcat init-db``."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from ..config.settings import load_settings
from ..errors import LapcatError
from ..ingestion.orchestrator import run_crawl
from ..recommend.engine import Priorities, load_catalog_frame, parse_priorities, rank_catalog
from ..storage.repository import CatalogStore
from ..utils.logging import get_logger, set_level
from .display import display_ranking, display_report

logger = get_logger(__name__)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lapcat",
        description="Crawl a laptop marketplace into a benchmark-matched catalog.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  lapcat init-db\n"
            "  lapcat crawl --mode dom --max-sessions 4\n"
            "  lapcat rank --cpu 100 --gpu 300 --quantity 20"
        ),
    )
    parser.add_argument("--db", dest="db_path", default=None, help="SQLite file (default: data/laptops.db).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console.")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Fetch benchmarks and listings into the catalog.")
    crawl.add_argument("--mode", dest="listing_mode", choices=["api", "dom"], default=None)
    crawl.add_argument("--max-sessions", type=int, default=None, help="Concurrent browser windows (default: 10).")
    crawl.add_argument("--browser-endpoint", default=None, help="Attach to a running browser over CDP.")
    crawl.add_argument("--headed", action="store_true", help="Show the browser window.")

    rank = sub.add_parser("rank", help="Print the catalog ordered by price per weighted score.")
    rank.add_argument("--cpu", type=int, default=None, help="CPU priority (default: 100).")
    rank.add_argument("--gpu", type=int, default=None, help="GPU priority (default: 0).")
    rank.add_argument("--quantity", type=int, default=None, help="Rows to show (default: 10).")
    rank.add_argument("--query", default=None, help="URL-encoded priorities, e.g. 'cpu=100&gpu=50&quantity=5'.")

    sub.add_parser("init-db", help="Create tables and the Unknown component rows.")
    return parser.parse_args(argv)


def _priorities(args: argparse.Namespace) -> Priorities:
    base = parse_priorities(args.query or "")
    return Priorities(
        cpu=base.cpu if args.cpu is None else args.cpu,
        gpu=base.gpu if args.gpu is None else args.gpu,
        quantity=base.quantity if args.quantity is None else args.quantity,
    )


def cmd_crawl(args: argparse.Namespace) -> int:
    settings = load_settings(
        db_path=args.db_path,
        listing_mode=args.listing_mode,
        max_sessions=args.max_sessions,
        browser_endpoint=args.browser_endpoint,
        headless=False if args.headed else None,
    )
    report = asyncio.run(run_crawl(settings))
    display_report(report)
    return 0


def cmd_rank(args: argparse.Namespace) -> int:
    settings = load_settings(db_path=args.db_path)
    store = CatalogStore(settings.db_path)
    store.create_schema()
    ranked = rank_catalog(load_catalog_frame(store), _priorities(args))
    display_ranking(ranked)
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    settings = load_settings(db_path=args.db_path)
    CatalogStore(settings.db_path).create_schema()
    logger.info("Catalog schema ready at %s", settings.db_path)
    return 0


COMMANDS = {
    "crawl": cmd_crawl,
    "rank": cmd_rank,
    "init-db": cmd_init_db,
}


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        set_level(logging.DEBUG)
    try:
        return COMMANDS[args.command](args)
    except LapcatError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
