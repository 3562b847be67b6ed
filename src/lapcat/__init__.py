"""lapcat: laptop marketplace crawler with benchmark-matched CPU/GPU catalog.

Public API surface, import submodules directly for full access:
  lapcat.config.settings          paths, URLs, crawl settings
  lapcat.ingestion.orchestrator   crawl scheduler
  lapcat.storage.repository       SQLite catalog store
  lapcat.matching.resolver        device text to benchmark component
  lapcat.recommend.engine         ranking over the finished catalog
  lapcat.app.cli                  CLI entry point
"""

from .config.settings import CrawlSettings, load_settings
from .ingestion.orchestrator import CrawlReport, CrawlScheduler, run_crawl
from .matching.resolver import resolve
from .recommend.engine import Priorities, rank_catalog
from .storage.repository import CatalogStore


def main():
    """CLI entry point."""
    from .app.main import main as _main
    return _main()


__all__ = [
    "CatalogStore",
    "CrawlReport",
    "CrawlScheduler",
    "CrawlSettings",
    "Priorities",
    "load_settings",
    "rank_catalog",
    "resolve",
    "run_crawl",
    "main",
]
