"""Console output for ranking results and crawl summaries."""

from typing import List

import pandas as pd

from ..ingestion.orchestrator import CrawlReport
from ..utils.console import print_table, safe_print

RANKING_HEADERS = ["Score", "Price", "Name", "Url"]


def short_name(description: str) -> str:
    """Listing titles carry the hardware summary after the first '/'."""
    return str(description or "").split("/", 1)[0].strip()


def ranking_rows(ranked: pd.DataFrame) -> List[list]:
    return [
        [int(row.total_score), int(row.price), short_name(row.description), row.url]
        for row in ranked.itertuples(index=False)
    ]


def display_ranking(ranked: pd.DataFrame, file=None) -> None:
    if ranked.empty:
        safe_print("No laptops in catalog. Run `lapcat crawl` first.", file=file)
        return
    print_table(RANKING_HEADERS, ranking_rows(ranked), file=file)


def display_report(report: CrawlReport, file=None) -> None:
    kinds = sorted(set(report.succeeded) | set(report.failed))
    rows = [[kind, report.succeeded[kind], report.failed[kind]] for kind in kinds]
    safe_print("=" * 60, file=file)
    safe_print("CRAWL SUMMARY", file=file)
    safe_print("=" * 60, file=file)
    if rows:
        print_table(["Task", "Succeeded", "Failed"], rows, file=file)
    safe_print(f"Records written: {report.records_written}", file=file)
    safe_print(f"Detail pages skipped (already enriched): {report.details_skipped}", file=file)
    safe_print(f"Peak browser sessions: {report.peak_sessions}", file=file)
    if report.failures:
        safe_print(f"\nFailures ({len(report.failures)}):", file=file)
        for line in report.failures:
            safe_print(f"  - {line}", file=file)
