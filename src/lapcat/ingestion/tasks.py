"""The closed set of crawl tasks.

Each task runs exactly once under the scheduler and may spawn more tasks.
Catalog snapshots are shared by reference and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ..models import CatalogSnapshot, ComponentKind, RawListing


@dataclass(frozen=True)
class FetchBenchmarkTable:
    kind: ComponentKind
    url: str


@dataclass(frozen=True)
class EnumerateListingPage:
    page_url: str
    catalogs: CatalogSnapshot = field(repr=False)
    allow_pagination_spawn: bool = False


@dataclass(frozen=True)
class ResolveDetail:
    partial: RawListing
    catalogs: CatalogSnapshot = field(repr=False)


@dataclass(frozen=True)
class FetchApiPage:
    page_number: int
    catalogs: CatalogSnapshot = field(repr=False)
    allow_pagination_spawn: bool = False


CrawlTask = Union[FetchBenchmarkTable, EnumerateListingPage, ResolveDetail, FetchApiPage]


def task_kind(task: CrawlTask) -> str:
    return type(task).__name__


def task_target(task: CrawlTask) -> str:
    """Short human label for logs."""
    if isinstance(task, FetchBenchmarkTable):
        return task.kind.value
    if isinstance(task, EnumerateListingPage):
        return task.page_url
    if isinstance(task, ResolveDetail):
        return f"#{task.partial.external_id}"
    return f"page {task.page_number}"
