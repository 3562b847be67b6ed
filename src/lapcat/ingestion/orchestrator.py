"""Crawl scheduler: runs tasks under the session pool and fans out children.

A task keeps its pool slot only while its own page is open. Children are
awaited after the ``async with pool.session(...)`` block has exited, so a
parent never holds a slot its descendants are waiting for.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from ..browser.pool import PlaywrightSessionOpener, SessionPool, open_browser
from ..config.settings import CrawlSettings, load_settings
from ..errors import LapcatError
from ..extraction.api import read_api_page
from ..extraction.dom import read_benchmark_table, read_detail_composition, read_listing_page
from ..extraction.parsing import page_url, parse_price, split_devices
from ..matching.resolver import resolve
from ..models import CatalogRecord, CatalogSnapshot, ComponentKind, RawListing
from ..storage.repository import CatalogStore
from ..utils.logging import get_logger
from ..utils.retry import Sleep
from .tasks import (
    CrawlTask,
    EnumerateListingPage,
    FetchApiPage,
    FetchBenchmarkTable,
    ResolveDetail,
    task_kind,
    task_target,
)

logger = get_logger(__name__)


@dataclass
class TaskOutcome:
    task: CrawlTask
    ok: bool
    error: Optional[str] = None
    spawned: int = 0


@dataclass
class CrawlReport:
    succeeded: Counter = field(default_factory=Counter)
    failed: Counter = field(default_factory=Counter)
    failures: List[str] = field(default_factory=list)
    records_written: int = 0
    details_skipped: int = 0
    peak_sessions: int = 0

    def record(self, outcome: TaskOutcome) -> None:
        kind = task_kind(outcome.task)
        if outcome.ok:
            self.succeeded[kind] += 1
        else:
            self.failed[kind] += 1
            self.failures.append(f"{kind} {task_target(outcome.task)}: {outcome.error}")

    @property
    def total_succeeded(self) -> int:
        return sum(self.succeeded.values())

    @property
    def total_failed(self) -> int:
        return sum(self.failed.values())


class CrawlScheduler:
    def __init__(
        self,
        pool: SessionPool,
        store: CatalogStore,
        settings: Optional[CrawlSettings] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.pool = pool
        self.store = store
        self.settings = settings or load_settings()
        self.report = CrawlReport()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> CrawlReport:
        catalogs = await self.bootstrap()
        logger.info("%d records already in catalog", self.store.count_records())
        await self.submit(self.root_task(catalogs))
        self.report.peak_sessions = self.pool.peak
        return self.report

    def load_catalogs(self) -> CatalogSnapshot:
        return CatalogSnapshot(
            cpus=self.store.load_components(ComponentKind.CPU),
            gpus=self.store.load_components(ComponentKind.GPU),
        )

    async def bootstrap(self) -> CatalogSnapshot:
        """Fill empty benchmark catalogs, then snapshot both for the run."""
        urls = {
            ComponentKind.CPU: self.settings.cpu_benchmark_url,
            ComponentKind.GPU: self.settings.gpu_benchmark_url,
        }
        # only the sentinel row means the table was never fetched
        missing = [kind for kind in ComponentKind if len(self.store.load_components(kind)) <= 1]
        if missing:
            logger.info("Fetching benchmark tables: %s", ", ".join(k.value for k in missing))
            await asyncio.gather(*(self.submit(FetchBenchmarkTable(k, urls[k])) for k in missing))
        catalogs = self.load_catalogs()
        logger.info("Loaded %d cpus and %d gpus", len(catalogs.cpus) - 1, len(catalogs.gpus) - 1)
        return catalogs

    def root_task(self, catalogs: CatalogSnapshot) -> CrawlTask:
        if self.settings.listing_mode == "dom":
            return EnumerateListingPage(self.settings.listing_url, catalogs, allow_pagination_spawn=True)
        return FetchApiPage(1, catalogs, allow_pagination_spawn=True)

    async def submit(self, task: CrawlTask) -> TaskOutcome:
        """Run ``task`` then its whole subtree; never raises for task errors."""
        try:
            children = await self._execute(task)
        except LapcatError as exc:
            logger.error("%s %s failed: %s", task_kind(task), task_target(task), exc)
            outcome = TaskOutcome(task, ok=False, error=str(exc))
        except Exception as exc:
            logger.error("%s %s crashed", task_kind(task), task_target(task), exc_info=True)
            outcome = TaskOutcome(task, ok=False, error=f"{type(exc).__name__}: {exc}")
        else:
            outcome = TaskOutcome(task, ok=True, spawned=len(children))
        self.report.record(outcome)

        if outcome.ok and children:
            await asyncio.gather(*(self.submit(child) for child in children))
        return outcome

    # ------------------------------------------------------------------
    # Task handlers: each returns the children to run after its slot is free
    # ------------------------------------------------------------------

    async def _execute(self, task: CrawlTask) -> List[CrawlTask]:
        if isinstance(task, FetchBenchmarkTable):
            return await self._fetch_benchmark(task)
        if isinstance(task, EnumerateListingPage):
            return await self._enumerate_page(task)
        if isinstance(task, ResolveDetail):
            return await self._resolve_detail(task)
        if isinstance(task, FetchApiPage):
            return await self._fetch_api_page(task)
        raise TypeError(f"unknown task type: {type(task).__name__}")

    async def _fetch_benchmark(self, task: FetchBenchmarkTable) -> List[CrawlTask]:
        async with self.pool.session(task.url) as session:
            components = await read_benchmark_table(
                session,
                task.kind,
                interval=self.settings.stabilize_interval,
                sleep=self._sleep,
                max_polls=self.settings.stabilize_max_polls,
            )
        saved = await asyncio.to_thread(self.store.save_components, task.kind, components)
        logger.info("Stored %d %s benchmark rows", saved, task.kind.value)
        return []

    async def _enumerate_page(self, task: EnumerateListingPage) -> List[CrawlTask]:
        async with self.pool.session(task.page_url) as session:
            page = await read_listing_page(
                session,
                retry=self.settings.listing_retry,
                interval=self.settings.stabilize_interval,
                sleep=self._sleep,
                max_polls=self.settings.stabilize_max_polls,
                scan_pagination=task.allow_pagination_spawn,
            )
        logger.info("%s: %d listings", task.page_url, len(page.listings))

        children: List[CrawlTask] = await self._merge_listings(page.listings, task.catalogs)
        if task.allow_pagination_spawn:
            children.extend(
                EnumerateListingPage(page_url(task.page_url, number), task.catalogs)
                for number in range(2, page.max_page + 1)
            )
        return children

    async def _fetch_api_page(self, task: FetchApiPage) -> List[CrawlTask]:
        async with self.pool.session(self.settings.listing_url) as session:
            page = await read_api_page(
                session,
                task.page_number,
                api_base=self.settings.api_base,
                category_id=self.settings.category_id,
            )
        logger.info("API page %d/%d: %d listings", task.page_number, page.total_pages, len(page.listings))

        children: List[CrawlTask] = await self._merge_listings(page.listings, task.catalogs)
        if task.allow_pagination_spawn:
            children.extend(
                FetchApiPage(number, task.catalogs) for number in range(2, page.total_pages + 1)
            )
        return children

    async def _resolve_detail(self, task: ResolveDetail) -> List[CrawlTask]:
        partial = task.partial
        async with self.pool.session(partial.detail_url) as session:
            composition = await read_detail_composition(session, self.settings.detail_retry)

        if composition:
            logger.info("Loaded composition of %s", partial.title)
        else:
            logger.warning("No composition on detail page of %d", partial.external_id)
        await self._store(self._build_record(partial.with_composition(composition), task.catalogs))
        return []

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    async def _merge_listings(self, listings: List[RawListing], catalogs: CatalogSnapshot) -> List[CrawlTask]:
        """Store every listing; return detail tasks for the incomplete ones."""
        children: List[CrawlTask] = []
        for listing in listings:
            record = self._build_record(listing, catalogs)
            if listing.has_composition:
                await self._store(record)
                continue

            enriched = await asyncio.to_thread(self.store.is_enriched, listing.external_id)
            await self._store(record)
            if enriched:
                self.report.details_skipped += 1
                logger.info("Skip loading composition of %s", listing.title)
            else:
                children.append(ResolveDetail(listing, catalogs))
        return children

    def _build_record(self, listing: RawListing, catalogs: CatalogSnapshot) -> CatalogRecord:
        devices = split_devices(listing.composition)
        cpu = resolve(devices, catalogs.cpus)
        gpu = resolve(devices, catalogs.gpus)

        if not listing.has_composition or not listing.image_url:
            logger.warning("Not full info in listing %d (%s)", listing.external_id, listing.title)
        else:
            logger.debug("Matched %r with cpu %r and gpu %r", listing.composition, cpu.name, gpu.name)

        return CatalogRecord(
            id=listing.external_id,
            image=listing.image_url,
            description=listing.title,
            composition=listing.composition if listing.has_composition else None,
            url=listing.detail_url,
            price=parse_price(listing.price_raw),
            cpu_id=cpu.id,
            gpu_id=gpu.id,
        )

    async def _store(self, record: CatalogRecord) -> None:
        if await asyncio.to_thread(self.store.upsert, record):
            self.report.records_written += 1


async def run_crawl(settings: Optional[CrawlSettings] = None) -> CrawlReport:
    """One full crawl against a real browser."""
    settings = settings or load_settings()
    store = CatalogStore(settings.db_path)
    store.create_schema()

    async with open_browser(settings) as browser:
        opener = PlaywrightSessionOpener(browser, timeout_ms=settings.page_timeout_ms)
        pool = SessionPool(opener, limit=settings.max_sessions)
        report = await CrawlScheduler(pool, store, settings).run()

    logger.info(
        "Crawl finished: %d tasks ok, %d failed, %d records written",
        report.total_succeeded,
        report.total_failed,
        report.records_written,
    )
    return report
