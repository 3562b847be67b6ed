"""Scheduler tests: fan-out, merge, failure isolation, slot release."""

import asyncio
import threading
from dataclasses import replace

import pytest

from lapcat.browser.pool import SessionPool
from lapcat.ingestion.orchestrator import CrawlScheduler
from lapcat.ingestion.tasks import (
    EnumerateListingPage,
    FetchApiPage,
    FetchBenchmarkTable,
    ResolveDetail,
)
from lapcat.models import CatalogRecord, ComponentKind, RawListing
from lapcat.storage.repository import CatalogStore

from fakes import (
    FakeApi,
    FakeBrowser,
    FakeClock,
    api_item,
    benchmark_session,
    detail_session,
    listing_session,
    make_tile,
    pagination_links,
)

ROOT = "https://shop.example/list/"
BRIEF = ".product-about__brief"


def _dom_settings(settings, **kw):
    return replace(settings, listing_mode="dom", listing_url=ROOT, **kw)


def _scheduler(browser, store, settings, limit=10):
    return CrawlScheduler(SessionPool(browser, limit=limit), store, settings, sleep=FakeClock())


# ============================================================================
# DOM listing mode
# ============================================================================
class TestListingFanOut:
    def test_pages_and_details(self, seeded_store, settings, catalogs):
        browser = FakeBrowser()
        browser.route(ROOT, listing_session(
            [make_tile(1, composition="Intel Core i5-1135G7 / GeForce MX350"), make_tile(2)],
            pagination_links(ROOT + "page=2/", ROOT + "page=3/"),
        ))
        browser.route(ROOT + "page=2/", listing_session([make_tile(3, composition="AMD Ryzen 5 5600H")]))
        browser.route(ROOT + "page=3/", listing_session([make_tile(4, composition="Intel Core i7-12700H")]))
        browser.route("https://shop.example/p2/", detail_session(BRIEF, "AMD Ryzen 5 5600H / GeForce RTX 3050"))

        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))
        outcome = asyncio.run(scheduler.submit(EnumerateListingPage(ROOT, catalogs, allow_pagination_spawn=True)))

        assert outcome.ok
        assert outcome.spawned == 3  # one detail, two pages
        records = seeded_store.load_records()
        assert sorted(records) == [1, 2, 3, 4]
        assert (records[1].cpu_id, records[1].gpu_id) == (1, 10)
        assert records[2].composition == "AMD Ryzen 5 5600H / GeForce RTX 3050"
        assert (records[2].cpu_id, records[2].gpu_id) == (2, 11)
        assert records[3].cpu_id == 2
        assert records[4].cpu_id == 3
        assert records[1].price == 23999
        assert scheduler.report.succeeded["ResolveDetail"] == 1
        assert scheduler.report.succeeded["EnumerateListingPage"] == 3

    def test_child_pages_never_paginate(self, seeded_store, settings, catalogs):
        browser = FakeBrowser()
        # child page still shows pagination links
        browser.route(ROOT + "page=2/", listing_session(
            [make_tile(3, composition="Core")], pagination_links(ROOT + "page=50/"),
        ))
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))
        outcome = asyncio.run(scheduler.submit(EnumerateListingPage(ROOT + "page=2/", catalogs)))
        assert outcome.ok
        assert outcome.spawned == 0
        assert browser.opened == [ROOT + "page=2/"]

    def test_skip_already_enriched(self, seeded_store, settings, catalogs):
        seeded_store.upsert(CatalogRecord(7, "img", "Laptop 7", "Intel i5 / RTX 3050",
                                          "https://shop.example/p7/", 20000, 1, 11))
        browser = FakeBrowser()
        browser.route(ROOT, listing_session([make_tile(7, price="19 999 ₴")]))
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))

        outcome = asyncio.run(scheduler.submit(EnumerateListingPage(ROOT, catalogs, allow_pagination_spawn=True)))

        assert outcome.spawned == 0
        assert browser.count("https://shop.example/p7/") == 0
        assert scheduler.report.details_skipped == 1
        stored = seeded_store.get_record(7)
        assert stored.composition == "Intel i5 / RTX 3050"
        assert stored.price == 20000

    def test_detail_without_composition_stores_partial(self, seeded_store, settings, catalogs):
        browser = FakeBrowser()
        browser.route(ROOT, listing_session([make_tile(8)]))
        browser.route("https://shop.example/p8/", detail_session(None))
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))

        asyncio.run(scheduler.submit(EnumerateListingPage(ROOT, catalogs)))

        stored = seeded_store.get_record(8)
        assert stored is not None
        assert not stored.is_enriched
        assert (stored.cpu_id, stored.gpu_id) == (0, 0)


# ============================================================================
# Failure isolation
# ============================================================================
class TestFailureIsolation:
    def test_failed_sibling_does_not_stop_others(self, seeded_store, settings, catalogs):
        browser = FakeBrowser()
        browser.route(ROOT, listing_session(
            [make_tile(1, composition="Core")],
            pagination_links(ROOT + "page=2/", ROOT + "page=3/", ROOT + "page=4/"),
        ))
        browser.route(ROOT + "page=2/", listing_session([make_tile(2, composition="Core", price="н/д")]))
        # page 3 has no route: session open fails
        browser.route(ROOT + "page=4/", listing_session([make_tile(4, composition="Core")]))
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))

        outcome = asyncio.run(scheduler.submit(EnumerateListingPage(ROOT, catalogs, allow_pagination_spawn=True)))

        assert outcome.ok
        assert sorted(seeded_store.load_records()) == [1, 4]
        report = scheduler.report
        assert report.failed["EnumerateListingPage"] == 2
        assert report.succeeded["EnumerateListingPage"] == 2
        assert len(report.failures) == 2
        assert browser.open_now == 0

    def test_unexpected_error_is_contained(self, seeded_store, settings, catalogs):
        browser = FakeBrowser()

        def exploding(url):
            raise RuntimeError("driver bug")

        browser.route(ROOT, exploding)
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings))
        outcome = asyncio.run(scheduler.submit(EnumerateListingPage(ROOT, catalogs)))
        assert not outcome.ok
        assert "RuntimeError" in outcome.error


# ============================================================================
# Slot release
# ============================================================================
class TestSlotRelease:
    def test_single_slot_pool_completes_tree(self, seeded_store, settings, catalogs):
        browser = FakeBrowser(hold=2)
        browser.route(ROOT, listing_session(
            [make_tile(1), make_tile(2)], pagination_links(ROOT + "page=2/"),
        ))
        browser.route(ROOT + "page=2/", listing_session([make_tile(3)]))
        for i in (1, 2, 3):
            browser.route(f"https://shop.example/p{i}/", detail_session(BRIEF, "Core i5"))
        scheduler = _scheduler(browser, seeded_store, _dom_settings(settings), limit=1)

        async def main():
            return await asyncio.wait_for(
                scheduler.submit(EnumerateListingPage(ROOT, catalogs, allow_pagination_spawn=True)),
                timeout=5,
            )

        outcome = asyncio.run(main())
        assert outcome.ok
        assert browser.peak == 1
        assert all(r.is_enriched for r in seeded_store.load_records().values())
        assert scheduler.report.total_failed == 0


# ============================================================================
# Store access
# ============================================================================
class ThreadRecordingStore(CatalogStore):
    def __init__(self, target):
        super().__init__(target)
        self.call_threads = []

    def upsert(self, record):
        self.call_threads.append(threading.get_ident())
        return super().upsert(record)

    def is_enriched(self, record_id):
        self.call_threads.append(threading.get_ident())
        return super().is_enriched(record_id)


class TestStoreOffLoop:
    def test_merge_runs_outside_event_loop_thread(self, tmp_path, settings, catalogs, cpu_components, gpu_components):
        store = ThreadRecordingStore(tmp_path / "threads.db")
        store.create_schema()
        store.save_components(ComponentKind.CPU, cpu_components)
        store.save_components(ComponentKind.GPU, gpu_components)
        browser = FakeBrowser()
        browser.route(ROOT, listing_session([make_tile(1, composition="Core i5"), make_tile(2)]))
        browser.route("https://shop.example/p2/", detail_session(BRIEF, "Ryzen 5"))
        scheduler = _scheduler(browser, store, _dom_settings(settings))

        async def main():
            await scheduler.submit(EnumerateListingPage(ROOT, catalogs))
            return threading.get_ident()

        loop_thread = asyncio.run(main())
        assert sorted(store.load_records()) == [1, 2]
        assert store.load_records()[2].is_enriched
        assert len(store.call_threads) == 4
        assert loop_thread not in store.call_threads


# ============================================================================
# API mode
# ============================================================================
class TestApiMode:
    def test_api_pages_and_details(self, seeded_store, settings, catalogs):
        api = FakeApi({
            1: [api_item(11, docket="Intel Core i5-1135G7 / GeForce MX350"), api_item(12)],
            2: [api_item(13, docket=[{"value_title": "AMD Ryzen 5 5600H"}])],
        })
        browser = FakeBrowser()
        browser.route(settings.listing_url, api.session())
        browser.route("https://shop.example/p12/", detail_session(BRIEF, "Intel Core i7-12700H"))
        scheduler = _scheduler(browser, seeded_store, settings)

        outcome = asyncio.run(scheduler.submit(FetchApiPage(1, catalogs, allow_pagination_spawn=True)))

        assert outcome.ok
        records = seeded_store.load_records()
        assert sorted(records) == [11, 12, 13]
        assert records[11].cpu_id == 1
        assert records[12].cpu_id == 3
        assert records[13].cpu_id == 2
        assert scheduler.report.succeeded["FetchApiPage"] == 2

    def test_non_root_api_page_does_not_paginate(self, seeded_store, settings, catalogs):
        api = FakeApi({1: [], 2: [api_item(21, docket="Core")], 3: []})
        browser = FakeBrowser({settings.listing_url: api.session()})
        scheduler = _scheduler(browser, seeded_store, settings)
        outcome = asyncio.run(scheduler.submit(FetchApiPage(2, catalogs)))
        assert outcome.spawned == 0
        assert len(browser.opened) == 1


# ============================================================================
# Full run
# ============================================================================
CPU_ROWS = [
    ("cpu_lookup.php?cpu=Intel+Core+i5-1135G7&id=1", "Intel Core i5-1135G7 @ 2.40GHz", "10,000"),
    ("cpu_lookup.php?cpu=AMD+Ryzen+5+5600H&id=2", "AMD Ryzen 5 5600H", "17,000"),
]
GPU_ROWS = [
    ("video_lookup.php?gpu=GeForce+MX350&id=10", "GeForce MX350", "1,500"),
]


def _site(settings):
    browser = FakeBrowser()
    browser.route(settings.cpu_benchmark_url, benchmark_session(CPU_ROWS))
    browser.route(settings.gpu_benchmark_url, benchmark_session(GPU_ROWS))
    browser.route(ROOT, listing_session(
        [make_tile(1, composition="Intel Core i5-1135G7 / GeForce MX350"), make_tile(2)],
        pagination_links(ROOT + "page=2/"),
    ))
    browser.route(ROOT + "page=2/", listing_session([make_tile(3, composition="AMD Ryzen 5 5600H")]))
    browser.route("https://shop.example/p2/", detail_session(BRIEF, "AMD Ryzen 5 5600H / GeForce MX350"))
    return browser


@pytest.mark.integration
class TestFullRun:
    def test_bootstrap_fetches_missing_benchmarks(self, store, settings):
        browser = _site(settings)
        report = asyncio.run(_scheduler(browser, store, _dom_settings(settings)).run())

        assert report.succeeded["FetchBenchmarkTable"] == 2
        assert [c.id for c in store.load_components(ComponentKind.CPU)] == [0, 1, 2]
        assert store.load_components(ComponentKind.CPU)[1].name == "Intel Core i5-1135G7"
        assert sorted(store.load_records()) == [1, 2, 3]
        assert store.get_record(1).gpu_id == 10
        assert report.total_failed == 0

    def test_bootstrap_skips_populated_catalogs(self, seeded_store, settings):
        browser = _site(settings)
        asyncio.run(_scheduler(browser, seeded_store, _dom_settings(settings)).run())
        assert browser.count(settings.cpu_benchmark_url) == 0
        assert browser.count(settings.gpu_benchmark_url) == 0

    def test_rerun_is_idempotent(self, store, settings):
        dom = _dom_settings(settings)
        asyncio.run(_scheduler(_site(settings), store, dom).run())
        first = store.load_records()

        browser = _site(settings)
        report = asyncio.run(_scheduler(browser, store, dom).run())

        assert store.load_records() == first
        # record 2 was enriched by the first run
        assert browser.count("https://shop.example/p2/") == 0
        assert report.details_skipped == 1

    def test_root_task_follows_mode(self, seeded_store, settings, catalogs):
        api = CrawlScheduler(SessionPool(FakeBrowser()), seeded_store, settings)
        assert isinstance(api.root_task(catalogs), FetchApiPage)
        dom = CrawlScheduler(SessionPool(FakeBrowser()), seeded_store, _dom_settings(settings))
        task = dom.root_task(catalogs)
        assert isinstance(task, EnumerateListingPage)
        assert task.allow_pagination_spawn

    def test_task_repr_hides_catalogs(self, catalogs):
        text = repr(ResolveDetail(RawListing(1, "", "Laptop", "100", "https://shop.example/p1/"), catalogs))
        assert "catalogs" not in text
        assert "FetchBenchmarkTable" in repr(FetchBenchmarkTable(ComponentKind.CPU, "u"))