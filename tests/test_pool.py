"""Tests for lapcat.browser.pool and lapcat.utils.retry."""

import asyncio

import pytest

from lapcat.browser.pool import PageSession, SessionPool
from lapcat.errors import TransportFailure
from lapcat.utils.retry import NO_RETRY, RetryPolicy

from fakes import FakeBrowser, FakeClock, FakeSession


# ============================================================================
# RetryPolicy
# ============================================================================
class TestRetryPolicy:
    def _lookup(self, results):
        calls = []

        async def lookup():
            calls.append(1)
            return results[len(calls) - 1] if len(calls) <= len(results) else None

        return lookup, calls

    def test_found_first_time_never_sleeps(self):
        clock = FakeClock()
        lookup, calls = self._lookup(["el"])
        assert asyncio.run(RetryPolicy(3, 1.0).attempt(lookup, sleep=clock)) == "el"
        assert len(calls) == 1
        assert clock.sleeps == []

    def test_found_on_third_attempt(self):
        clock = FakeClock()
        lookup, calls = self._lookup([None, None, "el"])
        assert asyncio.run(RetryPolicy(3, 5.0).attempt(lookup, sleep=clock)) == "el"
        assert len(calls) == 3
        assert clock.sleeps == [5.0, 5.0]

    def test_budget_exhausted_returns_none(self):
        clock = FakeClock()
        lookup, calls = self._lookup([])
        assert asyncio.run(RetryPolicy(3, 1.0).attempt(lookup, sleep=clock)) is None
        assert len(calls) == 4
        assert clock.sleeps == [1.0, 1.0, 1.0]

    def test_no_retry_tries_once(self):
        lookup, calls = self._lookup([])
        assert asyncio.run(NO_RETRY.attempt(lookup, sleep=FakeClock())) is None
        assert len(calls) == 1


# ============================================================================
# SessionPool
# ============================================================================
class TestSessionPool:
    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            SessionPool(FakeBrowser(), limit=0)

    def test_concurrency_bound(self):
        browser = FakeBrowser(hold=3)
        for i in range(10):
            browser.route(f"u{i}", lambda url: FakeSession(url))
        pool = SessionPool(browser, limit=2)

        async def work(url):
            async with pool.session(url):
                for _ in range(5):
                    await asyncio.sleep(0)
                assert browser.open_now <= 2

        async def main():
            await asyncio.gather(*(work(f"u{i}") for i in range(10)))

        asyncio.run(main())
        assert browser.peak == 2
        assert pool.peak == 2
        assert browser.open_now == 0
        assert len(browser.opened) == 10

    def test_session_closed_when_body_raises(self):
        browser = FakeBrowser({"u": lambda url: FakeSession(url)})
        pool = SessionPool(browser, limit=1)

        async def main():
            with pytest.raises(RuntimeError):
                async with pool.session("u"):
                    raise RuntimeError("boom")
            # slot was released, a second session can open
            async with pool.session("u") as again:
                return again

        again = asyncio.run(main())
        assert browser.sessions[0].close_calls == 1
        assert again.closed
        assert pool.in_use == 0

    def test_open_failure_releases_slot(self):
        browser = FakeBrowser({"ok": lambda url: FakeSession(url)})
        pool = SessionPool(browser, limit=1)

        async def main():
            with pytest.raises(TransportFailure):
                async with pool.session("missing"):
                    pass
            async with pool.session("ok"):
                pass

        asyncio.run(main())
        assert browser.opened == ["ok"]


# ============================================================================
# PageSession
# ============================================================================
class _Page:
    def __init__(self, fail_close=False):
        self.close_calls = 0
        self.fail_close = fail_close

    async def close(self):
        from playwright.async_api import Error as PlaywrightError

        self.close_calls += 1
        if self.fail_close:
            raise PlaywrightError("Target closed")

    async def query_selector(self, selector):
        from playwright.async_api import Error as PlaywrightError

        raise PlaywrightError("detached")


class TestPageSession:
    def test_close_is_idempotent(self):
        page = _Page()
        session = PageSession(page, "u")

        async def main():
            await session.close()
            await session.close()

        asyncio.run(main())
        assert page.close_calls == 1
        assert session.closed

    def test_close_failure_is_logged_not_raised(self):
        page = _Page(fail_close=True)
        session = PageSession(page, "u")
        asyncio.run(session.close())
        assert session.closed

    def test_playwright_error_becomes_transport_failure(self):
        session = PageSession(_Page(), "u")
        with pytest.raises(TransportFailure):
            asyncio.run(session.find_one("div"))
