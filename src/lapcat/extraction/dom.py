"""Rendered-DOM adapter: listing tiles, product detail pages, benchmark tables.

Pages on both sites render client-side, so every read starts with a
stabilization wait instead of a fixed sleep.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from ..browser.pool import Session
from ..config.selectors import (
    BENCHMARK_ROWS,
    DETAIL_COMPOSITION_CHAIN,
    LISTING_TILE,
    PAGINATION_LINK,
    TILE_COMPOSITION_CHAIN,
    TILE_ID,
    TILE_IMAGE,
    TILE_LINK,
    TILE_PRICE,
    TILE_TITLE,
)
from ..errors import ExtractionFailure
from ..models import Component, ComponentKind, RawListing
from ..utils.logging import get_logger
from ..utils.retry import NO_RETRY, RetryPolicy, Sleep
from .parsing import (
    benchmark_reference_url,
    parse_benchmark_id,
    parse_benchmark_score,
    parse_max_page,
    replace_bullets,
)

logger = get_logger(__name__)


@dataclass
class ListingPage:
    listings: List[RawListing] = field(default_factory=list)
    max_page: int = 0


async def wait_until_stable(
    session: Session,
    selector: str,
    interval: float,
    sleep: Sleep = asyncio.sleep,
    max_polls: Optional[int] = None,
) -> list:
    """Re-query ``selector`` until two consecutive counts are equal and non-zero.

    Unbounded unless ``max_polls`` is given; an empty page keeps its session
    slot busy until the caller gives up.
    """
    count = 0
    elements = await session.find_all(selector)
    polls = 0
    while count == 0 or count != len(elements):
        if max_polls is not None and polls >= max_polls:
            raise ExtractionFailure(
                f"{selector!r} on {session.url} did not settle after {polls} polls"
            )
        count = len(elements)
        await sleep(interval)
        elements = await session.find_all(selector)
        polls += 1
    logger.debug("%s settled at %d elements", session.url, count)
    return elements


async def _text(element: Any) -> str:
    return ((await element.inner_text()) or "").strip()


async def _required_text(tile: Any, selector: str, what: str) -> str:
    element = await tile.query_selector(selector)
    if element is None:
        raise ExtractionFailure(f"listing tile without {what} ({selector})")
    return await _text(element)


async def _first_text(
    lookup,
    chain: Sequence[Tuple[str, bool]],
    retry: RetryPolicy,
    sleep: Sleep,
) -> str:
    """Text of the first selector in ``chain`` that is present, else ''."""
    for selector, bulleted in chain:
        element = await retry.attempt(lambda: lookup(selector), sleep=sleep)
        if element is not None:
            text = await _text(element)
            return replace_bullets(text) if bulleted else text
    return ""


async def extract_tile(
    tile: Any,
    retry: RetryPolicy = NO_RETRY,
    sleep: Sleep = asyncio.sleep,
) -> RawListing:
    raw_id = await _required_text(tile, TILE_ID, "id")
    try:
        external_id = int(raw_id)
    except ValueError:
        raise ExtractionFailure(f"listing id is not a number: {raw_id!r}") from None

    image = await tile.query_selector(TILE_IMAGE)
    image_url = (await image.get_attribute("src") or "") if image is not None else ""

    title = await _required_text(tile, TILE_TITLE, "title")
    composition = await _first_text(tile.query_selector, TILE_COMPOSITION_CHAIN, retry, sleep)
    price_text = await _required_text(tile, TILE_PRICE, "price")

    link = await tile.query_selector(TILE_LINK)
    detail_url = (await link.get_attribute("href") or "") if link is not None else ""
    if not detail_url:
        raise ExtractionFailure(f"listing {external_id} has no product link")

    return RawListing(
        external_id=external_id,
        image_url=image_url,
        title=title,
        price_raw=price_text,
        detail_url=detail_url,
        composition=composition,
    )


async def read_listing_page(
    session: Session,
    *,
    retry: RetryPolicy,
    interval: float,
    sleep: Sleep = asyncio.sleep,
    max_polls: Optional[int] = None,
    scan_pagination: bool = False,
) -> ListingPage:
    """Extract every tile of a listing page.

    Only the first tile waits for its composition with ``retry``; the rest
    render together with it and are tried once.
    """
    tiles = await wait_until_stable(session, LISTING_TILE, interval, sleep, max_polls)
    page = ListingPage()
    for index, tile in enumerate(tiles):
        policy = retry if index == 0 else NO_RETRY
        page.listings.append(await extract_tile(tile, policy, sleep))

    if scan_pagination:
        hrefs = []
        for link in await session.find_all(PAGINATION_LINK):
            hrefs.append(await link.get_attribute("href") or "")
        page.max_page = parse_max_page(hrefs)
    return page


async def read_detail_composition(session: Session, retry: RetryPolicy) -> str:
    """Composition text from a product page, '' once the retry budget is spent."""
    for selector, bulleted in DETAIL_COMPOSITION_CHAIN:
        element = await session.find_one(selector, retry=retry)
        if element is not None:
            text = await _text(element)
            return replace_bullets(text) if bulleted else text
    return ""


def parse_benchmark_html(html: str, kind: ComponentKind) -> List[Component]:
    soup = BeautifulSoup(html, "lxml")
    components = []
    for row in soup.select(BENCHMARK_ROWS):
        cells = row.find_all("td", recursive=False)
        if len(cells) < 2:
            # repeated header rows
            continue
        link = cells[0].find("a")
        if link is None:
            logger.warning("Benchmark row without link skipped: %s", row.get_text(" ", strip=True)[:80])
            continue
        href = link.get("href") or ""
        components.append(
            Component(
                id=parse_benchmark_id(href),
                name=link.get_text(strip=True),
                url=benchmark_reference_url(kind, href),
                score=parse_benchmark_score(cells[1].get_text(strip=True)),
            )
        )
    return components


async def read_benchmark_table(
    session: Session,
    kind: ComponentKind,
    *,
    interval: float,
    sleep: Sleep = asyncio.sleep,
    max_polls: Optional[int] = None,
) -> List[Component]:
    await wait_until_stable(session, BENCHMARK_ROWS, interval, sleep, max_polls)
    return parse_benchmark_html(await session.content(), kind)
