"""Remote-data adapter for the marketplace catalog API.

The list endpoint returns item ids and ``total_pages``; a second call batches
every id of the page into one details request. Both run as ``fetch`` inside
the open page.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Union

from ..browser.pool import Session
from ..config.selectors import API_DETAILS_REQUEST, API_FETCH_SCRIPT, API_LIST_REQUEST
from ..errors import DecodeFailure, ExtractionFailure, TransportFailure
from ..models import RawListing
from ..utils.logging import get_logger
from .parsing import docket_text

logger = get_logger(__name__)


@dataclass
class ApiPage:
    listings: List[RawListing] = field(default_factory=list)
    total_pages: int = 0


async def fetch_json(session: Session, api_base: str, request: str) -> Any:
    reply = await session.evaluate(API_FETCH_SCRIPT, [api_base, request])
    if not isinstance(reply, Mapping):
        raise DecodeFailure(f"{request}: unexpected fetch result {reply!r}")
    if not reply.get("ok"):
        raise TransportFailure(f"{request}: HTTP {reply.get('status')}")
    try:
        return json.loads(reply.get("body") or "")
    except ValueError as exc:
        raise DecodeFailure(f"{request}: response is not JSON ({exc})") from None


def _require(payload: Any, key: str, where: str) -> Any:
    if not isinstance(payload, Mapping) or key not in payload:
        raise DecodeFailure(f"{where}: missing {key!r}")
    return payload[key]


def _api_price(price: Any, external_id: int) -> Union[int, str]:
    # whole numbers only; digit stripping would turn 23999.5 into 239995
    if isinstance(price, bool):
        raise ExtractionFailure(f"item {external_id}: boolean price")
    if isinstance(price, (int, str)):
        return price
    if isinstance(price, float) and price.is_integer():
        return int(price)
    raise ExtractionFailure(f"item {external_id}: unusable price {price!r}")


def parse_api_item(item: Any) -> RawListing:
    if not isinstance(item, Mapping):
        raise DecodeFailure(f"details item is not an object: {item!r}")
    try:
        external_id = int(_require(item, "id", "details item"))
    except (TypeError, ValueError):
        raise DecodeFailure(f"details item with non-numeric id: {item.get('id')!r}") from None

    price = _api_price(item.get("price"), external_id)
    return RawListing(
        external_id=external_id,
        image_url=str(item.get("image_main") or ""),
        title=str(item.get("title") or ""),
        price_raw=price,
        detail_url=str(item.get("href") or ""),
        composition=docket_text(item),
    )


async def read_api_page(
    session: Session,
    page_number: int,
    *,
    api_base: str,
    category_id: int,
) -> ApiPage:
    listing = await fetch_json(
        session,
        api_base,
        API_LIST_REQUEST.format(page=page_number, category_id=category_id),
    )
    data = _require(listing, "data", f"list page {page_number}")
    ids = _require(data, "ids", f"list page {page_number}")
    if not isinstance(ids, list):
        raise DecodeFailure(f"list page {page_number}: 'ids' is not an array")
    try:
        total_pages = int(data.get("total_pages") or 0)
    except (TypeError, ValueError):
        raise DecodeFailure(f"list page {page_number}: bad total_pages") from None

    page = ApiPage(total_pages=total_pages)
    if not ids:
        logger.info("API page %d has no items", page_number)
        return page

    details = await fetch_json(
        session,
        api_base,
        API_DETAILS_REQUEST.format(ids=",".join(str(i) for i in ids)),
    )
    items = _require(details, "data", f"details for page {page_number}")
    if not isinstance(items, list):
        raise DecodeFailure(f"details for page {page_number}: 'data' is not an array")
    page.listings = [parse_api_item(item) for item in items]
    return page
