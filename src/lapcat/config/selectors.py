"""Site-specific selectors and request templates.

These follow the live markup of the marketplace and benchmark sites and are
expected to drift; keep every string that touches the target markup here.
"""

# ── Benchmark tables (cpubenchmark.net / videocardbenchmark.net) ──────
BENCHMARK_ROWS = "#cputable tbody tr"
CPU_REFERENCE_BASE = "https://www.cpubenchmark.net/"
GPU_REFERENCE_BASE = "https://www.videocardbenchmark.net/"

# ── Listing page tiles ───────────────────────────────────────────────
LISTING_TILE = ".catalog-grid__cell"
TILE_ID = "div.g-id"
TILE_IMAGE = "img"
TILE_TITLE = ".goods-tile__title"
TILE_PRICE = ".goods-tile__price-value"
TILE_LINK = "a.goods-tile__heading"

# (selector, bullet-separated?) tried in order until one is present
TILE_COMPOSITION_CHAIN = (
    ("p.goods-tile__description_type_text", False),
    ("span.goods-tile__description-control", True),
    (".goods-tile__hidden-content", False),
)

PAGINATION_LINK = "a.pagination__link"

# ── Product detail page ──────────────────────────────────────────────
DETAIL_COMPOSITION_CHAIN = (
    (".product-about__brief", False),
    ("ul.characteristics-simple__sub-list span.ng-star-inserted", True),
)

BULLET = "•"

# ── Catalog JSON API ─────────────────────────────────────────────────
API_LIST_REQUEST = "get?front-type=xl&country=UA&lang=ua&page={page}&category_id={category_id}"
API_DETAILS_REQUEST = (
    "getDetails?country=UA&lang=ua&with_groups=1&with_docket=1"
    "&goods_group_href=1&product_ids={ids}"
)

# Runs inside the page so the request carries the site's own origin/cookies.
API_FETCH_SCRIPT = """
async ([base, request]) => {
    const response = await fetch(base + request);
    return {ok: response.ok, status: response.status, body: await response.text()};
}
"""
