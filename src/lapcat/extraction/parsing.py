"""Pure text helpers shared by the DOM and API adapters."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Union
from urllib.parse import parse_qs, urlsplit

from ..config.selectors import BULLET, CPU_REFERENCE_BASE, GPU_REFERENCE_BASE
from ..errors import DecodeFailure, ExtractionFailure
from ..models import ComponentKind

_NON_DIGIT_RE = re.compile(r"\D")
_PAGE_SEGMENT_RE = re.compile(r"^page=(\d+)$")


def parse_price(raw: Union[str, int, None]) -> int:
    """'23 999 ₴' -> 23999. Anything without digits is a hard failure."""
    if isinstance(raw, bool):
        raise ExtractionFailure(f"unparsable price: {raw!r}")
    if isinstance(raw, int):
        return raw
    digits = _NON_DIGIT_RE.sub("", raw or "")
    if not digits:
        raise ExtractionFailure(f"unparsable price: {raw!r}")
    return int(digits)


def split_devices(composition: str) -> List[str]:
    """Split a composition line into device name candidates.

    >>> split_devices("Intel Core i5-1135G7(4 cores) / 8GB RAM")
    ['Intel Core i5-1135G7', '8GB RAM']
    """
    devices = []
    for segment in (composition or "").split("/"):
        device = segment.split("(", 1)[0].strip()
        if device:
            devices.append(device)
    return devices


def replace_bullets(text: str) -> str:
    return text.replace(BULLET, "/")


def parse_max_page(hrefs: Iterable[str]) -> int:
    """Highest ``page=N`` path segment among pagination links, 0 if none."""
    max_page = 0
    for href in hrefs:
        path = urlsplit(href or "").path
        for segment in path.split("/"):
            m = _PAGE_SEGMENT_RE.match(segment)
            if m:
                max_page = max(max_page, int(m.group(1)))
    return max_page


def page_url(root_url: str, number: int) -> str:
    return f"{root_url}page={number}/"


def parse_benchmark_id(href: str) -> int:
    """Component id from a benchmark link such as ``cpu_lookup.php?cpu=X&id=3456``."""
    query = urlsplit(href or "").query
    try:
        params = parse_qs(query, strict_parsing=True)
    except ValueError as exc:
        raise DecodeFailure(f"malformed benchmark link {href!r}: {exc}") from exc
    values = params.get("id")
    if not values:
        raise DecodeFailure(f"benchmark link without id: {href!r}")
    try:
        return int(values[0])
    except ValueError:
        raise DecodeFailure(f"non-numeric benchmark id in {href!r}") from None


def parse_benchmark_score(text: str) -> int:
    cleaned = (text or "").replace(",", "").strip()
    try:
        return int(cleaned)
    except ValueError:
        return 0


def benchmark_reference_url(kind: ComponentKind, href: str) -> str:
    if kind is ComponentKind.CPU:
        return f"{CPU_REFERENCE_BASE}{href}".replace("_lookup", "")
    return f"{GPU_REFERENCE_BASE}{href}".replace("video_lookup", "gpu")


def normalize_component_name(kind: ComponentKind, name: str) -> str:
    """Drop clock speed ("@ 2.40GHz") from CPUs and the vendor tail from GPUs."""
    separator = "@" if kind is ComponentKind.CPU else ","
    return (name or "").split(separator, 1)[0].strip()


def docket_text(item: Mapping[str, Any]) -> str:
    """Composition from an API item: a plain string or ``[{"value_title": ...}]``."""
    docket = item.get("docket")
    if isinstance(docket, str):
        return docket
    if isinstance(docket, list) and docket and isinstance(docket[0], Mapping):
        value = docket[0].get("value_title")
        return value if isinstance(value, str) else ""
    return ""
