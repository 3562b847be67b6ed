from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from ..errors import ConfigFailure
from ..utils.retry import RetryPolicy

BASE_DIR = Path(__file__).resolve().parents[3]
DATA_DIR = BASE_DIR / "data"
DEFAULT_DB_PATH = DATA_DIR / "laptops.db"

CPU_BENCHMARK_URL = "https://www.cpubenchmark.net/cpu_list.php"
GPU_BENCHMARK_URL = "https://www.videocardbenchmark.net/gpu_list.php"
LISTING_URL = "https://rozetka.com.ua/ua/notebooks/c80004/"
API_BASE = "https://xl-catalog-api.rozetka.com.ua/v4/goods/"
CATEGORY_ID = 80004

ENV_PREFIX = "LAPCAT_"
LISTING_MODES = ("api", "dom")


@dataclass(frozen=True)
class CrawlSettings:
    db_path: Path = DEFAULT_DB_PATH
    browser_endpoint: Optional[str] = None
    headless: bool = True
    max_sessions: int = 10
    listing_mode: str = "api"
    listing_url: str = LISTING_URL
    api_base: str = API_BASE
    category_id: int = CATEGORY_ID
    cpu_benchmark_url: str = CPU_BENCHMARK_URL
    gpu_benchmark_url: str = GPU_BENCHMARK_URL
    stabilize_interval: float = 5.0
    stabilize_max_polls: Optional[int] = None
    page_timeout_ms: int = 60000
    listing_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(attempts=3, delay=1.0))
    detail_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(attempts=3, delay=5.0))


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigFailure(f"{name}: expected a boolean, got {raw!r}")


def _parse_int(name: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigFailure(f"{name}: expected an integer, got {raw!r}") from None


def _parse_float(name: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigFailure(f"{name}: expected a number, got {raw!r}") from None


_CONVERTERS = {
    "db_path": lambda name, raw: Path(raw).expanduser(),
    "browser_endpoint": lambda name, raw: raw or None,
    "headless": _parse_bool,
    "max_sessions": _parse_int,
    "listing_mode": lambda name, raw: str(raw).strip().lower(),
    "listing_url": lambda name, raw: raw,
    "api_base": lambda name, raw: raw,
    "category_id": _parse_int,
    "stabilize_interval": _parse_float,
    "stabilize_max_polls": lambda name, raw: _parse_int(name, raw) or None,
    "page_timeout_ms": _parse_int,
}


def _validate(settings: CrawlSettings) -> CrawlSettings:
    if settings.max_sessions < 1:
        raise ConfigFailure(f"max_sessions must be at least 1, got {settings.max_sessions}")
    if settings.listing_mode not in LISTING_MODES:
        raise ConfigFailure(
            f"listing_mode must be one of {', '.join(LISTING_MODES)}, got {settings.listing_mode!r}"
        )
    if settings.stabilize_interval < 0:
        raise ConfigFailure("stabilize_interval cannot be negative")
    if settings.listing_mode == "dom" and not settings.listing_url.endswith("/"):
        # child page urls are built as f"{listing_url}page=N/"
        raise ConfigFailure("listing_url must end with '/'")
    return settings


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> CrawlSettings:
    """Build settings from defaults, ``LAPCAT_*`` variables, then overrides.

    Overrides set to ``None`` are ignored so argparse namespaces can be
    passed through directly.
    """
    env = os.environ if environ is None else environ
    known = {f.name for f in fields(CrawlSettings)}
    values = {}

    for name, convert in _CONVERTERS.items():
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            values[name] = convert(ENV_PREFIX + name.upper(), raw)

    for name, raw in overrides.items():
        if raw is None:
            continue
        if name not in known:
            raise ConfigFailure(f"unknown setting: {name}")
        convert = _CONVERTERS.get(name)
        values[name] = convert(name, raw) if convert and isinstance(raw, str) else raw

    return _validate(replace(CrawlSettings(), **values))
