"""Ranking over the finished catalog: weighted benchmark score per price."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs

import pandas as pd
from sqlalchemy import select

from ..errors import DecodeFailure
from ..storage.repository import COMPONENT_TABLES, CatalogStore, catalog_record
from ..models import ComponentKind
from ..utils.logging import get_logger

logger = get_logger(__name__)

RANK_COLUMNS = [
    "id", "image", "description", "composition", "url", "price",
    "cpu_id", "gpu_id", "cpu_score", "gpu_score", "cpu_name", "gpu_name",
]


@dataclass(frozen=True)
class Priorities:
    cpu: int = 100
    gpu: int = 0
    quantity: int = 10


def parse_priorities(query: str) -> Priorities:
    """Decode ``cpu=..&gpu=..&quantity=..``; omitted keys keep their defaults."""
    defaults = Priorities()
    if not query or not query.strip():
        return defaults
    try:
        params = parse_qs(query.strip(), strict_parsing=True)
    except ValueError as exc:
        raise DecodeFailure(f"malformed priorities {query!r}: {exc}") from exc

    unknown = set(params) - {"cpu", "gpu", "quantity"}
    if unknown:
        raise DecodeFailure(f"unknown priority keys: {', '.join(sorted(unknown))}")

    values = {}
    for key in ("cpu", "gpu", "quantity"):
        if key not in params:
            values[key] = getattr(defaults, key)
            continue
        raw = params[key][-1]
        try:
            value = int(raw)
        except ValueError:
            raise DecodeFailure(f"{key} must be an integer, got {raw!r}") from None
        if value < 0:
            raise DecodeFailure(f"{key} cannot be negative")
        values[key] = value
    return Priorities(**values)


def load_catalog_frame(store: CatalogStore) -> pd.DataFrame:
    """Every record joined with its cpu and gpu benchmark rows."""
    cpu = COMPONENT_TABLES[ComponentKind.CPU].alias("cpu")
    gpu = COMPONENT_TABLES[ComponentKind.GPU].alias("gpu")
    query = (
        select(
            catalog_record,
            cpu.c.score.label("cpu_score"),
            gpu.c.score.label("gpu_score"),
            cpu.c.name.label("cpu_name"),
            gpu.c.name.label("gpu_name"),
        )
        .select_from(
            catalog_record
            .join(cpu, catalog_record.c.cpu_id == cpu.c.id)
            .join(gpu, catalog_record.c.gpu_id == gpu.c.id)
        )
        .order_by(catalog_record.c.id)
    )
    with store.engine.connect() as conn:
        frame = pd.read_sql(query, conn)
    logger.debug("Loaded %d catalog rows for ranking", len(frame))
    return frame.reindex(columns=RANK_COLUMNS)


def _weighted(scores: pd.Series, weight: int) -> pd.Series:
    top = int(scores.max()) if len(scores) else 0
    if top <= 0:
        return pd.Series(0, index=scores.index, dtype="int64")
    return scores.astype("int64") * weight // top


def total_scores(frame: pd.DataFrame, priorities: Priorities) -> pd.Series:
    return _weighted(frame["cpu_score"], priorities.cpu) + _weighted(frame["gpu_score"], priorities.gpu)


def rank_catalog(frame: pd.DataFrame, priorities: Priorities = Priorities()) -> pd.DataFrame:
    """Cheapest price per point of weighted score first; ties keep catalog order."""
    if frame.empty:
        return frame.assign(total_score=pd.Series(dtype="int64"), value=pd.Series(dtype="int64"))

    ranked = frame.copy()
    ranked["total_score"] = total_scores(ranked, priorities)
    ranked["value"] = ranked["price"].astype("int64") * 1000 // (ranked["total_score"] + 1)
    ranked = ranked.sort_values("value", kind="stable")
    return ranked.head(priorities.quantity).reset_index(drop=True)
