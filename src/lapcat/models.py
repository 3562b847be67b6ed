"""Catalog data model: components, raw listings and persisted records."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple, Union

UNKNOWN_COMPONENT_ID = 0


class ComponentKind(str, Enum):
    CPU = "cpu"
    GPU = "gpu"

    @property
    def table_name(self) -> str:
        return f"component_{self.value}"

    @property
    def unknown_name(self) -> str:
        return f"Unknown {self.value}"


@dataclass(frozen=True)
class Component:
    id: int
    name: str
    url: str
    score: int


@dataclass(frozen=True)
class RawListing:
    """What an extraction adapter pulls off a page, before resolution."""

    external_id: int
    image_url: str
    title: str
    price_raw: Union[str, int]
    detail_url: str
    composition: str = ""

    @property
    def has_composition(self) -> bool:
        return bool(self.composition and self.composition.strip())

    def with_composition(self, composition: str) -> "RawListing":
        return replace(self, composition=composition)


@dataclass(frozen=True)
class CatalogRecord:
    id: int
    image: str
    description: str
    composition: Optional[str]
    url: str
    price: int
    cpu_id: int = UNKNOWN_COMPONENT_ID
    gpu_id: int = UNKNOWN_COMPONENT_ID

    @property
    def is_enriched(self) -> bool:
        return bool(self.composition and self.composition.strip())


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable CPU/GPU catalogs shared by every task of one crawl run.

    Index 0 of each tuple is the "unknown" sentinel.
    """

    cpus: Tuple[Component, ...]
    gpus: Tuple[Component, ...]
