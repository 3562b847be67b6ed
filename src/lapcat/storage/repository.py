"""SQLite catalog store: benchmark components and merged laptop records.

The merge policy lives in a single ``INSERT .. ON CONFLICT DO UPDATE .. WHERE``
statement so concurrent writers never interleave a partial row and the
"never regress an enriched composition" check reads the row it updates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    case,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import TransportFailure
from ..extraction.parsing import normalize_component_name
from ..models import UNKNOWN_COMPONENT_ID, CatalogRecord, Component, ComponentKind
from ..utils.logging import get_logger

logger = get_logger(__name__)

metadata = MetaData()


def _component_table(kind: ComponentKind) -> Table:
    return Table(
        kind.table_name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(255), nullable=False),
        Column("url", String(255), nullable=False),
        Column("score", Integer, nullable=False),
    )


COMPONENT_TABLES = {kind: _component_table(kind) for kind in ComponentKind}

catalog_record = Table(
    "catalog_record",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("image", String(255), nullable=False),
    Column("description", String(255), nullable=False),
    Column("composition", String(255), nullable=True),
    Column("url", String(255), nullable=False),
    Column("price", Integer, nullable=False),
    Column("cpu_id", Integer, ForeignKey("component_cpu.id", ondelete="CASCADE"), nullable=False),
    Column("gpu_id", Integer, ForeignKey("component_gpu.id", ondelete="CASCADE"), nullable=False),
)


def _has_text(column):
    return func.coalesce(func.trim(column), "") != ""


class CatalogStore:
    def __init__(self, target: Union[str, Path, Engine]) -> None:
        if isinstance(target, Engine):
            self.engine = target
        elif isinstance(target, str) and "://" in target:
            self.engine = create_engine(target)
        else:
            path = Path(target)
            path.parent.mkdir(parents=True, exist_ok=True)
            # crawl handlers call the store from worker threads
            self.engine = create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def create_schema(self) -> None:
        """Create tables and seed the ``id=0`` "Unknown" rows. Safe to repeat."""
        try:
            with self.engine.begin() as conn:
                metadata.create_all(conn)
                for kind, table in COMPONENT_TABLES.items():
                    conn.execute(
                        sqlite_insert(table)
                        .values(id=UNKNOWN_COMPONENT_ID, name=kind.unknown_name, url="", score=0)
                        .on_conflict_do_nothing(index_elements=[table.c.id])
                    )
        except SQLAlchemyError as exc:
            raise TransportFailure(f"schema creation failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def load_components(self, kind: ComponentKind) -> Tuple[Component, ...]:
        """Catalog ordered by id (sentinel first), with display names normalized."""
        table = COMPONENT_TABLES[kind]
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(table).order_by(table.c.id)).all()
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot read {table.name}: {exc}") from exc
        return tuple(
            Component(
                id=row.id,
                name=normalize_component_name(kind, row.name),
                url=row.url,
                score=row.score,
            )
            for row in rows
        )

    def save_components(self, kind: ComponentKind, components: Iterable[Component]) -> int:
        table = COMPONENT_TABLES[kind]
        rows = [
            {"id": c.id, "name": c.name, "url": c.url, "score": c.score}
            for c in components
            if c.id != UNKNOWN_COMPONENT_ID
        ]
        if not rows:
            return 0
        stmt = sqlite_insert(table)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.id],
            set_={"name": stmt.excluded.name, "url": stmt.excluded.url, "score": stmt.excluded.score},
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt, rows)
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot write {table.name}: {exc}") from exc
        return len(rows)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(row) -> CatalogRecord:
        return CatalogRecord(
            id=row.id,
            image=row.image,
            description=row.description,
            composition=row.composition,
            url=row.url,
            price=row.price,
            cpu_id=row.cpu_id,
            gpu_id=row.gpu_id,
        )

    def get_record(self, record_id: int) -> Optional[CatalogRecord]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(catalog_record).where(catalog_record.c.id == record_id)
                ).first()
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot read record {record_id}: {exc}") from exc
        return self._to_record(row) if row is not None else None

    def is_enriched(self, record_id: int) -> bool:
        record = self.get_record(record_id)
        return record is not None and record.is_enriched

    def load_records(self) -> Dict[int, CatalogRecord]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(catalog_record).order_by(catalog_record.c.id)).all()
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot read catalog records: {exc}") from exc
        return {row.id: self._to_record(row) for row in rows}

    def count_records(self) -> int:
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(catalog_record)).scalar_one()
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot count catalog records: {exc}") from exc

    def upsert(self, record: CatalogRecord) -> bool:
        """Insert or merge ``record``; False when an enriched row was kept as is.

        An incoming record without composition refreshes the other fields of
        a not-yet-enriched row and leaves an enriched row untouched.
        """
        values = {
            "id": record.id,
            "image": record.image,
            "description": record.description,
            "composition": record.composition if record.is_enriched else None,
            "url": record.url,
            "price": record.price,
            "cpu_id": record.cpu_id,
            "gpu_id": record.gpu_id,
        }
        stmt = sqlite_insert(catalog_record).values(**values)
        incoming_enriched = _has_text(stmt.excluded.composition)
        stmt = stmt.on_conflict_do_update(
            index_elements=[catalog_record.c.id],
            set_={
                "image": stmt.excluded.image,
                "description": stmt.excluded.description,
                "composition": case(
                    (incoming_enriched, stmt.excluded.composition),
                    else_=catalog_record.c.composition,
                ),
                "url": stmt.excluded.url,
                "price": stmt.excluded.price,
                "cpu_id": stmt.excluded.cpu_id,
                "gpu_id": stmt.excluded.gpu_id,
            },
            where=or_(incoming_enriched, ~_has_text(catalog_record.c.composition)),
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise TransportFailure(f"cannot store record {record.id}: {exc}") from exc
        written = result.rowcount > 0
        if not written:
            logger.debug("Kept enriched record %d", record.id)
        return written
