"""
Immutable lookup index over the generation catalog.

The index is a snapshot: it is built once per batch job from the
Generation × Model × Brand join and never refreshed. Callers that change the
catalog (dedupe, renames) must rebuild it to see their changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from catalog_app.models import Brand, Generation, VehicleModel, db

from .normalize import code_key, match_key

IndexKey = tuple[str, str]


@dataclass(frozen=True)
class CatalogEntry:
    """Flattened catalog row used for matching."""

    generation_id: int
    model_id: int
    brand_name: str
    model_name: str
    generation_name: str | None = None
    internal_code: str | None = None

    @property
    def brand_key(self) -> str:
        return match_key(self.brand_name)

    @property
    def model_key(self) -> str:
        return match_key(self.model_name)

    @property
    def code_key(self) -> str:
        return code_key(self.internal_code)


@dataclass(frozen=True)
class CandidateIndex:
    entries: tuple[CatalogEntry, ...] = ()
    by_brand_code: Mapping[IndexKey, tuple[CatalogEntry, ...]] = field(default_factory=lambda: MappingProxyType({}))
    by_brand_model: Mapping[IndexKey, tuple[CatalogEntry, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, catalog: Iterable[CatalogEntry]) -> "CandidateIndex":
        """Index ``catalog`` in a single pass, preserving catalog order within each key."""

        entries: list[CatalogEntry] = []
        by_code: dict[IndexKey, list[CatalogEntry]] = {}
        by_model: dict[IndexKey, list[CatalogEntry]] = {}
        for entry in catalog:
            entries.append(entry)
            brand_key = entry.brand_key
            if not brand_key:
                continue
            if entry.code_key:
                by_code.setdefault((brand_key, entry.code_key), []).append(entry)
            if entry.model_key:
                by_model.setdefault((brand_key, entry.model_key), []).append(entry)
        return cls(
            entries=tuple(entries),
            by_brand_code=MappingProxyType({key: tuple(value) for key, value in by_code.items()}),
            by_brand_model=MappingProxyType({key: tuple(value) for key, value in by_model.items()}),
        )

    def __len__(self) -> int:
        return len(self.entries)

    def lookup_code(self, brand: str, code: str) -> tuple[CatalogEntry, ...]:
        return self.by_brand_code.get((match_key(brand), code_key(code)), ())

    def lookup_model(self, brand: str, model: str) -> tuple[CatalogEntry, ...]:
        return self.by_brand_model.get((match_key(brand), match_key(model)), ())


def load_catalog(session: Session | None = None) -> list[CatalogEntry]:
    """Read the flattened catalog ordered by generation id."""

    session = session or db.session
    rows = (
        session.query(
            Generation.id,
            Generation.model_id,
            Brand.name,
            VehicleModel.name,
            Generation.name,
            Generation.internal_code,
        )
        .join(VehicleModel, Generation.model_id == VehicleModel.id)
        .join(Brand, VehicleModel.brand_id == Brand.id)
        .order_by(Generation.id)
        .all()
    )
    return [
        CatalogEntry(
            generation_id=generation_id,
            model_id=model_id,
            brand_name=brand_name,
            model_name=model_name,
            generation_name=generation_name,
            internal_code=internal_code,
        )
        for generation_id, model_id, brand_name, model_name, generation_name, internal_code in rows
    ]


def build_candidate_index(session: Session | None = None) -> CandidateIndex:
    return CandidateIndex.build(load_catalog(session))


__all__ = ["CandidateIndex", "CatalogEntry", "build_candidate_index", "load_catalog"]
