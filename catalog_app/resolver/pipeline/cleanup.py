"""
In-place cleanup of catalog text and codes.

Three jobs live here: rewriting engine variant names that still carry scraper
artifacts, backfilling missing generation codes from generation names, and
applying the configured model rename table. Backfilling can surface new
duplicate generations, so run ``dedupe-generations`` after it.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.orm import Session

from catalog_app.models import Brand, EngineVariant, Generation, VehicleModel, db
from config.aliases import MODEL_RENAMES, ModelRename

from .chassis import ChassisCodeExtractor
from .dedupe import CatalogMerger, ModelRenameResult
from .normalize import has_artifacts, strip_artifacts

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_BATCH_SIZE = 500
_SAMPLE_LIMIT = 20


def _batch_size(value: int | None) -> int:
    if value:
        return max(int(value), 1)
    if has_app_context():
        return int(current_app.config.get("CATALOG_CLEANUP_BATCH_SIZE", DEFAULT_CLEANUP_BATCH_SIZE))
    return DEFAULT_CLEANUP_BATCH_SIZE


@dataclass
class VariantCleanupSummary:
    rows_considered: int = 0
    rows_updated: int = 0
    rows_skipped_empty: int = 0
    samples: list[dict[str, object]] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "rows_considered": self.rows_considered,
            "rows_updated": self.rows_updated,
            "rows_skipped_empty": self.rows_skipped_empty,
            "samples": list(self.samples),
            "dry_run": self.dry_run,
        }


@dataclass
class CodeBackfillSummary:
    rows_considered: int = 0
    rows_updated: int = 0
    rows_without_code: int = 0
    codes: Counter = field(default_factory=Counter)
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "rows_considered": self.rows_considered,
            "rows_updated": self.rows_updated,
            "rows_without_code": self.rows_without_code,
            "codes": dict(self.codes),
            "dry_run": self.dry_run,
        }


def clean_variant_names(
    session: Session | None = None,
    *,
    batch_size: int | None = None,
    dry_run: bool = False,
) -> VariantCleanupSummary:
    """
    Rewrite engine variant names with :func:`strip_artifacts`.

    Names that would become empty are left alone and counted as skipped;
    they need a human to pick a real name.
    """

    session = session or db.session
    size = _batch_size(batch_size)
    summary = VariantCleanupSummary(dry_run=dry_run)
    # Cheap SQL prefilter; has_artifacts() makes the real decision
    prefilter = or_(
        EngineVariant.name.ilike("%specs"),
        EngineVariant.name.ilike("%undefined%"),
        EngineVariant.name.ilike("%null%"),
        EngineVariant.name.ilike("%nan%"),
    )

    last_id = 0
    while True:
        rows = (
            session.query(EngineVariant)
            .filter(prefilter, EngineVariant.id > last_id)
            .order_by(EngineVariant.id)
            .limit(size)
            .all()
        )
        if not rows:
            break
        for variant in rows:
            last_id = variant.id
            if not has_artifacts(variant.name):
                continue
            summary.rows_considered += 1
            cleaned = strip_artifacts(variant.name)
            if not cleaned:
                summary.rows_skipped_empty += 1
                continue
            if len(summary.samples) < _SAMPLE_LIMIT:
                summary.samples.append({"id": variant.id, "before": variant.name, "after": cleaned})
            summary.rows_updated += 1
            if not dry_run:
                variant.name = cleaned
        if dry_run:
            session.rollback()
        else:
            session.commit()

    logger.info(
        "Variant cleanup: %s updated, %s skipped (empty)",
        summary.rows_updated,
        summary.rows_skipped_empty,
    )
    return summary


def backfill_internal_codes(
    session: Session | None = None,
    *,
    extractor: ChassisCodeExtractor | None = None,
    batch_size: int | None = None,
    dry_run: bool = False,
) -> CodeBackfillSummary:
    """Fill ``Generation.internal_code`` from the generation name where it is NULL."""

    session = session or db.session
    extractor = extractor or ChassisCodeExtractor()
    size = _batch_size(batch_size)
    summary = CodeBackfillSummary(dry_run=dry_run)

    last_id = 0
    while True:
        rows = (
            session.query(Generation, Brand.name)
            .join(VehicleModel, Generation.model_id == VehicleModel.id)
            .join(Brand, VehicleModel.brand_id == Brand.id)
            .filter(Generation.internal_code.is_(None), Generation.id > last_id)
            .order_by(Generation.id)
            .limit(size)
            .all()
        )
        if not rows:
            break
        for generation, brand_name in rows:
            last_id = generation.id
            summary.rows_considered += 1
            code = extractor.extract_code(brand_name, generation.name)
            if code is None:
                summary.rows_without_code += 1
                continue
            summary.rows_updated += 1
            summary.codes[code] += 1
            if not dry_run:
                generation.internal_code = code
        if dry_run:
            session.rollback()
        else:
            session.commit()

    logger.info(
        "Code backfill: %s generations updated, %s without a recognisable code",
        summary.rows_updated,
        summary.rows_without_code,
    )
    return summary


def apply_model_renames(
    merger: CatalogMerger,
    renames: Iterable[ModelRename] = MODEL_RENAMES,
    *,
    dry_run: bool = False,
) -> list[ModelRenameResult]:
    """Apply each configured rename through :meth:`CatalogMerger.rename_or_merge_model`."""

    results = []
    for rename in renames:
        result = merger.rename_or_merge_model(
            brand_name=rename.brand,
            old_name=rename.old_name,
            new_name=rename.new_name,
            dry_run=dry_run,
        )
        logger.info("Model rename %s -> %s (%s): %s", rename.old_name, rename.new_name, rename.brand, result.action)
        results.append(result)
    return results


__all__ = [
    "CodeBackfillSummary",
    "VariantCleanupSummary",
    "apply_model_renames",
    "backfill_internal_codes",
    "clean_variant_names",
]
