"""
Duplicate detection and merging for catalog generations, models and appearances.

A merge always re-points every configured dependent column from the duplicate
to the surviving original before deleting the duplicate, and each group runs
inside its own savepoint: if any statement fails the whole group is rolled
back, nothing is deleted, and the group is picked up again on the next pass.
Dependent columns are configuration (``CATALOG_GENERATION_DEPENDENTS`` and
``CATALOG_MODEL_DEPENDENTS``) so a new child table is one setting away from
being merged correctly.

Some dependents allow one row per parent (``safety_ratings.generation_id`` is
unique). When both the original and a duplicate own such a row,
``CATALOG_UNIQUE_CONFLICT_POLICY`` decides: ``keep_original`` drops the
duplicate's row inside the group's savepoint, ``fail`` rolls the group back.

The merger assumes it is the only writer touching the catalog while it runs.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Literal, Sequence

from sqlalchemy import Table, UniqueConstraint, delete, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_app.models import Brand, Generation, MergeLog, VehicleAppearance, VehicleModel, db
from catalog_app.resolver.metrics import record_merge
from config.base import (
    DEFAULT_GENERATION_DEPENDENTS,
    DEFAULT_MODEL_DEPENDENTS,
    DEFAULT_UNIQUE_CONFLICT_POLICY,
    UNIQUE_CONFLICT_POLICIES,
)
from config.overrides import CatalogConfigError

from .normalize import code_key, slugify

logger = logging.getLogger(__name__)

EntityType = Literal["generation", "model"]
_ENTITY_TABLES = {"generation": "generations", "model": "models"}
_EPOCH = datetime(1970, 1, 1)


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationRecord:
    id: int
    model_id: int
    internal_code: str | None
    created_at: datetime | None = None


@dataclass(frozen=True)
class DuplicateGroup:
    """Generations sharing ``(model_id, internal_code)``; ``original_id`` survives the merge."""

    model_id: int
    internal_code: str
    original_id: int
    duplicate_ids: tuple[int, ...]

    @property
    def key(self) -> tuple[int, str]:
        return (self.model_id, self.internal_code)


def _creation_order(record: GenerationRecord) -> tuple:
    created_at = record.created_at
    if created_at is None:
        # Rows without a timestamp sort after every dated row, then by id
        return (1, _EPOCH, record.id)
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
    return (0, created_at, record.id)


def group_duplicate_generations(records: Iterable[GenerationRecord]) -> list[DuplicateGroup]:
    """
    Group generations by ``(model_id, internal_code)``.

    Codes are compared by their normalized key, so ``E46`` and ``e46`` collide.
    Null and blank codes never group. The earliest-created record is the
    original; identical timestamps fall back to the lowest id. Groups come back
    ordered by their original's id.
    """

    buckets: dict[tuple[int, str], list[GenerationRecord]] = {}
    for record in records:
        key = code_key(record.internal_code)
        if not key:
            continue
        buckets.setdefault((record.model_id, key), []).append(record)

    groups: list[DuplicateGroup] = []
    for members in buckets.values():
        if len(members) < 2:
            continue
        ordered = sorted(members, key=_creation_order)
        original = ordered[0]
        groups.append(
            DuplicateGroup(
                model_id=original.model_id,
                internal_code=(original.internal_code or "").strip(),
                original_id=original.id,
                duplicate_ids=tuple(record.id for record in ordered[1:]),
            )
        )
    groups.sort(key=lambda group: group.original_id)
    return groups


def find_duplicate_generations(session: Session | None = None) -> list[DuplicateGroup]:
    session = session or db.session
    rows = (
        session.query(Generation.id, Generation.model_id, Generation.internal_code, Generation.created_at)
        .filter(Generation.internal_code.isnot(None))
        .order_by(Generation.id)
        .all()
    )
    return group_duplicate_generations(
        GenerationRecord(id=row_id, model_id=model_id, internal_code=code, created_at=created_at)
        for row_id, model_id, code, created_at in rows
    )


# ---------------------------------------------------------------------------
# Merge results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DependentColumn:
    table: str
    column: str

    @classmethod
    def parse(cls, value: str) -> "DependentColumn":
        table, _, column = str(value).strip().partition(".")
        if not table or not column:
            raise CatalogConfigError(f"Dependent column '{value}' must look like 'table.column'.")
        return cls(table=table, column=column)

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


@dataclass
class MergeReport:
    """Outcome of merging one group; ``error`` is set when the group was rolled back."""

    entity_type: EntityType
    original_id: int
    merged_ids: list[int] = field(default_factory=list)
    rows_repointed: dict[str, int] = field(default_factory=dict)
    rows_dropped: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict[str, object]:
        return {
            "entity_type": self.entity_type,
            "original_id": self.original_id,
            "merged_ids": list(self.merged_ids),
            "rows_repointed": dict(self.rows_repointed),
            "rows_dropped": dict(self.rows_dropped),
            "error": self.error,
            "dry_run": self.dry_run,
        }


@dataclass
class DedupeSummary:
    groups_found: int = 0
    groups_merged: int = 0
    groups_failed: int = 0
    rows_deleted: int = 0
    rows_repointed: Counter = field(default_factory=Counter)
    rows_dropped: Counter = field(default_factory=Counter)
    reports: list[MergeReport] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "groups_found": self.groups_found,
            "groups_merged": self.groups_merged,
            "groups_failed": self.groups_failed,
            "rows_deleted": self.rows_deleted,
            "rows_repointed": dict(self.rows_repointed),
            "rows_dropped": dict(self.rows_dropped),
            "reports": [report.as_dict() for report in self.reports],
            "dry_run": self.dry_run,
        }


@dataclass
class ModelRenameResult:
    """
    Outcome of a model rename request.

    ``action`` is one of ``renamed``, ``merged``, ``unchanged``,
    ``not_found`` (no model with the old name under the brand),
    ``missing_brand`` or ``failed``.
    """

    brand: str
    old_name: str
    new_name: str
    action: str
    model_id: int | None = None
    merged_ids: list[int] = field(default_factory=list)
    rows_repointed: dict[str, int] = field(default_factory=dict)
    error: str | None = None
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "brand": self.brand,
            "from": self.old_name,
            "to": self.new_name,
            "action": self.action,
            "model_id": self.model_id,
            "merged_ids": list(self.merged_ids),
            "rows_repointed": dict(self.rows_repointed),
            "error": self.error,
            "dry_run": self.dry_run,
        }


@dataclass
class AppearanceDedupeSummary:
    rows_considered: int = 0
    groups_found: int = 0
    rows_deleted: int = 0
    deleted_ids: list[int] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "rows_considered": self.rows_considered,
            "groups_found": self.groups_found,
            "rows_deleted": self.rows_deleted,
            "deleted_ids": list(self.deleted_ids),
            "dry_run": self.dry_run,
        }


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------


class CatalogMerger:
    """Re-point-then-delete merges for generations and models."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        generation_dependents: Iterable[str] = DEFAULT_GENERATION_DEPENDENTS,
        model_dependents: Iterable[str] = DEFAULT_MODEL_DEPENDENTS,
        run_id: int | None = None,
        decision_type: str = "auto",
        unique_conflict_policy: str = DEFAULT_UNIQUE_CONFLICT_POLICY,
    ):
        policy = (unique_conflict_policy or DEFAULT_UNIQUE_CONFLICT_POLICY).strip().lower()
        if policy not in UNIQUE_CONFLICT_POLICIES:
            raise CatalogConfigError(
                f"Unknown unique conflict policy '{unique_conflict_policy}'; "
                f"expected one of {', '.join(UNIQUE_CONFLICT_POLICIES)}."
            )
        self.session = session or db.session
        self.unique_conflict_policy = policy
        self.run_id = run_id
        self.decision_type = decision_type
        self.generation_dependents = self._resolve_dependents(generation_dependents)
        self.model_dependents = self._resolve_dependents(model_dependents)

    @staticmethod
    def _table(name: str) -> Table:
        table = db.metadata.tables.get(name)
        if table is None:
            raise CatalogConfigError(f"Unknown table '{name}' in merge configuration.")
        return table

    def _resolve_dependents(self, values: Iterable[str]) -> tuple[DependentColumn, ...]:
        dependents = tuple(DependentColumn.parse(value) for value in values)
        for dependent in dependents:
            if dependent.column not in self._table(dependent.table).c:
                raise CatalogConfigError(f"Unknown column '{dependent}' in merge configuration.")
        return dependents

    @staticmethod
    def _is_unique(table: Table, column_name: str) -> bool:
        column = table.c[column_name]
        if column.unique:
            return True
        for constraint in table.constraints:
            if isinstance(constraint, UniqueConstraint) and [c.name for c in constraint.columns] == [column_name]:
                return True
        return any(index.unique and [c.name for c in index.columns] == [column_name] for index in table.indexes)

    def _drop_conflicting_rows(self, table: Table, column_name: str, original_id: int, duplicate_id: int) -> int:
        """Delete the duplicate's rows in a one-per-parent table when the original already owns one."""

        column = table.c[column_name]
        if not self.session.execute(select(exists().where(column == original_id))).scalar():
            return 0
        result = self.session.execute(delete(table).where(column == duplicate_id))
        return max(result.rowcount or 0, 0)

    def _dependents_for(self, entity_type: EntityType) -> tuple[DependentColumn, ...]:
        if entity_type == "model":
            return self.model_dependents
        return self.generation_dependents

    # ------------------------------------------------------------------

    def merge(
        self,
        original_id: int,
        duplicate_ids: Sequence[int],
        dependents: Iterable[str] | None = None,
        *,
        entity_type: EntityType = "generation",
        reason: str | None = None,
    ) -> MergeReport:
        """
        Re-point dependents of ``duplicate_ids`` to ``original_id`` and delete the duplicates.

        All statements run in one savepoint. On failure the savepoint is rolled
        back and the returned report carries the error; the caller's outer
        transaction stays usable.
        """

        columns = self._resolve_dependents(dependents) if dependents is not None else self._dependents_for(entity_type)
        entity_table = self._table(_ENTITY_TABLES[entity_type])
        duplicates = [dup for dup in dict.fromkeys(duplicate_ids) if dup != original_id]
        report = MergeReport(entity_type=entity_type, original_id=original_id)
        if not duplicates:
            return report

        counts: Counter = Counter()
        dropped: Counter = Counter()
        try:
            with self.session.begin_nested():
                for duplicate_id in duplicates:
                    for dependent in columns:
                        table = self._table(dependent.table)
                        if self.unique_conflict_policy == "keep_original" and self._is_unique(table, dependent.column):
                            dropped[dependent.table] += self._drop_conflicting_rows(
                                table, dependent.column, original_id, duplicate_id
                            )
                        result = self.session.execute(
                            update(table)
                            .where(table.c[dependent.column] == duplicate_id)
                            .values({dependent.column: original_id})
                        )
                        counts[dependent.table] += max(result.rowcount or 0, 0)
                    self.session.execute(delete(entity_table).where(entity_table.c.id == duplicate_id))
                self.session.add(
                    MergeLog(
                        run_id=self.run_id,
                        entity_type=entity_type,
                        original_id=original_id,
                        merged_ids=list(duplicates),
                        rows_repointed={str(table): count for table, count in counts.items()},
                        rows_dropped={str(table): count for table, count in dropped.items() if count} or None,
                        decision_type=self.decision_type,
                        reason=reason,
                    )
                )
        except SQLAlchemyError as exc:
            report.error = str(getattr(exc, "orig", None) or exc)
            logger.warning(
                "Merge of %s %s into %s rolled back: %s",
                entity_type,
                duplicates,
                original_id,
                report.error,
            )
            record_merge(entity=entity_type, outcome="failed")
            return report
        finally:
            # Core statements bypass the identity map
            self.session.expire_all()

        report.merged_ids = duplicates
        report.rows_repointed = dict(counts)
        report.rows_dropped = {table: count for table, count in dropped.items() if count}
        record_merge(entity=entity_type, outcome="merged", rows_repointed=report.rows_repointed)
        logger.info(
            "Merged %s %s into %s",
            entity_type,
            duplicates,
            original_id,
            extra={"catalog_rows_repointed": report.rows_repointed, "catalog_rows_dropped": report.rows_dropped},
        )
        return report

    def merge_group(self, group: DuplicateGroup) -> MergeReport:
        return self.merge(
            group.original_id,
            group.duplicate_ids,
            entity_type="generation",
            reason=f"duplicate internal_code {group.internal_code} under model {group.model_id}",
        )

    def merge_generations(
        self,
        groups: Sequence[DuplicateGroup] | None = None,
        *,
        dry_run: bool = False,
    ) -> DedupeSummary:
        """Merge every duplicate group; failed groups are reported and left for the next pass."""

        if groups is None:
            groups = find_duplicate_generations(self.session)
        summary = DedupeSummary(groups_found=len(groups), dry_run=dry_run)
        for group in groups:
            if dry_run:
                summary.reports.append(
                    MergeReport(
                        entity_type="generation",
                        original_id=group.original_id,
                        merged_ids=list(group.duplicate_ids),
                        dry_run=True,
                    )
                )
                continue
            report = self.merge_group(group)
            summary.reports.append(report)
            if report.succeeded:
                summary.groups_merged += 1
                summary.rows_deleted += len(report.merged_ids)
                summary.rows_repointed.update(report.rows_repointed)
                summary.rows_dropped.update(report.rows_dropped)
            else:
                summary.groups_failed += 1
        return summary

    def rename_or_merge_model(
        self,
        *,
        brand_name: str,
        old_name: str,
        new_name: str,
        dry_run: bool = False,
    ) -> ModelRenameResult:
        """
        Rename ``old_name`` to ``new_name`` under ``brand_name``.

        When ``new_name`` already exists as a different model of the same brand,
        the old model's generations move to it and the old model is deleted.
        Otherwise the old model is renamed in place with a fresh slug.
        """

        result = ModelRenameResult(brand=brand_name, old_name=old_name, new_name=new_name, action="unchanged", dry_run=dry_run)
        brand = self.session.query(Brand).filter(func.lower(Brand.name) == brand_name.strip().lower()).first()
        if brand is None:
            result.action = "missing_brand"
            return result

        old_models = (
            self.session.query(VehicleModel)
            .filter(VehicleModel.brand_id == brand.id, VehicleModel.name == old_name)
            .order_by(VehicleModel.id)
            .all()
        )
        if not old_models:
            result.action = "not_found"
            return result
        if old_name == new_name:
            result.model_id = old_models[0].id
            return result

        old_ids = [model.id for model in old_models]
        target = (
            self.session.query(VehicleModel)
            .filter(
                VehicleModel.brand_id == brand.id,
                VehicleModel.name == new_name,
                VehicleModel.id.notin_(old_ids),
            )
            .order_by(VehicleModel.id)
            .first()
        )

        if target is not None:
            result.action = "merged"
            result.model_id = target.id
            merge_ids = old_ids
        else:
            # Keep the oldest model under the new name; any other copies of the old name fold into it
            result.action = "renamed"
            result.model_id = old_ids[0]
            merge_ids = old_ids[1:]

        if dry_run:
            result.merged_ids = list(merge_ids)
            return result

        if target is None:
            survivor = old_models[0]
            try:
                with self.session.begin_nested():
                    survivor.name = new_name
                    survivor.slug = slugify(new_name)
                    self.session.flush()
            except SQLAlchemyError as exc:
                result.action = "failed"
                result.error = str(getattr(exc, "orig", None) or exc)
                logger.warning("Rename of model %s to %s failed: %s", old_name, new_name, result.error)
                return result

        if merge_ids:
            report = self.merge(
                result.model_id,
                merge_ids,
                entity_type="model",
                reason=f"model rename {old_name} -> {new_name} ({brand.name})",
            )
            if not report.succeeded:
                result.action = "failed"
                result.error = report.error
                return result
            result.merged_ids = report.merged_ids
            result.rows_repointed = report.rows_repointed
        return result


def dedupe_appearances(
    session: Session | None = None,
    *,
    dry_run: bool = False,
    delete_batch_size: int = 100,
) -> AppearanceDedupeSummary:
    """
    Delete later copies of linked appearances sharing ``(generation_id, movie_title, media_type)``.

    The earliest-created row (lowest id on ties) survives. Unlinked rows are
    never touched: they are still waiting for review.
    """

    session = session or db.session
    rows = (
        session.query(
            VehicleAppearance.id,
            VehicleAppearance.generation_id,
            VehicleAppearance.movie_title,
            VehicleAppearance.media_type,
        )
        .filter(VehicleAppearance.generation_id.isnot(None))
        .order_by(VehicleAppearance.created_at, VehicleAppearance.id)
        .all()
    )

    summary = AppearanceDedupeSummary(rows_considered=len(rows), dry_run=dry_run)
    seen: set[tuple] = set()
    grouped: set[tuple] = set()
    for row_id, generation_id, movie_title, media_type in rows:
        key = (generation_id, movie_title, media_type)
        if key in seen:
            summary.deleted_ids.append(row_id)
            grouped.add(key)
            continue
        seen.add(key)
    summary.groups_found = len(grouped)

    if dry_run or not summary.deleted_ids:
        return summary

    for start in range(0, len(summary.deleted_ids), delete_batch_size):
        chunk = summary.deleted_ids[start : start + delete_batch_size]
        result = session.execute(delete(VehicleAppearance).where(VehicleAppearance.id.in_(chunk)))
        summary.rows_deleted += max(result.rowcount or 0, 0)
    session.expire_all()
    logger.info("Deleted %s duplicate appearances across %s groups", summary.rows_deleted, summary.groups_found)
    return summary


__all__ = [
    "AppearanceDedupeSummary",
    "CatalogMerger",
    "DedupeSummary",
    "DependentColumn",
    "DuplicateGroup",
    "GenerationRecord",
    "MergeReport",
    "ModelRenameResult",
    "dedupe_appearances",
    "find_duplicate_generations",
    "group_duplicate_generations",
]
