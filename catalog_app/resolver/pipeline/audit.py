"""
Read-only health checks over the catalog.

Each check yields an :class:`AuditCheck` with a ``PASS``/``WARN``/``FAIL``
status. Structural problems an operator must fix by hand (empty model names,
appearances without a title) are failures; problems the batch jobs repair
(duplicates, artifacts, unlinked rows) are warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from catalog_app.models import EngineVariant, Generation, VehicleAppearance, VehicleModel, db

from .dedupe import dedupe_appearances, find_duplicate_generations
from .normalize import has_artifacts

AuditStatus = Literal["PASS", "WARN", "FAIL"]

MIN_PRODUCTION_YEAR = 1886
_FUTURE_YEAR_SLACK = 5
_DETAIL_SAMPLE = 5


@dataclass(frozen=True)
class AuditCheck:
    category: str
    check: str
    status: AuditStatus
    details: str
    count: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "check": self.check,
            "status": self.status,
            "details": self.details,
            "count": self.count,
        }


@dataclass
class AuditReport:
    checks: list[AuditCheck] = field(default_factory=list)
    health_score: int = 100

    @property
    def failed(self) -> bool:
        return any(check.status == "FAIL" for check in self.checks)

    def status_counts(self) -> dict[str, int]:
        counts = {"PASS": 0, "WARN": 0, "FAIL": 0}
        for check in self.checks:
            counts[check.status] += 1
        return counts

    def as_dict(self) -> dict[str, object]:
        return {
            "health_score": self.health_score,
            "status_counts": self.status_counts(),
            "checks": [check.as_dict() for check in self.checks],
        }


def compute_health_score(*, unlinked: int, bad_names: int, duplicate_groups: int) -> int:
    score = 100 - unlinked // 100 - bad_names - duplicate_groups * 10
    return max(0, min(100, score))


def _warn_or_pass(category: str, check: str, count: int, warn_details: str, pass_details: str) -> AuditCheck:
    if count:
        return AuditCheck(category, check, "WARN", warn_details, count)
    return AuditCheck(category, check, "PASS", pass_details, 0)


def run_catalog_audit(session: Session | None = None, *, today: date | None = None) -> AuditReport:
    session = session or db.session
    max_year = (today or date.today()).year + _FUTURE_YEAR_SLACK
    report = AuditReport()

    duplicate_groups = find_duplicate_generations(session)
    sample = ", ".join(f"{group.internal_code}@model {group.model_id}" for group in duplicate_groups[:_DETAIL_SAMPLE])
    report.checks.append(
        _warn_or_pass(
            "Data Integrity",
            "Duplicate generations",
            len(duplicate_groups),
            f"{len(duplicate_groups)} duplicate (model, code) groups: {sample}",
            "No duplicate generations",
        )
    )

    unlinked = (
        session.query(func.count(VehicleAppearance.id)).filter(VehicleAppearance.generation_id.is_(None)).scalar() or 0
    )
    report.checks.append(
        _warn_or_pass(
            "Data Integrity",
            "Unlinked appearances",
            unlinked,
            f"{unlinked} appearances are waiting for review",
            "All appearances are linked",
        )
    )

    candidate_names = (
        session.query(EngineVariant.name)
        .filter(
            or_(
                EngineVariant.name.ilike("%specs"),
                EngineVariant.name.ilike("%undefined%"),
                EngineVariant.name.ilike("%null%"),
                EngineVariant.name.ilike("%nan%"),
            )
        )
        .all()
    )
    bad_names = [name for (name,) in candidate_names if has_artifacts(name)]
    report.checks.append(
        _warn_or_pass(
            "Data Quality",
            "Variant names with artifacts",
            len(bad_names),
            f"{len(bad_names)} variant names need cleanup, e.g. {', '.join(bad_names[:_DETAIL_SAMPLE])}",
            "No scraper artifacts in variant names",
        )
    )

    duplicate_appearances = dedupe_appearances(session, dry_run=True)
    report.checks.append(
        _warn_or_pass(
            "Data Integrity",
            "Duplicate appearances",
            len(duplicate_appearances.deleted_ids),
            f"{len(duplicate_appearances.deleted_ids)} duplicate appearances in "
            f"{duplicate_appearances.groups_found} groups",
            "No duplicate appearances",
        )
    )

    invalid_years = (
        session.query(func.count(Generation.id))
        .filter(
            or_(
                Generation.production_start < MIN_PRODUCTION_YEAR,
                Generation.production_start > max_year,
                Generation.production_end > max_year,
                Generation.production_end < Generation.production_start,
            )
        )
        .scalar()
        or 0
    )
    report.checks.append(
        _warn_or_pass(
            "Data Quality",
            "Production year ranges",
            invalid_years,
            f"{invalid_years} generations have impossible production years",
            "All production years are plausible",
        )
    )

    empty_models = (
        session.query(func.count(VehicleModel.id)).filter(func.trim(VehicleModel.name) == "").scalar() or 0
    )
    report.checks.append(
        AuditCheck(
            "Data Quality",
            "Empty model names",
            "FAIL" if empty_models else "PASS",
            f"{empty_models} models have an empty name" if empty_models else "All models are named",
            empty_models,
        )
    )

    untitled = (
        session.query(func.count(VehicleAppearance.id))
        .filter(or_(VehicleAppearance.movie_title.is_(None), func.trim(VehicleAppearance.movie_title) == ""))
        .scalar()
        or 0
    )
    report.checks.append(
        AuditCheck(
            "Data Quality",
            "Appearances without titles",
            "FAIL" if untitled else "PASS",
            f"{untitled} appearances have no title" if untitled else "All appearances have titles",
            untitled,
        )
    )

    report.health_score = compute_health_score(
        unlinked=unlinked,
        bad_names=len(bad_names),
        duplicate_groups=len(duplicate_groups),
    )
    return report


__all__ = ["AuditCheck", "AuditReport", "compute_health_score", "run_catalog_audit"]
