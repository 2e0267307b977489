"""Evaluation of data-driven drivetrain correction rules."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from catalog_app.models import Brand, EngineVariant, Generation, PowertrainSpec, VehicleModel, db
from config.drivetrain_rules import DEFAULT_DRIVETRAIN_RULES, DrivetrainRule

from .normalize import normalize

logger = logging.getLogger(__name__)


@dataclass
class RulesSummary:
    rows_considered: int = 0
    rows_updated: int = 0
    rows_exempt: int = 0
    by_rule: Counter = field(default_factory=Counter)
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "rows_considered": self.rows_considered,
            "rows_updated": self.rows_updated,
            "rows_exempt": self.rows_exempt,
            "by_rule": dict(self.by_rule),
            "dry_run": self.dry_run,
        }


def _token_pattern(token: str) -> re.Pattern:
    # Digits may touch the token ("330xi"), letters may not ("maxi")
    return re.compile(rf"(?<![a-z]){re.escape(token)}(?![a-z])")


def is_exempt(rule: DrivetrainRule, variant_name: str | None) -> bool:
    name = normalize(variant_name)
    if not name:
        return False
    tokens = (normalize(token) for token in rule.exempt_name_tokens)
    return any(_token_pattern(token).search(name) for token in tokens if token)


def apply_drivetrain_rules(
    session: Session | None = None,
    *,
    rules: Iterable[DrivetrainRule] = DEFAULT_DRIVETRAIN_RULES,
    dry_run: bool = False,
) -> RulesSummary:
    """
    Rewrite powertrain drivetrains that contradict a rule.

    A powertrain matches a rule when its variant belongs to a generation of the
    rule's brand whose internal code is listed, and its drivetrain equals the
    rule's ``from_value``. Variants named like an exempt trim are counted but
    left untouched.
    """

    session = session or db.session
    summary = RulesSummary(dry_run=dry_run)
    for rule in rules:
        codes = [code.upper() for code in rule.internal_codes]
        if not codes:
            continue
        rows = (
            session.query(PowertrainSpec, EngineVariant.name)
            .join(EngineVariant, PowertrainSpec.engine_variant_id == EngineVariant.id)
            .join(Generation, EngineVariant.generation_id == Generation.id)
            .join(VehicleModel, Generation.model_id == VehicleModel.id)
            .join(Brand, VehicleModel.brand_id == Brand.id)
            .filter(
                func.lower(Brand.name) == rule.brand.lower(),
                func.upper(Generation.internal_code).in_(codes),
                func.upper(PowertrainSpec.drivetrain) == rule.from_value.upper(),
            )
            .order_by(PowertrainSpec.id)
            .all()
        )
        for spec, variant_name in rows:
            summary.rows_considered += 1
            if is_exempt(rule, variant_name):
                summary.rows_exempt += 1
                continue
            summary.rows_updated += 1
            summary.by_rule[rule.key] += 1
            if not dry_run:
                spec.drivetrain = rule.to_value

    if dry_run:
        session.rollback()
    else:
        session.commit()
    logger.info("Drivetrain rules: %s updated, %s exempt", summary.rows_updated, summary.rows_exempt)
    return summary


__all__ = ["RulesSummary", "apply_drivetrain_rules", "is_exempt"]
