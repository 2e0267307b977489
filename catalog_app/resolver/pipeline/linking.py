"""
Batch linking of unresolved vehicle appearances to catalog generations.

One candidate index snapshot is built per job. Unresolved rows are read with
keyset pagination (``id > last_id``) in fixed-size batches and each batch is
committed before the next one is read, so an interrupted job resumes from the
rows that are still unresolved. A store failure rolls back the in-flight
batch and ends the job; batches committed before it stay committed.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_app.models import VehicleAppearance, db
from catalog_app.resolver.metrics import record_link_batch, record_malformed_mention, record_resolution
from config.base import DEFAULT_AUTO_LINK_TIERS

from .candidates import CandidateIndex, build_candidate_index
from .resolver import MalformedMentionError, MatchConfidence, MentionResolver, RawMention, Suggestion

logger = logging.getLogger(__name__)

DEFAULT_LINK_BATCH_SIZE = 500


@dataclass(frozen=True)
class ReviewItem:
    """An appearance left unlinked for manual review."""

    appearance_id: int
    vehicle_make: str | None
    vehicle_model: str | None
    chassis_code: str | None
    movie_title: str | None
    proposed_generation_id: int | None = None
    confidence: str | None = None
    suggestions: tuple[Suggestion, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "appearance_id": self.appearance_id,
            "vehicle_make": self.vehicle_make,
            "vehicle_model": self.vehicle_model,
            "chassis_code": self.chassis_code,
            "movie_title": self.movie_title,
            "proposed_generation_id": self.proposed_generation_id,
            "confidence": self.confidence,
            "suggestions": [
                {"generation_id": s.generation_id, "score": s.score, "label": s.label} for s in self.suggestions
            ],
        }


@dataclass
class LinkSummary:
    """Counters for a linking job; only committed batches are counted."""

    rows_considered: int = 0
    rows_linked: int = 0
    rows_flagged: int = 0
    rows_unresolved: int = 0
    rows_errored: int = 0
    batches_committed: int = 0
    by_confidence: Counter = field(default_factory=Counter)
    review_queue: list[ReviewItem] = field(default_factory=list)
    last_id: int = 0
    aborted: bool = False
    error: str | None = None
    dry_run: bool = False

    def absorb(self, batch: "LinkSummary") -> None:
        self.rows_considered += batch.rows_considered
        self.rows_linked += batch.rows_linked
        self.rows_flagged += batch.rows_flagged
        self.rows_unresolved += batch.rows_unresolved
        self.rows_errored += batch.rows_errored
        self.by_confidence.update(batch.by_confidence)
        self.review_queue.extend(batch.review_queue)
        self.last_id = max(self.last_id, batch.last_id)
        self.batches_committed += 1

    def as_dict(self, *, include_review: bool = True) -> dict[str, object]:
        payload: dict[str, object] = {
            "rows_considered": self.rows_considered,
            "rows_linked": self.rows_linked,
            "rows_flagged": self.rows_flagged,
            "rows_unresolved": self.rows_unresolved,
            "rows_errored": self.rows_errored,
            "batches_committed": self.batches_committed,
            "by_confidence": dict(self.by_confidence),
            "last_id": self.last_id,
            "aborted": self.aborted,
            "error": self.error,
            "dry_run": self.dry_run,
        }
        if include_review:
            payload["review_queue"] = [item.as_dict() for item in self.review_queue]
        return payload


def _coerce_tiers(tiers: Iterable[str | MatchConfidence]) -> frozenset[MatchConfidence]:
    return frozenset(MatchConfidence(tier) for tier in tiers)


def link_unresolved_appearances(
    session: Session | None = None,
    *,
    batch_size: int = DEFAULT_LINK_BATCH_SIZE,
    dry_run: bool = False,
    resolver: MentionResolver | None = None,
    auto_link_tiers: Sequence[str] = DEFAULT_AUTO_LINK_TIERS,
    index: CandidateIndex | None = None,
    start_after_id: int = 0,
    suggestion_limit: int = 0,
    suggestion_min_score: float = 60.0,
) -> LinkSummary:
    """
    Resolve every appearance with a NULL ``generation_id``.

    Matches in ``auto_link_tiers`` are written back (``generation_id`` plus
    ``match_confidence``); matches in other tiers and unmatched rows are left
    unlinked and reported in ``review_queue``. Mentions without a brand are
    counted as errored and skipped.
    """

    session = session or db.session
    resolver = resolver or MentionResolver()
    allowed = _coerce_tiers(auto_link_tiers)
    batch_size = max(int(batch_size), 1)
    summary = LinkSummary(dry_run=dry_run, last_id=start_after_id)

    try:
        index = index if index is not None else build_candidate_index(session)
    except SQLAlchemyError as exc:
        session.rollback()
        summary.aborted = True
        summary.error = f"catalog load failed: {exc}"
        logger.error("Catalog load failed before linking: %s", exc)
        return summary

    logger.info(
        "Linking unresolved appearances",
        extra={"catalog_size": len(index), "batch_size": batch_size, "dry_run": dry_run},
    )

    last_id = start_after_id
    while True:
        started = time.perf_counter()
        try:
            rows = (
                session.query(VehicleAppearance)
                .filter(VehicleAppearance.generation_id.is_(None), VehicleAppearance.id > last_id)
                .order_by(VehicleAppearance.id)
                .limit(batch_size)
                .all()
            )
        except SQLAlchemyError as exc:
            _abort(session, summary, exc, started)
            break
        if not rows:
            break

        batch = LinkSummary(dry_run=dry_run)
        for appearance in rows:
            last_id = appearance.id
            batch.last_id = appearance.id
            batch.rows_considered += 1
            _link_one(
                appearance,
                batch,
                resolver=resolver,
                index=index,
                allowed=allowed,
                dry_run=dry_run,
                suggestion_limit=suggestion_limit,
                suggestion_min_score=suggestion_min_score,
            )

        try:
            if dry_run:
                session.rollback()
            else:
                session.commit()
        except SQLAlchemyError as exc:
            _abort(session, summary, exc, started)
            break

        summary.absorb(batch)
        record_link_batch(status="success", duration_seconds=time.perf_counter() - started)
        logger.debug("Committed link batch ending at appearance %s (%s rows)", last_id, batch.rows_considered)

    logger.info(
        "Linking finished: %s linked, %s flagged, %s unresolved, %s errored",
        summary.rows_linked,
        summary.rows_flagged,
        summary.rows_unresolved,
        summary.rows_errored,
    )
    return summary


def _link_one(
    appearance: VehicleAppearance,
    batch: LinkSummary,
    *,
    resolver: MentionResolver,
    index: CandidateIndex,
    allowed: frozenset[MatchConfidence],
    dry_run: bool,
    suggestion_limit: int,
    suggestion_min_score: float,
) -> None:
    mention = RawMention.from_appearance(appearance)
    try:
        result = resolver.resolve(mention, index)
    except MalformedMentionError:
        batch.rows_errored += 1
        record_malformed_mention()
        logger.warning("Skipping appearance %s: no brand", appearance.id)
        return

    record_resolution(result.confidence.value if result.confidence else None)

    if result.is_match and result.confidence in allowed:
        batch.rows_linked += 1
        batch.by_confidence[result.confidence.value] += 1
        if not dry_run:
            appearance.generation_id = result.generation_id
            appearance.match_confidence = result.confidence.value
        return

    if result.is_match:
        batch.rows_flagged += 1
        batch.by_confidence[result.confidence.value] += 1
        suggestions: tuple[Suggestion, ...] = ()
    else:
        batch.rows_unresolved += 1
        suggestions = resolver.suggest_candidates(
            mention,
            index,
            limit=suggestion_limit,
            min_score=suggestion_min_score,
        )

    batch.review_queue.append(
        ReviewItem(
            appearance_id=appearance.id,
            vehicle_make=appearance.vehicle_make,
            vehicle_model=appearance.vehicle_model,
            chassis_code=appearance.chassis_code,
            movie_title=appearance.movie_title,
            proposed_generation_id=result.generation_id,
            confidence=result.confidence.value if result.confidence else None,
            suggestions=suggestions,
        )
    )


def _abort(session: Session, summary: LinkSummary, exc: SQLAlchemyError, started: float) -> None:
    session.rollback()
    summary.aborted = True
    summary.error = str(getattr(exc, "orig", None) or exc)
    record_link_batch(status="failure", duration_seconds=time.perf_counter() - started)
    logger.error(
        "Linking aborted after %s committed batches: %s",
        summary.batches_committed,
        summary.error,
    )


__all__ = ["DEFAULT_LINK_BATCH_SIZE", "LinkSummary", "ReviewItem", "link_unresolved_appearances"]
