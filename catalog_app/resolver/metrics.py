"""Prometheus metrics helpers for the catalog resolver."""

from __future__ import annotations

from typing import Literal

from flask import current_app, has_app_context
from prometheus_client import Counter, Histogram

_mentions_resolved = Counter(
    "catalog_mentions_resolved_total",
    "Vehicle mentions resolved to a generation, by confidence tier.",
    ["confidence"],
)
_mentions_unresolved = Counter(
    "catalog_mentions_unresolved_total",
    "Vehicle mentions that matched no catalog generation.",
)
_mentions_malformed = Counter(
    "catalog_mentions_malformed_total",
    "Vehicle mentions skipped because they carried no brand.",
)
_link_batch_duration = Histogram(
    "catalog_link_batch_duration_seconds",
    "Duration of one appearance linking batch in seconds.",
    ["status"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)
_merges = Counter(
    "catalog_merges_total",
    "Merge groups processed by entity type and outcome.",
    ["entity", "outcome"],
)
_rows_repointed = Counter(
    "catalog_rows_repointed_total",
    "Dependent rows re-pointed to a surviving record during merges.",
    ["table"],
)


def metrics_enabled() -> bool:
    """Honour ``MONITORING_ENABLED`` inside an app; standalone callers always record."""

    if has_app_context():
        return bool(current_app.config.get("MONITORING_ENABLED", False))
    return True


def record_resolution(confidence: str | None) -> None:
    """Count one resolved or unresolved mention."""

    if not metrics_enabled():
        return
    if confidence is None:
        _mentions_unresolved.inc()
        return
    _mentions_resolved.labels(confidence=confidence).inc()


def record_malformed_mention() -> None:
    if not metrics_enabled():
        return
    _mentions_malformed.inc()


def record_link_batch(*, status: Literal["success", "failure"], duration_seconds: float) -> None:
    """Capture the duration of a linking batch."""

    if not metrics_enabled():
        return
    _link_batch_duration.labels(status=status).observe(max(duration_seconds, 0.0))


def record_merge(
    *,
    entity: Literal["generation", "model"],
    outcome: Literal["merged", "failed"],
    rows_repointed: dict[str, int] | None = None,
) -> None:
    """Count a merge group and the dependent rows it moved."""

    if not metrics_enabled():
        return
    _merges.labels(entity=entity, outcome=outcome).inc()
    for table, count in (rows_repointed or {}).items():
        if count:
            _rows_repointed.labels(table=table).inc(count)
