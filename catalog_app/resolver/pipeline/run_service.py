"""
Bookkeeping for catalog batch jobs.

Each CLI job opens a ``CatalogRun`` before doing any work and closes it with
the job's counters. The run row is committed on its own so it survives a job
that rolls back its data changes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.orm import Session

from catalog_app.models import CatalogRun, CatalogRunStatus, db

DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 200


def resolve_status(*, aborted: bool, failures: int = 0, progress: int = 0) -> CatalogRunStatus:
    """
    Map job outcome to a run status.

    An aborted job that committed some work is ``partially_failed``; one that
    committed nothing is ``failed``. A job that finished but had per-record
    failures (merge groups rolled back) is also ``partially_failed``.
    """

    if aborted:
        return CatalogRunStatus.PARTIALLY_FAILED if progress else CatalogRunStatus.FAILED
    if failures:
        return CatalogRunStatus.PARTIALLY_FAILED
    return CatalogRunStatus.SUCCEEDED


class CatalogRunService:
    """Create, finish and list ``CatalogRun`` rows."""

    def __init__(self, session: Session | None = None):
        self.session = session or db.session

    def start_run(self, kind: str, *, dry_run: bool = False, params: Mapping[str, Any] | None = None) -> CatalogRun:
        run = CatalogRun(
            kind=kind,
            status=CatalogRunStatus.RUNNING,
            dry_run=dry_run,
            started_at=datetime.now(timezone.utc),
            counts_json={},
            params_json=dict(params or {}),
        )
        self.session.add(run)
        self.session.commit()
        return run

    def finish_run(
        self,
        run_id: int,
        *,
        status: CatalogRunStatus,
        counts: Mapping[str, Any] | None = None,
        error: str | None = None,
    ) -> CatalogRun | None:
        run = self.session.get(CatalogRun, run_id)
        if run is None:
            return None
        run.status = status
        run.counts_json = dict(counts or {})
        run.error_summary = error
        run.finished_at = datetime.now(timezone.utc)
        self.session.commit()
        return run

    def fail_run(self, run_id: int, error: str) -> CatalogRun | None:
        self.session.rollback()
        return self.finish_run(run_id, status=CatalogRunStatus.FAILED, error=error)

    def recent_runs(self, *, kind: str | None = None, limit: int = DEFAULT_RECENT_LIMIT) -> list[CatalogRun]:
        query = self.session.query(CatalogRun)
        if kind:
            query = query.filter(CatalogRun.kind == kind)
        limit = min(max(int(limit), 1), MAX_RECENT_LIMIT)
        return query.order_by(CatalogRun.id.desc()).limit(limit).all()

    @staticmethod
    def serialize_run(run: CatalogRun) -> dict[str, Any]:
        status = run.status.value if hasattr(run.status, "value") else str(run.status)
        return {
            "id": run.id,
            "kind": run.kind,
            "status": status,
            "dry_run": run.dry_run,
            "started_at": _isoformat(run.started_at),
            "finished_at": _isoformat(run.finished_at),
            "counts": run.counts_json or {},
            "error_summary": run.error_summary,
            "params": run.params_json or {},
        }


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


__all__ = ["CatalogRunService", "resolve_status"]
