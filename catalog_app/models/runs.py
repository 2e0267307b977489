"""
Bookkeeping tables for catalog batch jobs.

Every CLI job writes one ``CatalogRun`` row; the dedupe jobs additionally
write one ``MergeLog`` row per merged group so a merge can be traced back to
the rows it re-pointed.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class CatalogRunStatus(str, enum.Enum):
    """Lifecycle states for a catalog batch job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"


class CatalogRun(BaseModel):
    """Metadata describing a single catalog job execution."""

    __tablename__ = "catalog_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(db.String(50), nullable=False, index=True)
    status: Mapped[CatalogRunStatus] = mapped_column(
        Enum(CatalogRunStatus, name="catalog_run_status_enum"),
        nullable=False,
        default=CatalogRunStatus.PENDING,
        index=True,
    )
    dry_run: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    counts_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    params_json: Mapped[dict | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="CLI parameters the job was started with (batch size, dry_run, filters).",
    )

    merge_events = relationship("MergeLog", back_populates="catalog_run", order_by="MergeLog.id")

    def __repr__(self):
        return f"<CatalogRun {self.id} {self.kind} {self.status}>"


class MergeLog(BaseModel):
    """Auditable record of a generation or model merge."""

    __tablename__ = "catalog_merge_log"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int | None] = mapped_column(
        ForeignKey("catalog_runs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(20), nullable=False, index=True)
    original_id: Mapped[int] = mapped_column(db.Integer, nullable=False, index=True)
    merged_ids: Mapped[list | None] = mapped_column(db.JSON, nullable=True)
    rows_repointed: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    rows_dropped: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    decision_type: Mapped[str] = mapped_column(db.String(50), nullable=False, default="auto")
    reason: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    catalog_run = relationship("CatalogRun", back_populates="merge_events")
