"""
``flask catalog`` commands.

Every command that writes opens a ``CatalogRun`` row, accepts ``--dry-run``
and finishes the run with its counters. Reporting commands accept ``--json``
for a machine-readable payload instead of the text summary.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Optional

import click
from flask import current_app
from flask.cli import ScriptInfo, with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from catalog_app.models import CatalogRunStatus, db
from config.base import DEFAULT_UNIQUE_CONFLICT_POLICY
from config.overrides import CatalogConfigError

from .pipeline.audit import run_catalog_audit
from .pipeline.candidates import build_candidate_index
from .pipeline.cleanup import apply_model_renames, backfill_internal_codes, clean_variant_names
from .pipeline.dedupe import CatalogMerger, dedupe_appearances
from .pipeline.linking import link_unresolved_appearances
from .pipeline.resolver import MalformedMentionError, RawMention
from .pipeline.rules import apply_drivetrain_rules
from .pipeline.run_service import CatalogRunService, resolve_status
from .state import get_alias_profile, get_resolver


@click.group(name="catalog", invoke_without_command=True)
@click.pass_context
def catalog_cli(ctx):
    """
    Catalog entity resolution and cleanup jobs.

    Shows the active resolver configuration when invoked without a subcommand.
    """
    if ctx.invoked_subcommand is not None:
        return
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    click.echo("Catalog resolver configuration:")
    click.echo(f"  auto_link_tiers      : {', '.join(app.config.get('CATALOG_AUTO_LINK_TIERS', ()))}")
    click.echo(f"  link_batch_size      : {app.config.get('CATALOG_LINK_BATCH_SIZE')}")
    click.echo(f"  generation_dependents: {', '.join(app.config.get('CATALOG_GENERATION_DEPENDENTS', ()))}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_resolver():
    try:
        return get_resolver()
    except CatalogConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _build_merger(run_id: int | None = None) -> CatalogMerger:
    config = current_app.config
    try:
        return CatalogMerger(
            db.session,
            generation_dependents=config.get("CATALOG_GENERATION_DEPENDENTS"),
            model_dependents=config.get("CATALOG_MODEL_DEPENDENTS"),
            unique_conflict_policy=config.get("CATALOG_UNIQUE_CONFLICT_POLICY", DEFAULT_UNIQUE_CONFLICT_POLICY),
            run_id=run_id,
        )
    except CatalogConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _execute_job(
    kind: str,
    *,
    dry_run: bool,
    params: Mapping[str, Any],
    job: Callable[[int], Any],
    outcome: Callable[[Any], dict[str, Any]],
):
    """
    Run ``job`` inside a ``CatalogRun`` and close the run with its outcome.

    ``job`` receives the run id and returns a summary; ``outcome`` maps the
    summary to ``counts``/``aborted``/``failures``/``progress``/``error``.
    Unexpected exceptions mark the run failed and surface as ClickException.
    """

    service = CatalogRunService(db.session)
    run = service.start_run(kind, dry_run=dry_run, params=dict(params, dry_run=dry_run))
    run_id = run.id
    try:
        summary = job(run_id)
    except Exception as exc:
        _close_run(service, run_id, status=CatalogRunStatus.FAILED, counts={}, error=str(exc), rollback=True)
        raise click.ClickException(f"Catalog {kind} run {run_id} failed: {exc}") from exc

    result = outcome(summary)
    status = resolve_status(
        aborted=result.get("aborted", False),
        failures=result.get("failures", 0),
        progress=result.get("progress", 0),
    )
    _close_run(service, run_id, status=status, counts=result.get("counts", {}), error=result.get("error"))
    current_app.logger.info(
        "Catalog %s run %s finished with status %s",
        kind,
        run_id,
        status.value,
        extra={"catalog_run_id": run_id, "catalog_run_kind": kind, "catalog_dry_run": dry_run},
    )
    return run_id, status, summary


def _close_run(service: CatalogRunService, run_id: int, *, status, counts, error, rollback: bool = False) -> None:
    try:
        if rollback:
            db.session.rollback()
        service.finish_run(run_id, status=status, counts=counts, error=error)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("Could not record outcome of catalog run %s: %s", run_id, exc)


def _emit(payload: dict[str, Any], *, as_json: bool, title: str) -> None:
    if as_json:
        click.echo(json.dumps(payload, indent=2, default=str))
        return
    click.echo(title)
    width = max((len(key) for key, value in payload.items() if not isinstance(value, (list, dict))), default=0)
    for key, value in payload.items():
        if isinstance(value, (list, dict)):
            continue
        click.echo(f"  {key.ljust(width)} : {value}")
    for key, value in payload.items():
        if isinstance(value, dict) and value:
            rendered = ", ".join(f"{k}={v}" for k, v in sorted(value.items()))
            click.echo(f"  {key.ljust(width)} : {rendered}")


def _status_title(kind: str, run_id: int, status: CatalogRunStatus, dry_run: bool) -> str:
    return f"Catalog {kind} run {run_id} completed with status {status.value} (dry_run={dry_run})."


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@catalog_cli.command("resolve")
@click.option("--brand", required=True, help="Brand as written by the source.")
@click.option("--model", "model_name", default=None, help="Model string as written by the source.")
@click.option("--chassis-code", default=None, help="Raw chassis/generation code, if any.")
@click.option("--json", "as_json", is_flag=True, help="Emit the match as JSON.")
@with_appcontext
def resolve_command(brand: str, model_name: Optional[str], chassis_code: Optional[str], as_json: bool):
    """Resolve a single mention against the current catalog."""
    resolver = _load_resolver()
    index = build_candidate_index(db.session)
    mention = RawMention(brand=brand, model=model_name, chassis_code=chassis_code)
    try:
        result = resolver.resolve(mention, index)
    except MalformedMentionError as exc:
        raise click.ClickException(str(exc)) from exc

    payload: dict[str, Any] = result.as_dict()
    if not result.is_match:
        payload["suggestions"] = [
            {"generation_id": s.generation_id, "score": s.score, "label": s.label}
            for s in resolver.suggest_candidates(
                mention,
                index,
                limit=current_app.config.get("CATALOG_REVIEW_SUGGESTIONS", 3),
                min_score=current_app.config.get("CATALOG_SUGGESTION_MIN_SCORE", 60),
            )
        ]
    if as_json:
        click.echo(json.dumps(payload, indent=2))
        return
    if result.is_match:
        click.echo(f"Matched generation {result.generation_id} ({result.confidence.value}, key {result.matched_key}).")
    else:
        click.echo("No match.")
        for suggestion in payload["suggestions"]:
            click.echo(f"  suggestion: {suggestion['label']} [{suggestion['generation_id']}] score={suggestion['score']}")


@catalog_cli.command("link-appearances")
@click.option("--batch-size", type=int, default=None, help="Rows per committed batch (default CATALOG_LINK_BATCH_SIZE).")
@click.option("--start-after-id", type=int, default=0, show_default=True, help="Skip appearances up to this id.")
@click.option("--dry-run", is_flag=True, help="Resolve without writing links.")
@click.option("--show-unresolved", type=int, default=20, show_default=True, help="Review items to list in text mode.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def link_appearances_command(
    batch_size: Optional[int],
    start_after_id: int,
    dry_run: bool,
    show_unresolved: int,
    as_json: bool,
):
    """Link unresolved vehicle appearances to catalog generations."""
    config = current_app.config
    resolver = _load_resolver()
    size = batch_size or config.get("CATALOG_LINK_BATCH_SIZE", 500)
    tiers = tuple(config.get("CATALOG_AUTO_LINK_TIERS", ()))

    def job(run_id: int):
        return link_unresolved_appearances(
            db.session,
            batch_size=size,
            dry_run=dry_run,
            resolver=resolver,
            auto_link_tiers=tiers,
            start_after_id=start_after_id,
            suggestion_limit=config.get("CATALOG_REVIEW_SUGGESTIONS", 3),
            suggestion_min_score=config.get("CATALOG_SUGGESTION_MIN_SCORE", 60),
        )

    def outcome(summary):
        return {
            "counts": summary.as_dict(include_review=False),
            "aborted": summary.aborted,
            "progress": summary.batches_committed,
            "error": summary.error,
        }

    run_id, status, summary = _execute_job(
        "link-appearances",
        dry_run=dry_run,
        params={"batch_size": size, "auto_link_tiers": list(tiers), "start_after_id": start_after_id},
        job=job,
        outcome=outcome,
    )

    payload = {"run_id": run_id, "status": status.value, **summary.as_dict(include_review=as_json)}
    _emit(payload, as_json=as_json, title=_status_title("link-appearances", run_id, status, dry_run))
    if not as_json and summary.review_queue and show_unresolved > 0:
        click.echo("Needs review:")
        for item in summary.review_queue[:show_unresolved]:
            proposed = f" -> {item.proposed_generation_id} ({item.confidence})" if item.proposed_generation_id else ""
            click.echo(
                f"  #{item.appearance_id} {item.vehicle_make} {item.vehicle_model or ''} "
                f"[{item.chassis_code or '-'}] in {item.movie_title}{proposed}"
            )
    if summary.aborted:
        raise click.ClickException(f"Linking aborted: {summary.error}")


@catalog_cli.command("dedupe-generations")
@click.option("--dry-run", is_flag=True, help="List duplicate groups without merging.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def dedupe_generations_command(dry_run: bool, as_json: bool):
    """Merge generations sharing (model, internal code) into the earliest one.

    Merging re-points appearances, which can leave two rows for the same
    title under the survivor. Run dedupe-appearances afterwards.
    """

    def job(run_id: int):
        summary = _build_merger(run_id).merge_generations(dry_run=dry_run)
        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return summary

    def outcome(summary):
        counts = summary.as_dict()
        counts.pop("reports")
        return {"counts": counts, "failures": summary.groups_failed}

    run_id, status, summary = _execute_job("dedupe-generations", dry_run=dry_run, params={}, job=job, outcome=outcome)
    _emit(
        {"run_id": run_id, "status": status.value, **summary.as_dict()},
        as_json=as_json,
        title=_status_title("dedupe-generations", run_id, status, dry_run),
    )


@catalog_cli.command("dedupe-appearances")
@click.option("--dry-run", is_flag=True, help="Report duplicates without deleting them.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def dedupe_appearances_command(dry_run: bool, as_json: bool):
    """Delete later copies of appearances sharing (generation, title, media type)."""

    def job(run_id: int):
        summary = dedupe_appearances(db.session, dry_run=dry_run)
        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return summary

    run_id, status, summary = _execute_job(
        "dedupe-appearances",
        dry_run=dry_run,
        params={},
        job=job,
        outcome=lambda summary: {"counts": summary.as_dict()},
    )
    _emit(
        {"run_id": run_id, "status": status.value, **summary.as_dict()},
        as_json=as_json,
        title=_status_title("dedupe-appearances", run_id, status, dry_run),
    )


@catalog_cli.command("rename-model")
@click.option("--brand", required=True, help="Brand owning the model.")
@click.option("--from", "old_name", required=True, help="Current model name.")
@click.option("--to", "new_name", required=True, help="Target model name.")
@click.option("--dry-run", is_flag=True, help="Report the action without applying it.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def rename_model_command(brand: str, old_name: str, new_name: str, dry_run: bool, as_json: bool):
    """Rename a model, merging into an existing model of that name if there is one."""

    def job(run_id: int):
        result = _build_merger(run_id).rename_or_merge_model(
            brand_name=brand,
            old_name=old_name,
            new_name=new_name,
            dry_run=dry_run,
        )
        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return result

    run_id, status, result = _execute_job(
        "rename-model",
        dry_run=dry_run,
        params={"brand": brand, "from": old_name, "to": new_name},
        job=job,
        outcome=lambda result: {
            "counts": result.as_dict(),
            "failures": 1 if result.action == "failed" else 0,
            "error": result.error,
        },
    )
    _emit(
        {"run_id": run_id, "status": status.value, **result.as_dict()},
        as_json=as_json,
        title=_status_title("rename-model", run_id, status, dry_run),
    )


@catalog_cli.command("apply-renames")
@click.option("--dry-run", is_flag=True, help="Report the actions without applying them.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def apply_renames_command(dry_run: bool, as_json: bool):
    """Apply the configured model rename table."""
    try:
        renames = tuple(get_alias_profile().model_renames)
    except CatalogConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    def job(run_id: int):
        results = apply_model_renames(_build_merger(run_id), renames, dry_run=dry_run)
        if dry_run:
            db.session.rollback()
        else:
            db.session.commit()
        return results

    def outcome(results):
        actions: dict[str, int] = {}
        for result in results:
            actions[result.action] = actions.get(result.action, 0) + 1
        return {"counts": {"actions": actions}, "failures": actions.get("failed", 0)}

    run_id, status, results = _execute_job("apply-renames", dry_run=dry_run, params={}, job=job, outcome=outcome)
    if as_json:
        click.echo(
            json.dumps(
                {"run_id": run_id, "status": status.value, "results": [r.as_dict() for r in results]},
                indent=2,
            )
        )
        return
    click.echo(_status_title("apply-renames", run_id, status, dry_run))
    for result in results:
        suffix = f" ({result.error})" if result.error else ""
        click.echo(f"  {result.brand} {result.old_name} -> {result.new_name}: {result.action}{suffix}")


@catalog_cli.command("clean-variants")
@click.option("--batch-size", type=int, default=None, help="Rows per batch (default CATALOG_CLEANUP_BATCH_SIZE).")
@click.option("--dry-run", is_flag=True, help="Report changes without writing them.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def clean_variants_command(batch_size: Optional[int], dry_run: bool, as_json: bool):
    """Strip scraper artifacts from engine variant names."""
    run_id, status, summary = _execute_job(
        "clean-variants",
        dry_run=dry_run,
        params={"batch_size": batch_size},
        job=lambda run_id: clean_variant_names(db.session, batch_size=batch_size, dry_run=dry_run),
        outcome=lambda summary: {"counts": summary.as_dict()},
    )
    _emit(
        {"run_id": run_id, "status": status.value, **summary.as_dict()},
        as_json=as_json,
        title=_status_title("clean-variants", run_id, status, dry_run),
    )


@catalog_cli.command("backfill-codes")
@click.option("--batch-size", type=int, default=None, help="Rows per batch (default CATALOG_CLEANUP_BATCH_SIZE).")
@click.option("--dry-run", is_flag=True, help="Report changes without writing them.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def backfill_codes_command(batch_size: Optional[int], dry_run: bool, as_json: bool):
    """Fill missing generation codes from generation names."""
    extractor = _load_resolver().extractor
    run_id, status, summary = _execute_job(
        "backfill-codes",
        dry_run=dry_run,
        params={"batch_size": batch_size},
        job=lambda run_id: backfill_internal_codes(
            db.session,
            extractor=extractor,
            batch_size=batch_size,
            dry_run=dry_run,
        ),
        outcome=lambda summary: {"counts": summary.as_dict()},
    )
    _emit(
        {"run_id": run_id, "status": status.value, **summary.as_dict()},
        as_json=as_json,
        title=_status_title("backfill-codes", run_id, status, dry_run),
    )


@catalog_cli.command("apply-rules")
@click.option("--dry-run", is_flag=True, help="Report changes without writing them.")
@click.option("--json", "as_json", is_flag=True, help="Emit a machine-readable summary.")
@with_appcontext
def apply_rules_command(dry_run: bool, as_json: bool):
    """Apply drivetrain correction rules."""
    run_id, status, summary = _execute_job(
        "apply-rules",
        dry_run=dry_run,
        params={},
        job=lambda run_id: apply_drivetrain_rules(db.session, dry_run=dry_run),
        outcome=lambda summary: {"counts": summary.as_dict()},
    )
    _emit(
        {"run_id": run_id, "status": status.value, **summary.as_dict()},
        as_json=as_json,
        title=_status_title("apply-rules", run_id, status, dry_run),
    )


@catalog_cli.command("audit")
@click.option("--json", "as_json", is_flag=True, help="Emit the audit report as JSON.")
@click.option("--strict", is_flag=True, help="Exit non-zero when any check fails.")
@with_appcontext
def audit_command(as_json: bool, strict: bool):
    """Run read-only catalog health checks."""
    report = run_catalog_audit(db.session)
    db.session.rollback()
    if as_json:
        click.echo(json.dumps(report.as_dict(), indent=2))
    else:
        click.echo(f"Catalog health score: {report.health_score}/100")
        for check in report.checks:
            click.echo(f"  [{check.status}] {check.category} / {check.check}: {check.details}")
    if strict and report.failed:
        raise click.ClickException("Catalog audit reported failing checks.")


@catalog_cli.command("runs")
@click.option("--kind", default=None, help="Only show runs of this job kind.")
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Emit runs as JSON.")
@with_appcontext
def runs_command(kind: Optional[str], limit: int, as_json: bool):
    """List recent catalog job runs."""
    service = CatalogRunService(db.session)
    runs = [service.serialize_run(run) for run in service.recent_runs(kind=kind, limit=limit)]
    if as_json:
        click.echo(json.dumps(runs, indent=2))
        return
    if not runs:
        click.echo("No catalog runs recorded.")
        return
    for run in runs:
        click.echo(
            f"  #{run['id']} {run['kind']:<20} {run['status']:<17} dry_run={run['dry_run']} "
            f"started={run['started_at']}"
        )
