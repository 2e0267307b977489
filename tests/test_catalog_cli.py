import json

import pytest

from catalog_app.models import CatalogRun, CatalogRunStatus, Generation, MergeLog, VehicleAppearance, db


def _invoke(runner, *args):
    return runner.invoke(args=["catalog", *args])


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


@pytest.fixture
def appearances(catalog, bmw_catalog):
    return {
        "exact": catalog.appearance("BMW", "3 Series", "E46", title="Ronin").id,
        "unknown": catalog.appearance("Unknown Brand", "Model X", title="Taxi").id,
    }


def test_group_without_subcommand_shows_configuration(runner):
    result = _invoke(runner)

    assert result.exit_code == 0, result.output
    assert "auto_link_tiers" in result.output
    assert "exact_code" in result.output


def test_resolve_json(runner, bmw_catalog):
    payload = _json(_invoke(runner, "resolve", "--brand", "BMW", "--model", "3 Series", "--chassis-code", "E46", "--json"))

    assert payload["generation_id"] == bmw_catalog["e46"].id
    assert payload["confidence"] == "exact_code"
    assert "suggestions" not in payload


def test_resolve_unmatched_lists_suggestions(runner, bmw_catalog):
    result = _invoke(runner, "resolve", "--brand", "BMW", "--model", "Touring Three Series")

    assert result.exit_code == 0, result.output
    assert "No match." in result.output
    assert "suggestion:" in result.output


def test_resolve_rejects_blank_brand(runner, bmw_catalog):
    result = _invoke(runner, "resolve", "--brand", "  ", "--model", "3 Series")

    assert result.exit_code == 1
    assert "no brand" in result.output


def test_link_appearances_records_run(runner, appearances, bmw_catalog):
    payload = _json(_invoke(runner, "link-appearances", "--batch-size", "1", "--json"))

    assert payload["status"] == "succeeded"
    assert payload["rows_linked"] == 1
    assert payload["rows_unresolved"] == 1
    assert payload["batches_committed"] == 2
    assert payload["review_queue"][0]["appearance_id"] == appearances["unknown"]

    run = db.session.get(CatalogRun, payload["run_id"])
    assert run.kind == "link-appearances"
    assert run.status is CatalogRunStatus.SUCCEEDED
    assert run.counts_json["rows_linked"] == 1
    assert run.params_json["batch_size"] == 1
    assert run.finished_at is not None
    assert db.session.get(VehicleAppearance, appearances["exact"]).generation_id == bmw_catalog["e46"].id


def test_link_appearances_dry_run_text(runner, appearances):
    result = _invoke(runner, "link-appearances", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "dry_run=True" in result.output
    assert "Needs review:" in result.output
    assert "Taxi" in result.output
    assert db.session.get(VehicleAppearance, appearances["exact"]).generation_id is None


def test_link_appearances_reports_config_errors(runner, app, appearances, tmp_path):
    app.config["CATALOG_ALIAS_PROFILE_PATH"] = str(tmp_path / "missing.yaml")

    result = _invoke(runner, "link-appearances")

    assert result.exit_code == 1
    assert "does not exist" in result.output
    assert db.session.query(CatalogRun).count() == 0


def test_dedupe_generations_links_merge_log_to_run(runner, catalog, bmw_catalog):
    duplicate_id = catalog.generation(bmw_catalog["series"], "E46 copy", "E46").id

    payload = _json(_invoke(runner, "dedupe-generations", "--json"))

    assert payload["groups_merged"] == 1
    assert payload["rows_deleted"] == 1
    assert db.session.get(Generation, duplicate_id) is None
    log = db.session.query(MergeLog).one()
    assert log.run_id == payload["run_id"]


def test_dedupe_generations_dry_run(runner, catalog, bmw_catalog):
    duplicate_id = catalog.generation(bmw_catalog["series"], "E46 copy", "E46").id

    payload = _json(_invoke(runner, "dedupe-generations", "--dry-run", "--json"))

    assert payload["groups_found"] == 1
    assert payload["dry_run"] is True
    assert db.session.get(Generation, duplicate_id) is not None
    run = db.session.get(CatalogRun, payload["run_id"])
    assert run.dry_run is True


@pytest.mark.parametrize("policy, merged, failed", [("keep_original", 1, 0), ("fail", 0, 1)])
def test_dedupe_generations_uses_configured_conflict_policy(runner, app, catalog, bmw_catalog, policy, merged, failed):
    app.config["CATALOG_UNIQUE_CONFLICT_POLICY"] = policy
    duplicate = catalog.generation(bmw_catalog["series"], "E46 copy", "E46")
    catalog.safety_rating(bmw_catalog["e46"], stars=5)
    catalog.safety_rating(duplicate, stars=3)

    payload = _json(_invoke(runner, "dedupe-generations", "--json"))

    assert payload["groups_merged"] == merged
    assert payload["groups_failed"] == failed


def test_dedupe_appearances_command(runner, catalog, bmw_catalog):
    catalog.appearance("BMW", "330i", title="Ronin", generation=bmw_catalog["e46"])
    catalog.appearance("BMW", "330i", title="Ronin", generation=bmw_catalog["e46"])

    payload = _json(_invoke(runner, "dedupe-appearances", "--json"))

    assert payload["rows_deleted"] == 1
    assert db.session.query(VehicleAppearance).count() == 1


def test_rename_model_command(runner, catalog, bmw_catalog):
    catalog.model("BMW", "LCI")

    payload = _json(_invoke(runner, "rename-model", "--brand", "BMW", "--from", "LCI", "--to", "3 Series", "--json"))

    assert payload["action"] == "merged"
    assert payload["status"] == "succeeded"


def test_apply_renames_dry_run(runner, catalog, bmw_catalog):
    catalog.model("BMW", "M3Specs")

    payload = _json(_invoke(runner, "apply-renames", "--dry-run", "--json"))

    actions = {result["from"]: result["action"] for result in payload["results"]}
    assert actions == {"LCI": "not_found", "M3Specs": "merged"}


def test_cleanup_commands(runner, catalog, bmw_catalog):
    catalog.variant(bmw_catalog["e46"], "330iSpecs")
    catalog.generation(bmw_catalog["series"], "3 Series (E36)")
    catalog.powertrain(catalog.variant(bmw_catalog["e90"], "335i"), "AWD")

    assert _json(_invoke(runner, "clean-variants", "--json"))["rows_updated"] == 1
    assert _json(_invoke(runner, "backfill-codes", "--json"))["codes"] == {"E36": 1}
    assert _json(_invoke(runner, "apply-rules", "--json"))["rows_updated"] == 1

    kinds = [run.kind for run in db.session.query(CatalogRun).order_by(CatalogRun.id)]
    assert kinds == ["clean-variants", "backfill-codes", "apply-rules"]


def test_audit_command(runner, catalog, bmw_catalog):
    payload = _json(_invoke(runner, "audit", "--json"))
    assert payload["health_score"] == 100

    catalog.appearance("BMW", "M5", title=None)
    result = _invoke(runner, "audit", "--strict")

    assert result.exit_code == 1
    assert "[FAIL]" in result.output


def test_runs_command(runner, appearances):
    _invoke(runner, "link-appearances", "--dry-run")
    _invoke(runner, "audit")

    runs = _json(_invoke(runner, "runs", "--json"))

    assert [run["kind"] for run in runs] == ["link-appearances"]
    assert runs[0]["status"] == "succeeded"
    assert runs[0]["dry_run"] is True

    empty = _invoke(runner, "runs", "--kind", "dedupe-generations")
    assert "No catalog runs recorded." in empty.output
