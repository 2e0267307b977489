"""
Tests for generation/model merging and appearance dedupe.

Covers duplicate grouping, re-point-then-delete merges, savepoint rollback on
a conflicting dependent, idempotence, model rename/merge and MergeLog rows.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from catalog_app.models import (
    EngineVariant,
    Generation,
    MergeLog,
    SafetyRating,
    VehicleAppearance,
    VehicleModel,
    db,
)
from catalog_app.resolver.pipeline.dedupe import (
    CatalogMerger,
    GenerationRecord,
    dedupe_appearances,
    find_duplicate_generations,
    group_duplicate_generations,
)
from config.overrides import CatalogConfigError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _orphans(table_column, parent_ids):
    return [value for (value,) in db.session.execute(select(table_column)) if value not in parent_ids]


def _generation_ids():
    return {row_id for (row_id,) in db.session.execute(select(Generation.id))}


@pytest.fixture
def merger(app):
    return CatalogMerger(db.session)


@pytest.fixture
def e46_duplicates(catalog):
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "3 Series (E46)", "E46", start=1998, end=2006)
    copy_one = catalog.generation(series, "E46 Sedan", "E46")
    copy_two = catalog.generation(series, "e46 touring", "e46")
    e90 = catalog.generation(series, "3 Series (E90)", "E90")
    uncoded_a = catalog.generation(series, "3 Series")
    uncoded_b = catalog.generation(series, "3 Series")

    catalog.variant(original, "330i")
    catalog.variant(copy_one, "320d")
    catalog.variant(copy_one, "M3")
    catalog.variant(copy_two, "330xi")
    catalog.appearance("BMW", "3 Series", "E46", title="Ronin", generation=copy_two)
    catalog.safety_rating(copy_one, stars=4)
    return {
        "series": series,
        "original": original,
        "copy_one": copy_one,
        "copy_two": copy_two,
        "e90": e90,
        "uncoded": (uncoded_a, uncoded_b),
    }


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def test_group_prefers_earliest_created_then_lowest_id():
    records = [
        GenerationRecord(5, 1, "E46", T0),
        GenerationRecord(2, 1, "E46", T0 + timedelta(days=1)),
        GenerationRecord(9, 1, "e46", T0),
        GenerationRecord(3, 1, "E90", T0),
    ]

    (group,) = group_duplicate_generations(records)

    assert group.key == (1, "E46")
    assert group.original_id == 5
    assert group.duplicate_ids == (9, 2)


def test_group_excludes_null_and_blank_codes():
    records = [
        GenerationRecord(1, 1, None, T0),
        GenerationRecord(2, 1, None, T0),
        GenerationRecord(3, 1, "  ", T0),
        GenerationRecord(4, 1, "", T0),
    ]

    assert group_duplicate_generations(records) == []


def test_group_is_scoped_to_model():
    records = [GenerationRecord(1, 1, "E46", T0), GenerationRecord(2, 2, "E46", T0)]

    assert group_duplicate_generations(records) == []


def test_group_handles_missing_and_naive_timestamps():
    records = [
        GenerationRecord(1, 1, "W204", None),
        GenerationRecord(2, 1, "W204", datetime(2024, 1, 2)),
        GenerationRecord(3, 1, "W204", T0),
    ]

    (group,) = group_duplicate_generations(records)

    assert group.original_id == 3
    assert group.duplicate_ids == (2, 1)


# ---------------------------------------------------------------------------
# Generation merges
# ---------------------------------------------------------------------------


def test_e46_duplicates_merge_into_original(merger, e46_duplicates):
    original = e46_duplicates["original"]
    duplicate_ids = {e46_duplicates["copy_one"].id, e46_duplicates["copy_two"].id}

    summary = merger.merge_generations()
    db.session.commit()

    assert summary.groups_found == 1
    assert summary.groups_merged == 1
    assert summary.groups_failed == 0
    assert summary.rows_deleted == 2
    assert summary.rows_repointed["engine_variants"] == 3
    assert summary.rows_repointed["vehicle_appearances"] == 1
    assert summary.rows_repointed["safety_ratings"] == 1

    remaining = _generation_ids()
    assert duplicate_ids.isdisjoint(remaining)
    assert original.id in remaining
    assert all(g.id in remaining for g in e46_duplicates["uncoded"])

    variants = db.session.query(EngineVariant).filter(EngineVariant.generation_id == original.id).all()
    assert sorted(v.name for v in variants) == ["320d", "330i", "330xi", "M3"]
    assert db.session.query(VehicleAppearance).one().generation_id == original.id
    assert db.session.query(SafetyRating).one().generation_id == original.id


def test_merge_leaves_no_orphaned_dependents(merger, e46_duplicates):
    merger.merge_generations()
    db.session.commit()

    parents = _generation_ids()
    assert _orphans(EngineVariant.generation_id, parents) == []
    assert _orphans(SafetyRating.generation_id, parents) == []
    linked = [
        value
        for (value,) in db.session.execute(select(VehicleAppearance.generation_id))
        if value is not None and value not in parents
    ]
    assert linked == []


def test_dedupe_is_idempotent(merger, e46_duplicates):
    merger.merge_generations()
    db.session.commit()

    assert find_duplicate_generations(db.session) == []
    second = merger.merge_generations()
    assert second.groups_found == 0
    assert second.rows_deleted == 0


def test_merge_writes_merge_log(catalog, e46_duplicates):
    original_id = e46_duplicates["original"].id
    duplicate_ids = sorted([e46_duplicates["copy_one"].id, e46_duplicates["copy_two"].id])
    merger = CatalogMerger(db.session, decision_type="manual")

    merger.merge_generations()
    db.session.commit()

    entry = db.session.query(MergeLog).one()
    assert entry.entity_type == "generation"
    assert entry.original_id == original_id
    assert sorted(entry.merged_ids) == duplicate_ids
    assert entry.rows_repointed["engine_variants"] == 3
    assert entry.decision_type == "manual"
    assert "E46" in entry.reason


def test_dry_run_reports_groups_without_changes(merger, e46_duplicates):
    before = _generation_ids()

    summary = merger.merge_generations(dry_run=True)

    assert summary.dry_run is True
    assert summary.groups_found == 1
    assert summary.groups_merged == 0
    assert summary.reports[0].merged_ids == [e46_duplicates["copy_one"].id, e46_duplicates["copy_two"].id]
    assert _generation_ids() == before
    assert db.session.query(MergeLog).count() == 0


def test_fail_policy_rolls_back_whole_group_on_conflict(catalog):
    merger = CatalogMerger(db.session, unique_conflict_policy="fail")
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "3 Series (E46)", "E46")
    duplicate = catalog.generation(series, "E46 copy", "E46")
    catalog.variant(duplicate, "320d")
    # Both sides carry a rating; moving the duplicate's violates the unique generation_id
    catalog.safety_rating(original)
    catalog.safety_rating(duplicate)

    mercedes = catalog.model("Mercedes-Benz", "C-Class")
    w204 = catalog.generation(mercedes, "C-Class (W204)", "W204")
    w204_copy_id = catalog.generation(mercedes, "W204 copy", "W204").id

    summary = merger.merge_generations()
    db.session.commit()

    assert summary.groups_found == 2
    assert summary.groups_failed == 1
    assert summary.groups_merged == 1
    failed = next(report for report in summary.reports if not report.succeeded)
    assert failed.original_id == original.id
    assert failed.error
    assert failed.merged_ids == []

    remaining = _generation_ids()
    assert duplicate.id in remaining
    assert w204_copy_id not in remaining
    assert w204.id in remaining
    variant = db.session.query(EngineVariant).filter_by(name="320d").one()
    assert variant.generation_id == duplicate.id
    assert db.session.query(MergeLog).count() == 1

    # The failed group is still visible to the next pass
    assert [group.original_id for group in find_duplicate_generations(db.session)] == [original.id]


def test_keep_original_policy_drops_conflicting_rating(catalog, merger):
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "3 Series (E46)", "E46")
    duplicate_id = catalog.generation(series, "E46 copy", "E46").id
    second_id = catalog.generation(series, "e46 touring", "e46").id
    kept_id = catalog.safety_rating(original, stars=5).id
    catalog.safety_rating(db.session.get(Generation, duplicate_id), stars=3)
    catalog.safety_rating(db.session.get(Generation, second_id), stars=4)
    catalog.variant(db.session.get(Generation, duplicate_id), "320d")

    summary = merger.merge_generations()
    db.session.commit()

    assert summary.groups_merged == 1
    assert summary.groups_failed == 0
    assert summary.rows_dropped == {"safety_ratings": 2}
    assert summary.reports[0].rows_dropped == {"safety_ratings": 2}
    rating = db.session.query(SafetyRating).one()
    assert rating.id == kept_id
    assert rating.generation_id == original.id
    assert rating.stars == 5
    assert db.session.query(EngineVariant).one().generation_id == original.id
    assert db.session.query(MergeLog).one().rows_dropped == {"safety_ratings": 2}

    assert find_duplicate_generations(db.session) == []
    assert merger.merge_generations().groups_found == 0


def test_keep_original_policy_moves_rating_when_original_has_none(catalog, merger):
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "3 Series (E46)", "E46")
    duplicate = catalog.generation(series, "E46 copy", "E46")
    rating_id = catalog.safety_rating(duplicate, stars=4).id

    report = merger.merge_generations().reports[0]
    db.session.commit()

    assert report.rows_dropped == {}
    assert report.rows_repointed["safety_ratings"] == 1
    assert db.session.get(SafetyRating, rating_id).generation_id == original.id


def test_unknown_conflict_policy_is_a_config_error(app):
    with pytest.raises(CatalogConfigError):
        CatalogMerger(db.session, unique_conflict_policy="overwrite")

def test_merge_with_explicit_dependents(catalog, merger):
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "E90", "E90")
    duplicate = catalog.generation(series, "E90 copy", "E90")
    duplicate_id = duplicate.id
    catalog.variant(duplicate, "335i")

    report = merger.merge(original.id, [duplicate_id, original.id], ["engine_variants.generation_id"])
    db.session.commit()

    assert report.succeeded
    assert report.merged_ids == [duplicate_id]
    assert report.rows_repointed == {"engine_variants": 1}


def test_unknown_dependent_is_a_config_error(app):
    with pytest.raises(CatalogConfigError):
        CatalogMerger(db.session, generation_dependents=["missing_table.generation_id"])
    with pytest.raises(CatalogConfigError):
        CatalogMerger(db.session, generation_dependents=["engine_variants.missing"])
    with pytest.raises(CatalogConfigError):
        CatalogMerger(db.session, generation_dependents=["engine_variants"])


# ---------------------------------------------------------------------------
# Model rename / merge
# ---------------------------------------------------------------------------


def test_rename_model_in_place(catalog, merger):
    lci = catalog.model("BMW", "LCI")
    generation = catalog.generation(lci, "E90 LCI", "E90")

    result = merger.rename_or_merge_model(brand_name="BMW", old_name="LCI", new_name="3 Series")
    db.session.commit()

    assert result.action == "renamed"
    assert result.model_id == lci.id
    model = db.session.get(VehicleModel, lci.id)
    assert model.name == "3 Series"
    assert model.slug == "3-series"
    assert db.session.get(Generation, generation.id).model_id == lci.id


def test_rename_merges_into_existing_model(catalog, merger, bmw_catalog):
    lci = catalog.model("BMW", "LCI")
    lci_id = lci.id
    lci_generation = catalog.generation(lci, "E90 LCI", "E90")

    result = merger.rename_or_merge_model(brand_name="bmw", old_name="LCI", new_name="3 Series")
    db.session.commit()

    assert result.action == "merged"
    assert result.model_id == bmw_catalog["series"].id
    assert result.merged_ids == [lci_id]
    assert result.rows_repointed == {"generations": 1}
    assert db.session.get(VehicleModel, lci_id) is None
    assert db.session.get(Generation, lci_generation.id).model_id == bmw_catalog["series"].id
    log = db.session.query(MergeLog).one()
    assert log.entity_type == "model"


def test_rename_dry_run_changes_nothing(catalog, merger, bmw_catalog):
    lci = catalog.model("BMW", "LCI")

    result = merger.rename_or_merge_model(brand_name="BMW", old_name="LCI", new_name="3 Series", dry_run=True)

    assert result.action == "merged"
    assert result.merged_ids == [lci.id]
    assert db.session.get(VehicleModel, lci.id) is not None


def test_rename_reports_missing_rows(catalog, merger, bmw_catalog):
    assert merger.rename_or_merge_model(brand_name="Audi", old_name="A4", new_name="A4").action == "missing_brand"
    assert merger.rename_or_merge_model(brand_name="BMW", old_name="M3Specs", new_name="M3").action == "not_found"
    same = merger.rename_or_merge_model(brand_name="BMW", old_name="M3", new_name="M3")
    assert same.action == "unchanged"
    assert same.model_id == bmw_catalog["m3"].id


# ---------------------------------------------------------------------------
# Appearances
# ---------------------------------------------------------------------------


def test_dedupe_appearances_keeps_earliest(catalog, bmw_catalog):
    e46 = bmw_catalog["e46"]
    first = catalog.appearance("BMW", "330i", title="Ronin", generation=e46)
    second_id = catalog.appearance("BMW", "M3", title="Ronin", generation=e46).id
    series = catalog.appearance("BMW", "330i", title="Ronin", generation=e46, media_type="series")
    unlinked = catalog.appearance("BMW", "330i", title="Ronin")
    third_id = catalog.appearance("BMW", "330Ci", title="Ronin", generation=e46).id

    summary = dedupe_appearances(db.session)
    db.session.commit()

    assert summary.groups_found == 1
    assert summary.deleted_ids == [second_id, third_id]
    assert summary.rows_deleted == 2
    remaining = {row.id for row in db.session.query(VehicleAppearance).all()}
    assert remaining == {first.id, series.id, unlinked.id}


def test_dedupe_appearances_dry_run(catalog, bmw_catalog):
    e46 = bmw_catalog["e46"]
    catalog.appearance("BMW", "330i", title="Ronin", generation=e46)
    catalog.appearance("BMW", "330i", title="Ronin", generation=e46)

    summary = dedupe_appearances(db.session, dry_run=True)

    assert summary.rows_deleted == 0
    assert len(summary.deleted_ids) == 1
    assert db.session.query(VehicleAppearance).count() == 2


def test_generation_merge_then_appearance_dedupe(catalog, merger):
    series = catalog.model("BMW", "3 Series")
    original = catalog.generation(series, "3 Series (E46)", "E46")
    duplicate = catalog.generation(series, "E46 copy", "E46")
    kept_id = catalog.appearance("BMW", "330i", title="Ronin", generation=original).id
    moved_id = catalog.appearance("BMW", "M3", title="Ronin", generation=duplicate).id

    assert dedupe_appearances(db.session, dry_run=True).groups_found == 0

    merger.merge_generations()
    db.session.commit()

    summary = dedupe_appearances(db.session)
    db.session.commit()

    assert summary.deleted_ids == [moved_id]
    remaining = db.session.query(VehicleAppearance).one()
    assert remaining.id == kept_id
    assert remaining.generation_id == original.id
