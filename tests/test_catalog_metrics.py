import pytest
from prometheus_client import REGISTRY

from catalog_app.models import db
from catalog_app.resolver.metrics import metrics_enabled, record_merge, record_resolution
from catalog_app.resolver.pipeline.dedupe import CatalogMerger


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_metrics_follow_monitoring_flag(app):
    app.config["MONITORING_ENABLED"] = False
    assert metrics_enabled() is False
    before = _sample("catalog_mentions_unresolved_total")

    record_resolution(None)
    assert _sample("catalog_mentions_unresolved_total") == before

    app.config["MONITORING_ENABLED"] = True
    record_resolution(None)
    assert _sample("catalog_mentions_unresolved_total") == before + 1


def test_merge_metrics_only_recorded_when_enabled(app, catalog, bmw_catalog):
    labels = {"entity": "generation", "outcome": "merged"}
    catalog.generation(bmw_catalog["series"], "E46 copy", "E46")
    before = _sample("catalog_merges_total", labels)

    app.config["MONITORING_ENABLED"] = True
    CatalogMerger(db.session).merge_generations()
    db.session.commit()

    assert _sample("catalog_merges_total", labels) == before + 1

    app.config["MONITORING_ENABLED"] = False
    record_merge(entity="generation", outcome="merged", rows_repointed={"engine_variants": 3})
    assert _sample("catalog_merges_total", labels) == before + 1


@pytest.mark.parametrize("confidence", ["exact_code", "fuzzy"])
def test_resolution_counter_labels(app, confidence):
    app.config["MONITORING_ENABLED"] = True
    labels = {"confidence": confidence}
    before = _sample("catalog_mentions_resolved_total", labels)

    record_resolution(confidence)

    assert _sample("catalog_mentions_resolved_total", labels) == before + 1
