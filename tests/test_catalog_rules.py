import pytest

from catalog_app.models import PowertrainSpec, db
from catalog_app.resolver.pipeline.rules import apply_drivetrain_rules, is_exempt
from config.drivetrain_rules import DEFAULT_DRIVETRAIN_RULES, DrivetrainRule


@pytest.fixture
def powertrains(catalog, bmw_catalog):
    e46 = bmw_catalog["e46"]
    x5 = catalog.generation(catalog.model("BMW", "X5"), "X5 (E53)", "E53")
    w204 = catalog.generation(catalog.model("Mercedes-Benz", "C-Class"), "C-Class (W204)", "W204")
    return {
        "330i": catalog.powertrain(catalog.variant(e46, "330i"), "AWD").id,
        "330xi": catalog.powertrain(catalog.variant(e46, "330xi"), "AWD").id,
        "320d": catalog.powertrain(catalog.variant(e46, "320d"), "RWD").id,
        "x5": catalog.powertrain(catalog.variant(x5, "X5 3.0i"), "AWD").id,
        "c300": catalog.powertrain(catalog.variant(w204, "C300"), "AWD").id,
    }


def _drivetrain(spec_id):
    return db.session.get(PowertrainSpec, spec_id).drivetrain


def test_bmw_rwd_rule(powertrains):
    summary = apply_drivetrain_rules(db.session)

    assert summary.rows_considered == 2
    assert summary.rows_updated == 1
    assert summary.rows_exempt == 1
    assert dict(summary.by_rule) == {"bmw-rwd-platforms": 1}
    assert _drivetrain(powertrains["330i"]) == "RWD"
    assert _drivetrain(powertrains["330xi"]) == "AWD"
    assert _drivetrain(powertrains["320d"]) == "RWD"
    assert _drivetrain(powertrains["x5"]) == "AWD"
    assert _drivetrain(powertrains["c300"]) == "AWD"


def test_rules_dry_run(powertrains):
    summary = apply_drivetrain_rules(db.session, dry_run=True)

    assert summary.rows_updated == 1
    assert _drivetrain(powertrains["330i"]) == "AWD"


def test_custom_rule_table(powertrains):
    rule = DrivetrainRule(
        key="mercedes-w204-rwd",
        brand="Mercedes-Benz",
        internal_codes=("w204",),
        from_value="AWD",
        to_value="RWD",
        exempt_name_tokens=("4matic",),
    )

    summary = apply_drivetrain_rules(db.session, rules=[rule])

    assert summary.rows_updated == 1
    assert _drivetrain(powertrains["c300"]) == "RWD"
    assert _drivetrain(powertrains["330i"]) == "AWD"


@pytest.mark.parametrize(
    "name, exempt",
    [
        ("330xi", True),
        ("325xi Touring", True),
        ("X5 xDrive30d", True),
        ("330 X Drive", True),
        ("330i", False),
        ("Maxi 320i", False),
        ("Taxi Edition", False),
        ("Fixi", False),
        (None, False),
    ],
)
def test_is_exempt(name, exempt):
    assert is_exempt(DEFAULT_DRIVETRAIN_RULES[0], name) is exempt
