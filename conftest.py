# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from catalog_app.models import (  # noqa: E402
    Brand,
    EngineVariant,
    Generation,
    PowertrainSpec,
    SafetyRating,
    VehicleAppearance,
    VehicleModel,
    db,
)
from catalog_app.resolver import init_resolver  # noqa: E402
from catalog_app.resolver.pipeline.normalize import slugify  # noqa: E402
from config import TestingConfig  # noqa: E402

_CATALOG_DEFAULTS = {
    key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.startswith("CATALOG_")
}


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application with a clean in-memory catalog"""
    flask_app.config.update(
        {
            "TESTING": True,
            "MONITORING_ENABLED": False,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            **_CATALOG_DEFAULTS,
        }
    )
    init_resolver(flask_app)

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


class CatalogFactory:
    """Small helpers for building catalog rows inside a test."""

    def __init__(self, session):
        self.session = session
        self._brands = {}

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def brand(self, name):
        if name not in self._brands:
            self._brands[name] = self._save(Brand(name=name, slug=slugify(name)))
        return self._brands[name]

    def model(self, brand_name, name):
        brand = self.brand(brand_name)
        return self._save(VehicleModel(brand_id=brand.id, name=name, slug=slugify(name)))

    def generation(self, model, name, internal_code=None, *, start=None, end=None, created_at=None):
        generation = Generation(
            model_id=model.id,
            name=name,
            internal_code=internal_code,
            production_start=start,
            production_end=end,
        )
        if created_at is not None:
            generation.created_at = created_at
        return self._save(generation)

    def variant(self, generation, name):
        return self._save(EngineVariant(generation_id=generation.id, name=name))

    def powertrain(self, variant, drivetrain, power_hp=None):
        return self._save(PowertrainSpec(engine_variant_id=variant.id, drivetrain=drivetrain, power_hp=power_hp))

    def safety_rating(self, generation, stars=5):
        return self._save(SafetyRating(generation_id=generation.id, stars=stars))

    def appearance(self, make, model=None, chassis_code=None, *, title="Test Drive", generation=None, media_type="movie"):
        return self._save(
            VehicleAppearance(
                vehicle_make=make,
                vehicle_model=model,
                chassis_code=chassis_code,
                movie_title=title,
                media_type=media_type,
                generation_id=generation.id if generation is not None else None,
            )
        )


@pytest.fixture
def catalog(app):
    """Factory for brands, models, generations and appearances"""
    return CatalogFactory(db.session)


@pytest.fixture
def bmw_catalog(catalog):
    """BMW 3 Series with E46 and E90 generations plus an M3 model"""
    series = catalog.model("BMW", "3 Series")
    e46 = catalog.generation(series, "3 Series (E46)", "E46", start=1998, end=2006)
    e90 = catalog.generation(series, "3 Series (E90)", "E90", start=2005, end=2012)
    m3 = catalog.model("BMW", "M3")
    m3_e92 = catalog.generation(m3, "M3 (E92)", "E92", start=2007, end=2013)
    return {"series": series, "e46": e46, "e90": e90, "m3": m3, "m3_e92": m3_e92}


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    # Safety measure in case conftest imports happen in unexpected order
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
