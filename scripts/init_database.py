# scripts/init_database.py

"""
Database initialization script.
Creates all catalog tables and, with --sample, seeds a small catalog plus
noisy scraper rows so the ``flask catalog`` jobs have something to do:
- BMW, Mercedes-Benz and Lamborghini models and generations
- A duplicate E46 generation and artifact-laden variant names
- Unresolved vehicle appearances as IMCDb-style scrapers report them
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402
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
from catalog_app.resolver.pipeline.normalize import slugify  # noqa: E402

SAMPLE_CATALOG = {
    "BMW": {
        "3 Series": [
            ("3 Series (E46)", "E46", 1998, 2006, [("330i", "AWD"), ("330xi", "AWD"), ("320dSpecs", "RWD")]),
            ("3 Series (E90)", "E90", 2005, 2012, [("335i", "RWD"), ("320d undefined", "RWD")]),
            ("3 Series (E46) Touring", "E46", 1999, 2005, [("325i Touring", "RWD")]),
        ],
        "M3": [("M3 (E92)", "E92", 2007, 2013, [("M3", "RWD")])],
    },
    "Mercedes-Benz": {
        "C-Class": [("C-Class (W204)", "W204", 2007, 2014, [("C63 AMG", "RWD"), ("C300 4MATIC", "AWD")])],
    },
    "Lamborghini": {
        "Huracán": [("Huracán LP610-4", "LP610", 2014, 2019, [("LP610-4", "AWD")])],
        "Murciélago": [("Murciélago LP640", None, 2006, 2010, [("LP640 NaN", "AWD")])],
    },
}

SAMPLE_APPEARANCES = [
    ("BMW", "3 Series", "E46", "Ronin", 1998, "movie"),
    ("BMW", "M3 e92", None, "Need for Speed", 2014, "movie"),
    ("Mercedes", "C63 AMG", None, "Fast Five", 2011, "movie"),
    ("Lamborghini", "Huracan", None, "Forza Horizon 3", 2016, "game"),
    ("Lamborgini", "Murcielago", None, "Batman Begins", 2005, "movie"),
    ("Unknown Brand", "Model X", None, "Taxi", 1998, "movie"),
]


def _get_or_create_brand(name):
    brand = Brand.query.filter_by(name=name).first()
    if brand is None:
        brand = Brand(name=name, slug=slugify(name))
        db.session.add(brand)
        db.session.flush()
    return brand


def _get_or_create_model(brand, name):
    model = VehicleModel.query.filter_by(brand_id=brand.id, name=name).first()
    if model is None:
        model = VehicleModel(brand_id=brand.id, name=name, slug=slugify(name))
        db.session.add(model)
        db.session.flush()
    return model


def seed_sample_catalog():
    """Insert the sample catalog and appearances; returns counts of created rows."""
    counts = {"generations": 0, "variants": 0, "appearances": 0}
    if Generation.query.first() is not None:
        print("Catalog already has generations; skipping sample data")
        return counts

    for brand_name, models in SAMPLE_CATALOG.items():
        brand = _get_or_create_brand(brand_name)
        for model_name, generations in models.items():
            model = _get_or_create_model(brand, model_name)
            for name, code, start, end, variants in generations:
                generation = Generation(
                    model_id=model.id,
                    name=name,
                    internal_code=code,
                    production_start=start,
                    production_end=end,
                )
                db.session.add(generation)
                db.session.flush()
                counts["generations"] += 1
                for variant_name, drivetrain in variants:
                    variant = EngineVariant(generation_id=generation.id, name=variant_name)
                    db.session.add(variant)
                    db.session.flush()
                    db.session.add(PowertrainSpec(engine_variant_id=variant.id, drivetrain=drivetrain))
                    counts["variants"] += 1
                if code == "W204":
                    db.session.add(SafetyRating(generation_id=generation.id, stars=5, test_year=2008))

    for make, model, chassis, title, year, media_type in SAMPLE_APPEARANCES:
        db.session.add(
            VehicleAppearance(
                vehicle_make=make,
                vehicle_model=model,
                chassis_code=chassis,
                movie_title=title,
                movie_year=year,
                media_type=media_type,
            )
        )
        counts["appearances"] += 1

    db.session.commit()
    return counts


def init_database(sample=False):
    """Create tables and optionally seed sample data"""
    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        print("Database tables created")

        if sample:
            print("Seeding sample catalog...")
            counts = seed_sample_catalog()
            print(
                f"Created {counts['generations']} generations, {counts['variants']} variants "
                f"and {counts['appearances']} appearances"
            )

        print("\nDatabase initialization complete!")
        print("\nNext steps:")
        print("  1. flask catalog audit")
        print("  2. flask catalog clean-variants && flask catalog dedupe-generations")
        print("  3. flask catalog link-appearances")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create catalog tables")
    parser.add_argument("--sample", action="store_true", help="Seed a small sample catalog")
    args = parser.parse_args()
    init_database(sample=args.sample)
