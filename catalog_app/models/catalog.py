# catalog_app/models/catalog.py

from sqlalchemy import CheckConstraint, Index, UniqueConstraint

from .base import BaseModel, db


class Brand(BaseModel):
    """Vehicle manufacturer at the root of the catalog hierarchy."""

    __tablename__ = "brands"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)

    models = db.relationship("VehicleModel", back_populates="brand", order_by="VehicleModel.id")

    def __repr__(self):
        return f"<Brand {self.name}>"


class VehicleModel(BaseModel):
    """A named model line under a brand (``3 Series``, ``Huracán``)."""

    __tablename__ = "models"

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(170), nullable=False)

    brand = db.relationship("Brand", back_populates="models")
    generations = db.relationship("Generation", back_populates="model", order_by="Generation.id")

    __table_args__ = (UniqueConstraint("brand_id", "slug", name="uq_models_brand_slug"),)

    def __repr__(self):
        return f"<VehicleModel {self.name}>"


class Generation(BaseModel):
    """
    One generation of a model, usually identified by a chassis code.

    ``internal_code`` is nullable because many scraped generations arrive
    without one; the dedupe job keeps at most one row per
    ``(model_id, internal_code)`` for the rows that do carry a code.
    """

    __tablename__ = "generations"

    id = db.Column(db.Integer, primary_key=True)
    model_id = db.Column(db.Integer, db.ForeignKey("models.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    internal_code = db.Column(db.String(32), nullable=True)
    production_start = db.Column(db.Integer, nullable=True)
    production_end = db.Column(db.Integer, nullable=True)

    model = db.relationship("VehicleModel", back_populates="generations")

    __table_args__ = (Index("idx_generations_model_code", "model_id", "internal_code"),)

    def __repr__(self):
        return f"<Generation {self.name} ({self.internal_code or 'no code'})>"


class EngineVariant(BaseModel):
    """Engine/trim variant of a generation (``330i``, ``M3 Competition``)."""

    __tablename__ = "engine_variants"

    id = db.Column(db.Integer, primary_key=True)
    generation_id = db.Column(db.Integer, db.ForeignKey("generations.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)

    powertrain_specs = db.relationship("PowertrainSpec", back_populates="engine_variant", order_by="PowertrainSpec.id")

    def __repr__(self):
        return f"<EngineVariant {self.name}>"


class PowertrainSpec(BaseModel):
    """Powertrain details scraped for an engine variant."""

    __tablename__ = "powertrain_specs"

    id = db.Column(db.Integer, primary_key=True)
    engine_variant_id = db.Column(db.Integer, db.ForeignKey("engine_variants.id"), nullable=False, index=True)
    drivetrain = db.Column(db.String(8), nullable=True)
    power_hp = db.Column(db.Integer, nullable=True)

    engine_variant = db.relationship("EngineVariant", back_populates="powertrain_specs")

    __table_args__ = (
        CheckConstraint("power_hp IS NULL OR power_hp >= 0", name="ck_powertrain_power_positive"),
    )
