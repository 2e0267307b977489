# catalog_app/models/media.py

from sqlalchemy import Index

from .base import BaseModel, db


class VehicleAppearance(BaseModel):
    """
    A vehicle sighting in a film, series or game as pushed by a scraper.

    Rows arrive unresolved (``generation_id`` is NULL) and keep the raw
    brand/model/chassis strings so the linker can resolve them later. Rows
    that never resolve stay in the table for manual review.
    """

    __tablename__ = "vehicle_appearances"

    id = db.Column(db.Integer, primary_key=True)
    generation_id = db.Column(db.Integer, db.ForeignKey("generations.id"), nullable=True, index=True)
    vehicle_make = db.Column(db.String(100), nullable=True)
    vehicle_model = db.Column(db.String(200), nullable=True)
    chassis_code = db.Column(db.String(32), nullable=True)
    movie_title = db.Column(db.String(300), nullable=True)
    movie_year = db.Column(db.Integer, nullable=True)
    media_type = db.Column(db.String(32), nullable=False, default="movie")
    match_confidence = db.Column(db.String(16), nullable=True)

    generation = db.relationship("Generation")

    __table_args__ = (Index("idx_appearances_dedupe_key", "generation_id", "movie_title", "media_type"),)

    def __repr__(self):
        return f"<VehicleAppearance {self.vehicle_make} {self.vehicle_model} in {self.movie_title}>"


class SafetyRating(BaseModel):
    """Crash-test rating attached to a single generation."""

    __tablename__ = "safety_ratings"

    id = db.Column(db.Integer, primary_key=True)
    generation_id = db.Column(db.Integer, db.ForeignKey("generations.id"), nullable=False, unique=True)
    stars = db.Column(db.Integer, nullable=True)
    test_year = db.Column(db.Integer, nullable=True)
    source_url = db.Column(db.String(500), nullable=True)

    generation = db.relationship("Generation")
