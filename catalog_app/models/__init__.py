# catalog_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .catalog import Brand, EngineVariant, Generation, PowertrainSpec, VehicleModel
from .media import SafetyRating, VehicleAppearance
from .runs import CatalogRun, CatalogRunStatus, MergeLog

__all__ = [
    "db",
    "BaseModel",
    # Catalog hierarchy
    "Brand",
    "VehicleModel",
    "Generation",
    "EngineVariant",
    "PowertrainSpec",
    # Scraped records attached to generations
    "VehicleAppearance",
    "SafetyRating",
    # Job bookkeeping
    "CatalogRun",
    "CatalogRunStatus",
    "MergeLog",
]
