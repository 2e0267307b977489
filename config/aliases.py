"""
Alias tables used to widen brand/model matching.

The resolver consults these groups when an exact chassis-code lookup fails:
every name in a group is treated as equivalent to every other name in the
same group, so ``C63 AMG`` finds the ``C-Class`` model and ``Mercedes`` finds
``Mercedes-Benz``. The model rename table drives the cleanup job that folds
scraper-invented model names (``LCI``, ``M3Specs``) into real ones.

Operators can override the defaults with a JSON or YAML file named by the
``CATALOG_ALIAS_PROFILE_PATH`` setting. The file may set ``extend_defaults:
true`` to append to the built-in groups instead of replacing them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .overrides import CatalogConfigError, coerce_sequence, coerce_text, load_override


@dataclass(frozen=True)
class AliasGroup:
    """A canonical name and the spellings scrapers use for it."""

    canonical: str
    variants: Sequence[str] = ()

    @property
    def names(self) -> tuple[str, ...]:
        return (self.canonical, *self.variants)


@dataclass(frozen=True)
class ModelRename:
    """Rename (or merge) ``old_name`` into ``new_name`` under ``brand``."""

    brand: str
    old_name: str
    new_name: str


@dataclass(frozen=True)
class AliasProfile:
    key: str
    label: str
    model_groups: Sequence[AliasGroup]
    brand_groups: Sequence[AliasGroup]
    model_renames: Sequence[ModelRename]


# ---------------------------------------------------------------------------
# Default profile
# ---------------------------------------------------------------------------

DEFAULT_MODEL_ALIASES: tuple[AliasGroup, ...] = (
    AliasGroup("C-Class", ("C63 AMG", "C63")),
    AliasGroup("E-Class", ("E63 AMG", "E63")),
    AliasGroup("G-Class", ("G63 AMG", "G63", "G")),
    AliasGroup("S-Class", ("S65 AMG", "S63 AMG")),
    AliasGroup("Murciélago", ("Murcielago",)),
    AliasGroup("Huracán", ("Huracan",)),
    AliasGroup("Centenario"),
    AliasGroup("3 Series", ("3er",)),
    AliasGroup("Golf", ("Rabbit",)),
)

DEFAULT_BRAND_ALIASES: tuple[AliasGroup, ...] = (
    AliasGroup("Mercedes-Benz", ("Mercedes", "Mercedes Benz", "MB", "Benz")),
    AliasGroup("Volkswagen", ("VW",)),
    AliasGroup("BMW", ("Bayerische Motoren Werke",)),
    AliasGroup("Lamborghini", ("Lambo",)),
    AliasGroup("Chevrolet", ("Chevy",)),
    AliasGroup("Alfa Romeo", ("Alfa",)),
)

MODEL_RENAMES: tuple[ModelRename, ...] = (
    ModelRename("BMW", "LCI", "3 Series"),
    ModelRename("BMW", "M3Specs", "M3"),
)

DEFAULT_ALIAS_PROFILE = AliasProfile(
    key="default",
    label="Default aliases",
    model_groups=DEFAULT_MODEL_ALIASES,
    brand_groups=DEFAULT_BRAND_ALIASES,
    model_renames=MODEL_RENAMES,
)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


def _coerce_group(raw: object, *, item_name: str) -> AliasGroup:
    if not isinstance(raw, Mapping):
        raise CatalogConfigError(f"Each entry of {item_name} must be an object with canonical/variants.")
    canonical = coerce_text(raw.get("canonical"), item_name=f"{item_name}.canonical")
    variants = coerce_sequence(
        raw.get("variants"),
        coerce_item=lambda item: str(item).strip(),
        item_name=f"{canonical}.variants",
    )
    return AliasGroup(canonical=canonical, variants=tuple(v for v in variants if v))


def _coerce_groups(raw: object, *, item_name: str) -> tuple[AliasGroup, ...]:
    # Mapping form: {"C-Class": ["C63", "C63 AMG"]}
    if isinstance(raw, Mapping):
        return tuple(
            _coerce_group({"canonical": canonical, "variants": variants}, item_name=item_name)
            for canonical, variants in raw.items()
        )
    return coerce_sequence(raw, coerce_item=lambda item: _coerce_group(item, item_name=item_name), item_name=item_name)


def _coerce_rename(raw: object) -> ModelRename:
    if not isinstance(raw, Mapping):
        raise CatalogConfigError("Each model rename must be an object with brand/from/to.")
    return ModelRename(
        brand=coerce_text(raw.get("brand"), item_name="model_renames.brand"),
        old_name=coerce_text(raw.get("from"), item_name="model_renames.from"),
        new_name=coerce_text(raw.get("to"), item_name="model_renames.to"),
    )


def _merge(defaults: Iterable, overrides: tuple, extend: bool) -> tuple:
    if not overrides:
        return tuple(defaults)
    if extend:
        return (*defaults, *overrides)
    return overrides


def _coerce_profile(raw: Mapping[str, object]) -> AliasProfile:
    extend = bool(raw.get("extend_defaults", False))
    model_groups = _coerce_groups(raw.get("model_aliases"), item_name="model_aliases")
    brand_groups = _coerce_groups(raw.get("brand_aliases"), item_name="brand_aliases")
    renames = coerce_sequence(raw.get("model_renames"), coerce_item=_coerce_rename, item_name="model_renames")
    return AliasProfile(
        key=str(raw.get("key") or "override").strip() or "override",
        label=str(raw.get("label") or "Operator aliases").strip() or "Operator aliases",
        model_groups=_merge(DEFAULT_MODEL_ALIASES, model_groups, extend),
        brand_groups=_merge(DEFAULT_BRAND_ALIASES, brand_groups, extend),
        model_renames=_merge(MODEL_RENAMES, renames, extend),
    )


def load_alias_profile(env: Mapping[str, object] | None = None) -> AliasProfile:
    """
    Load the active alias profile.

    If ``CATALOG_ALIAS_PROFILE_PATH`` is set in ``env``, its JSON/YAML content
    overrides the defaults. Otherwise the built-in groups are used.
    """

    env_map = env or {}
    override_path = env_map.get("CATALOG_ALIAS_PROFILE_PATH")
    if not override_path:
        return DEFAULT_ALIAS_PROFILE
    raw = load_override(Path(str(override_path)), label="Alias profile")
    return _coerce_profile(raw)


__all__ = [
    "AliasGroup",
    "AliasProfile",
    "DEFAULT_ALIAS_PROFILE",
    "DEFAULT_BRAND_ALIASES",
    "DEFAULT_MODEL_ALIASES",
    "MODEL_RENAMES",
    "ModelRename",
    "load_alias_profile",
]
