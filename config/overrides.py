"""
Shared loader for operator-supplied catalog override files.

Alias tables and chassis-code grammars ship as Python defaults; operators can
replace or extend them with a JSON or YAML file whose path is given through
configuration. Both loaders funnel through the helpers below so a broken file
always surfaces as :class:`CatalogConfigError`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

import yaml


class CatalogConfigError(RuntimeError):
    """Raised when a catalog configuration override cannot be parsed."""


def load_override(path: Path, *, label: str) -> MutableMapping[str, object]:
    if not path.exists():
        raise CatalogConfigError(f"{label} override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise CatalogConfigError(f"Unable to read {label} override file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise CatalogConfigError(f"{label} override file {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise CatalogConfigError(f"{label} override must be a JSON/YAML object.")
    return dict(data)


def coerce_sequence(value: object | None, *, coerce_item, item_name: str) -> tuple:
    if value is None:
        return ()
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return tuple(coerce_item(item) for item in value)
    raise CatalogConfigError(f"Expected sequence for {item_name}, got {type(value).__name__}.")


def coerce_text(value: object | None, *, item_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise CatalogConfigError(f"{item_name} requires a non-empty value.")
    return text


__all__ = ["CatalogConfigError", "coerce_sequence", "coerce_text", "load_override"]
