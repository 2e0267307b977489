"""
Brand-specific chassis/generation code grammars.

Each grammar is a regular expression (without anchors) describing the codes a
manufacturer uses to identify a generation. The extractor wraps the pattern in
word boundaries, matches case-insensitively and upper-cases the result, so a
returned code always full-matches its grammar.

``CATALOG_CODE_GRAMMAR_PATH`` may name a JSON/YAML file of the form::

    extend_defaults: true
    grammars:
      - brand: Toyota
        pattern: "A[78]0"
        description: Supra generations
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .overrides import CatalogConfigError, coerce_sequence, coerce_text, load_override


@dataclass(frozen=True)
class CodeGrammar:
    brand: str
    pattern: str
    description: str = ""


DEFAULT_CODE_GRAMMARS: tuple[CodeGrammar, ...] = (
    CodeGrammar("BMW", r"[EFG]\d{2,3}", "E46, F80, G82"),
    CodeGrammar("Mercedes-Benz", r"[WVRCAXS]\d{3}[A-Z]?", "W204, R230, C197"),
    CodeGrammar("Lamborghini", r"LP\d{3,4}[A-Z]?", "LP640, LP700, LP610"),
    # 911/912/914/918 are model names, not type numbers
    CodeGrammar("Porsche", r"(?!91[1248]\b)9[0-9]{2}", "964, 993, 996, 987"),
    CodeGrammar("Audi", r"B[5-9]|C[5-8]", "B8, C7"),
    CodeGrammar("Volkswagen", r"MK[1-8]", "Mk4, Mk7"),
)


def _coerce_grammar(raw: object) -> CodeGrammar:
    if not isinstance(raw, Mapping):
        raise CatalogConfigError("Each code grammar must be an object with brand/pattern.")
    brand = coerce_text(raw.get("brand"), item_name="grammars.brand")
    pattern = coerce_text(raw.get("pattern"), item_name=f"{brand}.pattern")
    try:
        re.compile(pattern)
    except re.error as exc:
        raise CatalogConfigError(f"Code grammar for {brand} is not a valid pattern: {exc}") from exc
    return CodeGrammar(brand=brand, pattern=pattern, description=str(raw.get("description") or "").strip())


def load_code_grammars(env: Mapping[str, object] | None = None) -> tuple[CodeGrammar, ...]:
    """
    Load the active chassis-code grammars.

    Returns the built-in grammars unless ``CATALOG_CODE_GRAMMAR_PATH`` is set.
    """

    env_map = env or {}
    override_path = env_map.get("CATALOG_CODE_GRAMMAR_PATH")
    if not override_path:
        return DEFAULT_CODE_GRAMMARS
    raw = load_override(Path(str(override_path)), label="Code grammar")
    grammars = coerce_sequence(raw.get("grammars"), coerce_item=_coerce_grammar, item_name="grammars")
    if not grammars:
        return DEFAULT_CODE_GRAMMARS
    if raw.get("extend_defaults", False):
        # Operator entries win for brands they redefine
        overridden = {grammar.brand.lower() for grammar in grammars}
        kept = tuple(g for g in DEFAULT_CODE_GRAMMARS if g.brand.lower() not in overridden)
        return (*kept, *grammars)
    return grammars


__all__ = ["CodeGrammar", "DEFAULT_CODE_GRAMMARS", "load_code_grammars"]
