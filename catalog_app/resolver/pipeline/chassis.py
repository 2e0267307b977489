"""Brand-dispatched chassis/generation code extraction."""

from __future__ import annotations

import re
from typing import Iterable

from config.chassis_codes import DEFAULT_CODE_GRAMMARS, CodeGrammar

from .aliases import AliasTable
from .normalize import match_key


class ChassisCodeExtractor:
    """
    Extract the first chassis code in free text using the brand's grammar.

    Brand names are matched through the brand alias table, so ``Mercedes``,
    ``MB`` and ``Mercedes-Benz`` share one grammar. Extraction never raises:
    unknown brands, empty text and text without a code all yield ``None``.
    """

    def __init__(
        self,
        grammars: Iterable[CodeGrammar] = DEFAULT_CODE_GRAMMARS,
        *,
        brand_aliases: AliasTable | None = None,
    ):
        self._brand_aliases = brand_aliases or AliasTable()
        self._search: dict[str, re.Pattern[str]] = {}
        self._full: dict[str, re.Pattern[str]] = {}
        for grammar in grammars:
            key = match_key(grammar.brand)
            self._search[key] = re.compile(rf"\b(?:{grammar.pattern})\b", re.IGNORECASE)
            # Grammars may be written in any case; returned codes are always upper-cased
            self._full[key] = re.compile(rf"(?:{grammar.pattern})", re.IGNORECASE)

    @property
    def brands(self) -> tuple[str, ...]:
        return tuple(self._search)

    def _brand_key(self, brand: str | None) -> str | None:
        for variant in self._brand_aliases.expand(brand):
            key = match_key(variant)
            if key in self._search:
                return key
            # "Mercedes-Benz" style names also register under their first word
            head = key.split(" ", 1)[0] if key else ""
            if head in self._search:
                return head
        return None

    def supports(self, brand: str | None) -> bool:
        return self._brand_key(brand) is not None

    def extract_code(self, brand: str | None, free_text: str | None) -> str | None:
        if not free_text:
            return None
        key = self._brand_key(brand)
        if key is None:
            return None
        for match in self._search[key].finditer(str(free_text)):
            code = match.group(0).upper()
            if self._full[key].fullmatch(code):
                return code
        return None

    def is_valid_code(self, brand: str | None, code: str | None) -> bool:
        key = self._brand_key(brand)
        if key is None or not code:
            return False
        return code == code.upper() and self._full[key].fullmatch(code) is not None


__all__ = ["ChassisCodeExtractor"]
