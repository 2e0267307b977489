"""
Tiered resolution of raw vehicle mentions to catalog generations.

Three tiers are tried in order and the first hit wins:

1. ``exact_code``: the mention's chassis code (raw or extracted from the
   chassis/model text) matches a generation's internal code under the same
   brand.
2. ``brand_model``: the mention's model name, its first token, or any alias of
   either matches a catalog model under the same brand.
3. ``fuzzy``: a linear scan in catalog order accepting loose brand prefix
   overlap plus a code or model substring in either direction.

Brand spelling differences are absorbed by the brand alias table in tiers 1
and 2. Resolution is deterministic for a given index snapshot.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Sequence

from rapidfuzz import fuzz, utils

from config.aliases import DEFAULT_ALIAS_PROFILE, AliasProfile
from config.chassis_codes import DEFAULT_CODE_GRAMMARS, CodeGrammar

from .aliases import AliasTable
from .candidates import CandidateIndex, CatalogEntry
from .chassis import ChassisCodeExtractor
from .normalize import code_key, match_key, normalize


class MalformedMentionError(ValueError):
    """Raised when a mention carries no usable brand."""


class MatchConfidence(str, enum.Enum):
    """Tier that produced a match, strongest first."""

    EXACT_CODE = "exact_code"
    BRAND_MODEL = "brand_model"
    FUZZY = "fuzzy"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANKS[self]


_CONFIDENCE_RANKS = {
    MatchConfidence.EXACT_CODE: 0,
    MatchConfidence.BRAND_MODEL: 1,
    MatchConfidence.FUZZY: 2,
}


@dataclass(frozen=True)
class RawMention:
    """Brand/model/chassis strings as a scraper reported them."""

    brand: str | None
    model: str | None = None
    chassis_code: str | None = None
    appearance_id: int | None = None

    @classmethod
    def from_appearance(cls, appearance) -> "RawMention":
        return cls(
            brand=appearance.vehicle_make,
            model=appearance.vehicle_model,
            chassis_code=appearance.chassis_code,
            appearance_id=appearance.id,
        )


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of resolving one mention.

    Attributes:
        generation_id: Matched generation, or None when no tier matched.
        confidence: Tier that produced the match.
        matched_key: ``brand|key`` the hit was found under, for audit output.
        candidate_count: Catalog entries sharing the winning key; more than one
            means the first in catalog order was picked.
    """

    generation_id: int | None
    confidence: MatchConfidence | None
    matched_key: str | None = None
    candidate_count: int = 0

    @property
    def is_match(self) -> bool:
        return self.generation_id is not None

    @property
    def is_ambiguous(self) -> bool:
        return self.candidate_count > 1

    def as_dict(self) -> dict[str, object]:
        return {
            "generation_id": self.generation_id,
            "confidence": self.confidence.value if self.confidence else None,
            "matched_key": self.matched_key,
            "candidate_count": self.candidate_count,
        }


NO_MATCH = MatchResult(generation_id=None, confidence=None)


@dataclass(frozen=True)
class Suggestion:
    generation_id: int
    score: float
    label: str


class MentionResolver:
    """Resolve :class:`RawMention` objects against a :class:`CandidateIndex`."""

    def __init__(
        self,
        *,
        model_aliases: AliasTable | None = None,
        brand_aliases: AliasTable | None = None,
        extractor: ChassisCodeExtractor | None = None,
    ):
        self.model_aliases = model_aliases or AliasTable.for_models(DEFAULT_ALIAS_PROFILE)
        self.brand_aliases = brand_aliases or AliasTable.for_brands(DEFAULT_ALIAS_PROFILE)
        self.extractor = extractor or ChassisCodeExtractor(DEFAULT_CODE_GRAMMARS, brand_aliases=self.brand_aliases)

    @classmethod
    def from_profile(
        cls,
        profile: AliasProfile,
        grammars: Iterable[CodeGrammar] = DEFAULT_CODE_GRAMMARS,
    ) -> "MentionResolver":
        brand_aliases = AliasTable.for_brands(profile)
        return cls(
            model_aliases=AliasTable.for_models(profile),
            brand_aliases=brand_aliases,
            extractor=ChassisCodeExtractor(grammars, brand_aliases=brand_aliases),
        )

    # ------------------------------------------------------------------
    # Candidate keys
    # ------------------------------------------------------------------

    def brand_variants(self, brand: str | None) -> tuple[str, ...]:
        """Raw brand, brand without a ``-Benz`` suffix, then its alias class."""

        raw = (brand or "").strip()
        variants = [raw]
        lowered = raw.lower()
        for suffix in ("-benz", " benz"):
            if lowered.endswith(suffix):
                variants.append(raw[: -len(suffix)])
        variants.extend(self.brand_aliases.expand(raw))
        return _unique_by(variants, match_key)

    def code_candidates(self, mention: RawMention) -> tuple[str, ...]:
        candidates = [
            self.extractor.extract_code(mention.brand, mention.chassis_code),
            mention.chassis_code,
            self.extractor.extract_code(mention.brand, mention.model),
        ]
        return _unique_by(candidates, code_key)

    def model_candidates(self, model: str | None) -> tuple[str, ...]:
        """Full model string, its first token, then the alias classes of both."""

        full = normalize(model)
        if not full:
            return ()
        first_token = full.split(" ", 1)[0]
        candidates = [model, first_token]
        candidates.extend(self.model_aliases.expand(model))
        candidates.extend(self.model_aliases.expand(first_token))
        return _unique_by(candidates, match_key)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        mention: RawMention,
        index: CandidateIndex,
        catalog: Sequence[CatalogEntry] | None = None,
    ) -> MatchResult:
        if not normalize(mention.brand):
            raise MalformedMentionError("Vehicle mention has no brand.")

        brands = self.brand_variants(mention.brand)
        codes = self.code_candidates(mention)

        result = self._match_exact_code(brands, codes, index)
        if result is None:
            result = self._match_brand_model(brands, mention.model, index)
        if result is None:
            result = self._match_fuzzy(brands, codes, mention.model, catalog if catalog is not None else index.entries)
        return result or NO_MATCH

    def _match_exact_code(self, brands, codes, index: CandidateIndex) -> MatchResult | None:
        for code in codes:
            for brand in brands:
                hits = index.lookup_code(brand, code)
                if hits:
                    return MatchResult(
                        generation_id=hits[0].generation_id,
                        confidence=MatchConfidence.EXACT_CODE,
                        matched_key=f"{match_key(brand)}|{code_key(code)}",
                        candidate_count=len(hits),
                    )
        return None

    def _match_brand_model(self, brands, model: str | None, index: CandidateIndex) -> MatchResult | None:
        for candidate in self.model_candidates(model):
            for brand in brands:
                hits = index.lookup_model(brand, candidate)
                if hits:
                    return MatchResult(
                        generation_id=hits[0].generation_id,
                        confidence=MatchConfidence.BRAND_MODEL,
                        matched_key=f"{match_key(brand)}|{match_key(candidate)}",
                        candidate_count=len(hits),
                    )
        return None

    def _match_fuzzy(self, brands, codes, model: str | None, catalog: Iterable[CatalogEntry]) -> MatchResult | None:
        brand_keys = [key for key in (match_key(brand) for brand in brands) if key]
        code_keys = [key for key in (code_key(code) for code in codes) if key]
        model_text = match_key(model)
        for entry in catalog:
            entry_brand = entry.brand_key
            if not entry_brand or not any(_prefix_overlap(key, entry_brand) for key in brand_keys):
                continue
            entry_code = entry.code_key
            if entry_code and any(_contains_either(code, entry_code) for code in code_keys):
                return MatchResult(
                    generation_id=entry.generation_id,
                    confidence=MatchConfidence.FUZZY,
                    matched_key=f"{entry_brand}|{entry_code}",
                    candidate_count=1,
                )
            entry_model = entry.model_key
            if entry_model and model_text and _contains_either(model_text, entry_model):
                return MatchResult(
                    generation_id=entry.generation_id,
                    confidence=MatchConfidence.FUZZY,
                    matched_key=f"{entry_brand}|{entry_model}",
                    candidate_count=1,
                )
        return None

    # ------------------------------------------------------------------
    # Review support
    # ------------------------------------------------------------------

    def suggest_candidates(
        self,
        mention: RawMention,
        index: CandidateIndex,
        *,
        limit: int = 3,
        min_score: float = 60.0,
    ) -> tuple[Suggestion, ...]:
        """
        Rank same-brand catalog entries by token-set similarity to the mention.

        Used to pre-fill the manual review list for mentions no tier resolved;
        suggestions are never linked automatically.
        """

        if limit <= 0:
            return ()
        query = normalize(" ".join(part for part in (mention.model, mention.chassis_code) if part))
        if not query:
            return ()
        brand_keys = {match_key(brand) for brand in self.brand_variants(mention.brand)} - {""}

        scored: list[tuple[float, int, CatalogEntry]] = []
        for position, entry in enumerate(index.entries):
            if entry.brand_key not in brand_keys:
                continue
            target = normalize(
                " ".join(part for part in (entry.model_name, entry.generation_name, entry.internal_code) if part)
            )
            score = fuzz.token_set_ratio(query, target, processor=utils.default_process)
            if score >= min_score:
                scored.append((score, position, entry))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return tuple(
            Suggestion(
                generation_id=entry.generation_id,
                score=round(score, 1),
                label=_entry_label(entry),
            )
            for score, _, entry in scored[:limit]
        )


def resolve_mention(
    mention: RawMention,
    index: CandidateIndex,
    catalog: Sequence[CatalogEntry] | None = None,
    *,
    resolver: MentionResolver | None = None,
) -> MatchResult:
    """Resolve ``mention`` with a resolver built from the default alias and grammar tables."""

    return (resolver or MentionResolver()).resolve(mention, index, catalog)


def _prefix_overlap(mention_brand: str, entry_brand: str) -> bool:
    return mention_brand[:3] in entry_brand or entry_brand[:3] in mention_brand


def _contains_either(left: str, right: str) -> bool:
    return left in right or right in left


def _unique_by(values: Iterable[str | None], key_func) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value is None:
            continue
        key = key_func(value)
        if not key or key in seen:
            continue
        seen.add(key)
        ordered.append(value)
    return tuple(ordered)


def _entry_label(entry: CatalogEntry) -> str:
    parts = [entry.brand_name, entry.model_name]
    if entry.generation_name and entry.generation_name != entry.model_name:
        parts.append(entry.generation_name)
    if entry.internal_code:
        parts.append(f"({entry.internal_code})")
    return " ".join(parts)


__all__ = [
    "MalformedMentionError",
    "MatchConfidence",
    "MatchResult",
    "MentionResolver",
    "NO_MATCH",
    "RawMention",
    "Suggestion",
    "resolve_mention",
]
