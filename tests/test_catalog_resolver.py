import pytest

from catalog_app.resolver.pipeline.candidates import CandidateIndex, CatalogEntry
from catalog_app.resolver.pipeline.resolver import (
    NO_MATCH,
    MalformedMentionError,
    MatchConfidence,
    MentionResolver,
    RawMention,
    resolve_mention,
)

CATALOG = (
    CatalogEntry(1, 10, "BMW", "3 Series", "3 Series (E46)", "E46"),
    CatalogEntry(2, 10, "BMW", "3 Series", "3 Series (E90)", "E90"),
    CatalogEntry(3, 11, "BMW", "M3", "M3 (E92)", "E92"),
    CatalogEntry(4, 20, "Mercedes-Benz", "C-Class", "C-Class (W204)", "W204"),
    CatalogEntry(5, 30, "Lamborghini", "Huracán", "Huracán LP610-4", "LP610"),
    CatalogEntry(6, 31, "Lamborghini", "Murciélago", "Murciélago LP640", "LP640"),
)


@pytest.fixture
def index():
    return CandidateIndex.build(CATALOG)


@pytest.fixture
def resolver():
    return MentionResolver()


def test_exact_code_round_trip(resolver, index):
    result = resolver.resolve(RawMention("BMW", "3 Series", "E46"), index)

    assert result.generation_id == 1
    assert result.confidence is MatchConfidence.EXACT_CODE
    assert result.matched_key == "bmw|e46"
    assert result.is_match


def test_code_is_extracted_from_model_text(resolver, index):
    result = resolver.resolve(RawMention("BMW", "M3 e92 Coupe"), index)

    assert result.generation_id == 3
    assert result.confidence is MatchConfidence.EXACT_CODE


def test_exact_code_uses_brand_aliases(resolver, index):
    result = resolver.resolve(RawMention("Mercedes", "C63 AMG", "W204"), index)

    assert result.generation_id == 4
    assert result.confidence is MatchConfidence.EXACT_CODE
    assert result.matched_key == "mercedes benz|w204"


def test_brand_model_tier_uses_model_aliases(resolver, index):
    result = resolver.resolve(RawMention("Mercedes-Benz", "C63 AMG"), index)

    assert result.generation_id == 4
    assert result.confidence is MatchConfidence.BRAND_MODEL
    assert result.matched_key == "mercedes benz|c class"


def test_huracan_without_accent_resolves(resolver, index):
    result = resolver.resolve(RawMention("Lamborghini", "Huracan EVO"), index)

    assert result.generation_id == 5
    assert result.confidence is MatchConfidence.BRAND_MODEL


def test_fuzzy_tier_tolerates_brand_typos(resolver, index):
    result = resolver.resolve(RawMention("Lamborgini", "Murcielago"), index)

    assert result.generation_id == 6
    assert result.confidence is MatchConfidence.FUZZY


def test_exact_code_wins_over_brand_model(resolver, index):
    result = resolver.resolve(RawMention("BMW", "M3", "E46"), index)

    assert result.generation_id == 1
    assert result.confidence is MatchConfidence.EXACT_CODE


def test_unknown_brand_is_unresolved_without_raising(resolver, index):
    result = resolver.resolve(RawMention("Unknown Brand", "Model X", "Z1"), index)

    assert result == NO_MATCH
    assert not result.is_match
    assert result.as_dict()["confidence"] is None


@pytest.mark.parametrize("brand", [None, "", "   ", "NaN", "undefined"])
def test_blank_brand_is_malformed(resolver, index, brand):
    with pytest.raises(MalformedMentionError):
        resolver.resolve(RawMention(brand, "3 Series", "E46"), index)


def test_resolution_is_deterministic(resolver, index):
    mention = RawMention("BMW", "3 Series")
    results = {resolver.resolve(mention, index) for _ in range(5)}

    assert len(results) == 1
    (result,) = results
    assert result.generation_id == 1
    assert result.candidate_count == 2
    assert result.is_ambiguous


def test_duplicate_codes_pick_first_in_catalog_order(resolver):
    index = CandidateIndex.build(
        [
            CatalogEntry(7, 10, "BMW", "3 Series", "3 Series (E46)", "E46"),
            CatalogEntry(8, 10, "BMW", "3 Series", "E46 duplicate", "e46"),
        ]
    )

    result = resolver.resolve(RawMention("BMW", None, "E46"), index)

    assert result.generation_id == 7
    assert result.candidate_count == 2


def test_resolve_mention_accepts_explicit_catalog(index):
    result = resolve_mention(RawMention("Lamborgini", "Murcielago"), index, catalog=CATALOG[5:])

    assert result.generation_id == 6
    assert resolve_mention(RawMention("Lamborgini", "Murcielago"), index, catalog=()) == NO_MATCH


def test_suggestions_rank_same_brand_entries(resolver, index):
    suggestions = resolver.suggest_candidates(RawMention("BMW", "3 Series E46 Touring"), index, limit=2)

    assert suggestions
    assert len(suggestions) <= 2
    assert suggestions[0].generation_id == 1
    assert all(s.generation_id in {1, 2, 3} for s in suggestions)
    assert [s.score for s in suggestions] == sorted((s.score for s in suggestions), reverse=True)
    assert "E46" in suggestions[0].label


def test_suggestions_disabled_with_zero_limit(resolver, index):
    assert resolver.suggest_candidates(RawMention("BMW", "3 Series"), index, limit=0) == ()
    assert resolver.suggest_candidates(RawMention("BMW"), index) == ()
