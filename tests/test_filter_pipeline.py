"""Tests for card filters and the filter pipeline."""

import logging

import pytest
from pydantic import ValidationError

from manasight.filtering.facets import CardFilters, InvalidFilterError, parse_filters
from manasight.filtering.pipeline import apply_filters
from manasight.models.failure import FailureKind
from manasight.models.recommendation import Recommendation
from manasight.scoring.engine import FunctionalSimilarityScorer, rank_candidates
from manasight.services.card_catalog import CardCatalog


@pytest.fixture
def ranked(catalog: CardCatalog) -> list[Recommendation]:
    """Functional-similarity ranking for Elite Vanguard."""
    source = catalog.get_by_key("oracle-vanguard")
    assert source is not None
    return rank_candidates(source, catalog.identities(), FunctionalSimilarityScorer())


def names(recs: list[Recommendation]) -> list[str]:
    return [rec.candidate.name for rec in recs]


def matching(catalog: CardCatalog, **facets) -> set[str]:
    filters = CardFilters(**facets)
    return {card.name for card in catalog.identities() if filters.matches(card)}


class TestApplyFilters:
    def test_color_filter_then_limit(self, ranked: list[Recommendation]) -> None:
        """Limit counts filtered results, so three white cards come back."""
        result = apply_filters(ranked, parse_filters({"colors": ["W"]}), limit=3)

        assert names(result) == ["Champion of the Parish", "Thalia's Lieutenant", "Serra Angel"]

    def test_preserves_order_and_scores(self, ranked: list[Recommendation]) -> None:
        result = apply_filters(ranked, CardFilters(colors=frozenset({"W"})))

        assert result == [rec for rec in ranked if "W" in rec.candidate.colors]

    def test_empty_filters_keep_everything(self, ranked: list[Recommendation]) -> None:
        assert apply_filters(ranked, CardFilters()) == ranked

    def test_limit_without_filters(self, ranked: list[Recommendation]) -> None:
        assert apply_filters(ranked, CardFilters(), limit=2) == ranked[:2]

    def test_zero_limit(self, ranked: list[Recommendation]) -> None:
        assert apply_filters(ranked, CardFilters(colors=frozenset({"W"})), limit=0) == []

    def test_negative_limit_rejected(self, ranked: list[Recommendation]) -> None:
        with pytest.raises(ValueError):
            apply_filters(ranked, CardFilters(), limit=-1)

    def test_no_matches(self, ranked: list[Recommendation]) -> None:
        assert apply_filters(ranked, CardFilters(colors=frozenset({"B"}))) == []

    def test_logs_filter_summary(
        self, ranked: list[Recommendation], caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.DEBUG, logger="manasight.filtering.pipeline")

        apply_filters(ranked, CardFilters(colors=frozenset({"W"})))

        record = next(r for r in caplog.records if r.message == "FILTERS_APPLIED")
        assert record.kept == 3


LAYERS = {
    "colors": ["W"],
    "types": ["creature"],
    "maxMv": 2,
    "format": "modern",
    "maxPrice": 1,
}


def is_subsequence(sub: list[Recommendation], seq: list[Recommendation]) -> bool:
    remaining = iter(seq)
    return all(item in remaining for item in sub)


class TestFilterLayering:
    @pytest.mark.parametrize(
        "order",
        [
            ("colors", "types", "maxMv", "format", "maxPrice"),
            ("maxPrice", "format", "maxMv", "types", "colors"),
            ("types", "maxPrice", "colors", "format", "maxMv"),
            ("format", "colors", "maxPrice", "maxMv", "types"),
        ],
    )
    def test_each_facet_narrows_the_previous_result(
        self, ranked: list[Recommendation], order: tuple[str, ...]
    ) -> None:
        """Adding a facet only drops cards; survivors keep their rank and score."""
        raw: dict = {}
        previous = apply_filters(ranked, parse_filters(raw))

        for facet in order:
            raw[facet] = LAYERS[facet]
            filters = parse_filters(raw)
            current = apply_filters(ranked, filters)

            assert is_subsequence(current, previous), f"adding {facet} reordered results"
            assert current == [rec for rec in ranked if filters.matches(rec.candidate)]
            previous = current


class TestFacetMatching:
    def test_colors_any_of(self, catalog: CardCatalog) -> None:
        assert matching(catalog, colors=frozenset({"R", "G"})) == {
            "Goblin Guide",
            "Lightning Bolt",
            "Llanowar Elves",
        }

    def test_colorless(self, catalog: CardCatalog) -> None:
        assert matching(catalog, colors=frozenset({"C"})) == {"Sol Ring"}

    def test_color_identity_is_subset(self, catalog: CardCatalog) -> None:
        """Commander-style: colorless cards fit any identity."""
        assert matching(catalog, color_identity=frozenset({"G"})) == {"Llanowar Elves", "Sol Ring"}

    def test_types_whole_word(self, catalog: CardCatalog) -> None:
        assert matching(catalog, types=frozenset({"instant", "artifact"})) == {
            "Lightning Bolt",
            "Sol Ring",
        }

    def test_format_requires_legal(self, catalog: CardCatalog) -> None:
        """Banned cards are excluded, not just missing ones."""
        result = matching(catalog, format="modern")

        assert "Sol Ring" not in result
        assert "Lightning Bolt" in result

    def test_rarities(self, catalog: CardCatalog) -> None:
        """Any printing's rarity counts."""
        assert "Elite Vanguard" in matching(catalog, rarities=frozenset({"uncommon"}))

    def test_set_codes(self, catalog: CardCatalog) -> None:
        assert matching(catalog, set_codes=frozenset({"lea"})) == {"Lightning Bolt"}

    def test_keywords(self, catalog: CardCatalog) -> None:
        assert matching(catalog, keywords=frozenset({"flying"})) == {"Serra Angel"}

    def test_oracle_text_substring(self, catalog: CardCatalog) -> None:
        assert matching(catalog, oracle_text="+1/+1 counter") == {
            "Champion of the Parish",
            "Thalia's Lieutenant",
        }

    def test_mana_value_range(self, catalog: CardCatalog) -> None:
        assert matching(catalog, min_mv=2, max_mv=5) == {"Thalia's Lieutenant", "Serra Angel"}

    def test_price_bounds_exclude_unknown_price(self, catalog: CardCatalog) -> None:
        result = matching(catalog, max_price=1.0)

        assert result == {"Thalia's Lieutenant", "Lightning Bolt", "Llanowar Elves", "Serra Angel"}
        assert "Elite Vanguard" not in result

    def test_facets_are_conjunctive(self, catalog: CardCatalog) -> None:
        assert matching(catalog, colors=frozenset({"W"}), types=frozenset({"angel"})) == {"Serra Angel"}


class TestParseFilters:
    def test_none_and_blank_mean_no_filters(self) -> None:
        assert parse_filters(None).is_empty
        assert parse_filters("  ").is_empty
        assert parse_filters({}).is_empty

    def test_json_string(self) -> None:
        filters = parse_filters('{"colors": ["w"], "maxMv": 3}')

        assert filters.colors == frozenset({"W"})
        assert filters.max_mv == 3

    def test_camel_and_snake_case(self) -> None:
        assert parse_filters({"minPrice": 1}) == parse_filters({"min_price": 1})

    def test_comma_separated_values(self) -> None:
        filters = parse_filters({"colors": "W, U", "types": "Creature,Instant"})

        assert filters.colors == frozenset({"W", "U"})
        assert filters.types == frozenset({"creature", "instant"})

    @pytest.mark.parametrize(
        ("raw", "fragment"),
        [
            ("{not json", "not valid JSON"),
            ("[1, 2]", "JSON object"),
            ({"colors": ["X"]}, "Unknown colors"),
            ({"rarities": ["legendary"]}, "Unknown rarities"),
            ({"format": "arena"}, "Unknown format"),
            ({"power": 3}, "power"),
            ({"minMv": -1}, "minMv"),
            ({"minMv": 4, "maxMv": 2}, "greater than maxMv"),
            ({"minPrice": 5, "maxPrice": 1}, "greater than maxPrice"),
        ],
    )
    def test_invalid_filters(self, raw, fragment: str) -> None:
        with pytest.raises(InvalidFilterError) as exc_info:
            parse_filters(raw)

        assert exc_info.value.kind == FailureKind.INVALID_INPUT
        assert exc_info.value.status_code == 400
        assert fragment in (exc_info.value.detail or "")

    def test_filters_are_immutable(self) -> None:
        filters = parse_filters({"colors": ["W"]})

        with pytest.raises(ValidationError):
            filters.colors = frozenset({"U"})  # type: ignore[misc]


class TestFingerprint:
    def test_empty_filters(self) -> None:
        assert CardFilters().cache_fingerprint() == "none"

    def test_order_insensitive(self) -> None:
        a = parse_filters({"colors": ["U", "W"], "types": ["instant", "creature"]})
        b = parse_filters({"types": "Creature,Instant", "colors": "W,U"})

        assert a.cache_fingerprint() == b.cache_fingerprint()

    def test_different_filters_differ(self) -> None:
        assert (
            parse_filters({"colors": ["W"]}).cache_fingerprint()
            != parse_filters({"colors": ["U"]}).cache_fingerprint()
        )

    def test_uses_price(self) -> None:
        assert parse_filters({"maxPrice": 2}).uses_price
        assert not parse_filters({"maxMv": 2}).uses_price
