"""Unit tests for the asset-type compatibility table.

Covers:
 - Exact matches for every asset type
 - Symmetry of every related pair
 - Unrelated pairs and empty / unknown values
 - Configurable partial credit
"""

from __future__ import annotations

import pytest

from leasehub.domain.enums import AssetType
from leasehub.services.asset_type_compat import (
    DEFAULT_PARTIAL_CREDIT,
    RELATED_TYPES,
    are_related,
    compute_asset_type_score,
)

ALL_TYPES = [t.value for t in AssetType]
RELATED_PAIRS = [(a, b) for a, related in RELATED_TYPES.items() for b in related]


class TestExactMatch:

    @pytest.mark.parametrize("asset_type", ALL_TYPES)
    def test_same_type_scores_full(self, asset_type):
        score, is_exact, is_related = compute_asset_type_score(asset_type, asset_type)
        assert score == 100.0
        assert is_exact is True
        assert is_related is False

    def test_case_and_whitespace_ignored(self):
        score, is_exact, _ = compute_asset_type_score(" Retail ", "retail")
        assert score == 100.0
        assert is_exact is True

    def test_no_required_type_is_full_credit(self):
        score, is_exact, _ = compute_asset_type_score("office", None)
        assert score == 100.0
        assert is_exact is True


class TestRelatedPairs:

    @pytest.mark.parametrize("first,second", RELATED_PAIRS)
    def test_relation_is_symmetric(self, first, second):
        assert are_related(first, second)
        assert are_related(second, first)

    @pytest.mark.parametrize("first,second", RELATED_PAIRS)
    def test_related_pair_gets_partial_credit(self, first, second):
        score, is_exact, is_related = compute_asset_type_score(first, second)
        assert score == DEFAULT_PARTIAL_CREDIT
        assert is_exact is False
        assert is_related is True

    def test_custom_partial_credit(self):
        score, _, _ = compute_asset_type_score("restaurant", "retail", partial_credit=70)
        assert score == 70.0


class TestUnrelated:

    @pytest.mark.parametrize(
        "property_type,required_type",
        [
            ("office", "retail"),
            ("land", "warehouse"),
            ("medical", "industrial"),
            ("other", "flex"),
            ("retail", "land"),
        ],
    )
    def test_unrelated_scores_zero(self, property_type, required_type):
        score, is_exact, is_related = compute_asset_type_score(property_type, required_type)
        assert score == 0.0
        assert not is_exact
        assert not is_related

    def test_missing_property_type_scores_zero(self):
        score, _, _ = compute_asset_type_score(None, "retail")
        assert score == 0.0

    def test_unknown_types_are_unrelated(self):
        assert not are_related("spaceport", "retail")
        score, _, _ = compute_asset_type_score("spaceport", "retail")
        assert score == 0.0

    def test_land_and_other_have_no_relations(self):
        for asset_type in ALL_TYPES:
            if asset_type not in ("land", "other"):
                assert not are_related("land", asset_type)
                assert not are_related("other", asset_type)
