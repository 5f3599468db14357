"""Deterministic Match Scorer.

Pure-function module: NO database access, NO I/O.

Computes a composite match score between a tenant demand listing and a
property listing from five weighted dimensions:
    - Location: same city / same state comparison
    - Sqft: range check with linear falloff outside the bounds
    - Price: budget check with linear falloff, neutral when unknown
    - Asset type: exact / related / unrelated (delegates to asset_type_compat)
    - Amenities: share of requested amenities the property offers

All inputs are plain dicts so the scorer can be called from the match
orchestrator, from tests, or from offline batch jobs without touching ORM
objects.  Weights and curve parameters come from ``ScoringConfig`` rather
than module constants so they can be tuned from settings.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Optional

from leasehub.domain.schemas import (
    AmenitiesMatch,
    AssetTypeMatch,
    LocationMatch,
    MatchDetails,
    PriceMatch,
    SqftMatch,
)
from leasehub.services.asset_type_compat import (
    DEFAULT_PARTIAL_CREDIT,
    compute_asset_type_score,
)

# Neutral score returned when data is insufficient for a dimension
NEUTRAL = 50.0

SAME_STATE_SCORE = 60.0

_WEIGHT_TOLERANCE = 1e-6


# ── Configuration ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoringWeights:
    """Per-dimension weights. Must sum to 1.0."""

    location: float = 0.30
    sqft: float = 0.25
    price: float = 0.25
    asset_type: float = 0.15
    amenities: float = 0.05

    def __post_init__(self):
        values = self.as_dict()
        negative = [name for name, w in values.items() if w < 0]
        if negative:
            raise ValueError(f"Scoring weights must be non-negative: {negative}")
        total = sum(values.values())
        if not math.isclose(total, 1.0, abs_tol=_WEIGHT_TOLERANCE):
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")

    def as_dict(self) -> dict[str, float]:
        return {
            "location": self.location,
            "sqft": self.sqft,
            "price": self.price,
            "asset_type": self.asset_type,
            "amenities": self.amenities,
        }


@dataclass(frozen=True)
class ScoringConfig:
    """Everything tunable about the scoring curve."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    sqft_falloff: float = 1.0
    price_falloff: float = 1.0
    asset_type_partial_credit: float = DEFAULT_PARTIAL_CREDIT
    same_state_score: float = SAME_STATE_SCORE
    neutral_score: float = NEUTRAL


def scoring_config_from_settings(settings) -> ScoringConfig:
    """Build a ``ScoringConfig`` from application ``Settings``."""
    return ScoringConfig(
        weights=ScoringWeights(
            location=settings.match_weight_location,
            sqft=settings.match_weight_sqft,
            price=settings.match_weight_price,
            asset_type=settings.match_weight_asset_type,
            amenities=settings.match_weight_amenities,
        ),
        sqft_falloff=settings.sqft_falloff,
        price_falloff=settings.price_falloff,
        asset_type_partial_credit=settings.asset_type_partial_credit,
        same_state_score=settings.same_state_score,
        neutral_score=settings.neutral_score,
    )


@dataclass
class MatchResult:
    """Output of one scoring pass. Scores are 0-100, two decimals."""

    match_score: float
    location_score: float
    sqft_score: float
    price_score: float
    asset_type_score: float
    amenities_score: float
    match_details: MatchDetails

    def sub_scores(self) -> dict[str, float]:
        return {
            "location": self.location_score,
            "sqft": self.sqft_score,
            "price": self.price_score,
            "asset_type": self.asset_type_score,
            "amenities": self.amenities_score,
        }


# ── Helpers ──────────────────────────────────────────────────────────────────

def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _norm_place(value) -> str:
    return " ".join(str(value or "").strip().lower().split())


def _norm_tag(value) -> str:
    return re.sub(r"[^a-z0-9]+", "_", str(value or "").lower()).strip("_")


def _bound(value) -> Optional[float]:
    """Non-positive or missing bounds are treated as unbounded."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _split_place(entry: str) -> tuple[str, str]:
    """Split ``"Austin, TX"`` into ``("austin", "tx")``; bare names keep state empty."""
    if "," in entry:
        city, _, state = entry.partition(",")
        return _norm_place(city), _norm_place(state)
    return _norm_place(entry), ""


def _range_score(value: float, low: Optional[float], high: Optional[float], falloff: float) -> tuple[float, bool]:
    """100 inside ``[low, high]``; linear decay by fractional distance outside.

    ``distance_fraction = |value - bound| / bound`` and the score drops by
    ``distance_fraction * 100 * falloff`` points, floored at 0.
    """
    if low is not None and value < low:
        fraction = (low - value) / low
    elif high is not None and value > high:
        fraction = (value - high) / high
    else:
        return 100.0, True
    return _clamp(100.0 - fraction * 100.0 * falloff), False


# ── Dimension scorers ────────────────────────────────────────────────────────

def _compute_location_score(
    demand: dict, prop: dict, same_state_score: float,
) -> tuple[float, LocationMatch]:
    """Exact city beats state-only regardless of interest-list order."""
    prop_city = _norm_place(prop.get("city"))
    prop_state = _norm_place(prop.get("state"))

    candidates: list[tuple[str, str, str]] = []
    if demand.get("city") or demand.get("state"):
        candidates.append((
            _norm_place(demand.get("city")),
            _norm_place(demand.get("state")),
            str(demand.get("city") or demand.get("state")),
        ))
    for entry in demand.get("locations_of_interest") or []:
        if not entry:
            continue
        city, state = _split_place(str(entry))
        candidates.append((city, state, str(entry)))

    if prop_city:
        for city, state, label in candidates:
            if city == prop_city and (not state or not prop_state or state == prop_state):
                return 100.0, LocationMatch(
                    same_city=True, same_state=bool(prop_state), matched_location=label,
                )

    if prop_state:
        for city, state, label in candidates:
            # A bare interest entry may name a state ("TX") rather than a city.
            if state == prop_state or (not state and city == prop_state):
                return _clamp(same_state_score), LocationMatch(
                    same_city=False, same_state=True, matched_location=label,
                )

    return 0.0, LocationMatch()


def _compute_sqft_score(demand: dict, prop: dict, falloff: float, neutral: float) -> tuple[float, SqftMatch]:
    low = _bound(demand.get("sqft_min"))
    high = _bound(demand.get("sqft_max"))
    sqft = prop.get("sqft")
    details = SqftMatch(
        property_sqft=sqft,
        required_min=demand.get("sqft_min"),
        required_max=demand.get("sqft_max"),
    )

    if low is None and high is None:
        details.in_range = True
        return 100.0, details
    if sqft is None:
        return _clamp(neutral), details

    score, in_range = _range_score(float(sqft), low, high, falloff)
    details.in_range = in_range
    return score, details


def _compute_price_score(demand: dict, prop: dict, falloff: float, neutral: float) -> tuple[float, PriceMatch]:
    price = _bound(prop.get("asking_price"))
    low = _bound(demand.get("budget_min"))
    high = _bound(demand.get("budget_max"))
    details = PriceMatch(
        property_price=prop.get("asking_price"),
        budget_min=demand.get("budget_min"),
        budget_max=demand.get("budget_max"),
    )

    # Unknown price is not disqualifying.
    if price is None:
        details.price_known = False
        return _clamp(neutral), details
    if low is None and high is None:
        details.in_range = True
        return 100.0, details

    score, in_range = _range_score(price, low, high, falloff)
    details.in_range = in_range
    return score, details


def _compute_amenities_score(demand: dict, prop: dict) -> tuple[float, AmenitiesMatch]:
    required = [a for a in (demand.get("amenities") or []) if _norm_tag(a)]
    if not required:
        return 100.0, AmenitiesMatch()

    offered = {_norm_tag(a) for a in (prop.get("amenities") or [])}
    offered.discard("")

    matched = []
    for feature in required:
        wanted = _norm_tag(feature)
        if any(wanted == have or wanted in have or have in wanted for have in offered):
            matched.append(feature)

    percentage = len(matched) / len(required) * 100.0
    return _clamp(percentage), AmenitiesMatch(
        matched_features=matched,
        total_required=len(required),
        match_percentage=round(percentage, 2),
    )


# ── Main scorer ──────────────────────────────────────────────────────────────

def score(demand: dict, prop: dict, config: Optional[ScoringConfig] = None) -> MatchResult:
    """Compute a deterministic composite match score.

    Parameters
    ----------
    demand
        Keys: city, state, asset_type, sqft_min, sqft_max, budget_min,
        budget_max, amenities, locations_of_interest.
    prop
        Keys: city, state, property_type, sqft, asking_price, amenities.
        Callers only pass active properties.
    config
        Weights and curve parameters; defaults to ``ScoringConfig()``.

    Returns
    -------
    MatchResult
        Composite and per-dimension scores (each within [0, 100]) plus the
        structured ``MatchDetails``.
    """
    config = config or ScoringConfig()
    weights = config.weights

    location_score, location_match = _compute_location_score(
        demand, prop, config.same_state_score,
    )
    sqft_score, sqft_match = _compute_sqft_score(
        demand, prop, config.sqft_falloff, config.neutral_score,
    )
    price_score, price_match = _compute_price_score(
        demand, prop, config.price_falloff, config.neutral_score,
    )
    asset_type_score, is_exact, is_related = compute_asset_type_score(
        prop.get("property_type"),
        demand.get("asset_type"),
        partial_credit=config.asset_type_partial_credit,
    )
    asset_type_score = _clamp(asset_type_score)
    amenities_score, amenities_match = _compute_amenities_score(demand, prop)

    composite = (
        location_score * weights.location
        + sqft_score * weights.sqft
        + price_score * weights.price
        + asset_type_score * weights.asset_type
        + amenities_score * weights.amenities
    )

    details = MatchDetails(
        location_match=location_match,
        sqft_match=sqft_match,
        price_match=price_match,
        asset_type_match=AssetTypeMatch(
            property_type=prop.get("property_type"),
            required_type=demand.get("asset_type"),
            is_exact_match=is_exact,
            is_related=is_related,
        ),
        amenities_match=amenities_match,
    )

    return MatchResult(
        match_score=round(_clamp(composite), 2),
        location_score=round(location_score, 2),
        sqft_score=round(sqft_score, 2),
        price_score=round(price_score, 2),
        asset_type_score=round(asset_type_score, 2),
        amenities_score=round(amenities_score, 2),
        match_details=details,
    )

