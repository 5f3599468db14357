"""Asset-type compatibility table.

Pure-function module: NO database access.

Demand asset types and property types share one enum space.  An exact match
earns full credit; a pair listed in ``RELATED_TYPES`` earns partial credit
(a restaurant tenant can often use a retail storefront, a flex building can
serve warehouse or office users).  The relation is symmetric.
"""

from __future__ import annotations

from leasehub.domain.enums import AssetType

A = AssetType

# ── Related (partial-credit) pairs ────────────────────────────────────────

RELATED_TYPES: dict[str, set[str]] = {
    A.RETAIL.value:     {A.RESTAURANT.value},
    A.RESTAURANT.value: {A.RETAIL.value},
    A.OFFICE.value:     {A.MEDICAL.value, A.FLEX.value},
    A.MEDICAL.value:    {A.OFFICE.value},
    A.INDUSTRIAL.value: {A.WAREHOUSE.value, A.FLEX.value},
    A.WAREHOUSE.value:  {A.INDUSTRIAL.value, A.FLEX.value},
    A.FLEX.value:       {A.WAREHOUSE.value, A.INDUSTRIAL.value, A.OFFICE.value},
    A.LAND.value:       set(),
    A.OTHER.value:      set(),
}

DEFAULT_PARTIAL_CREDIT = 40.0


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def are_related(first: str | None, second: str | None) -> bool:
    """Whether two asset types form a partial-credit pair."""
    a, b = _normalize(first), _normalize(second)
    return b in RELATED_TYPES.get(a, set()) or a in RELATED_TYPES.get(b, set())


def compute_asset_type_score(
    property_type: str | None,
    required_type: str | None,
    partial_credit: float = DEFAULT_PARTIAL_CREDIT,
) -> tuple[float, bool, bool]:
    """Score how well *property_type* satisfies *required_type*.

    Returns
    -------
    (score, is_exact_match, is_related)
        *score* is 100 for an exact match (or when the tenant named no
        type), *partial_credit* for a related pair, else 0.
    """
    required = _normalize(required_type)
    offered = _normalize(property_type)

    if not required or offered == required:
        return 100.0, True, False

    if offered and are_related(offered, required):
        return float(partial_credit), False, True

    return 0.0, False, False
