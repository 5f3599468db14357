"""KPI Service: computes dashboard aggregates from the activity tables.

This is the only producer of "true" KPI snapshots; ``KPICache`` stores what
it returns.  The response-rate formula is a business input, so it is picked
by name from ``RESPONSE_RATE_FORMULAS`` rather than fixed in code.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from leasehub.domain.enums import SubscriptionTier
from leasehub.domain.schemas import KPISnapshot
from leasehub.infra.repositories import MetricsRepository

logger = logging.getLogger(__name__)

ResponseRateFormula = Callable[[dict[str, int]], float]


def messages_over_invites(totals: dict[str, int]) -> float:
    """Messages per property invite, as a percentage capped at 100."""
    if totals["invites"] <= 0:
        return 0.0
    return min(totals["messages"] / totals["invites"] * 100.0, 100.0)


def messages_over_views(totals: dict[str, int]) -> float:
    """Messages per landlord view, as a percentage capped at 100."""
    if totals["views"] <= 0:
        return 0.0
    return min(totals["messages"] / totals["views"] * 100.0, 100.0)


RESPONSE_RATE_FORMULAS: dict[str, ResponseRateFormula] = {
    "messages_over_invites": messages_over_invites,
    "messages_over_views": messages_over_views,
}


def format_rate(rate: float) -> str:
    return f"{rate:.1f}%"


class KPIService:
    """Builds ``KPISnapshot`` objects from a fresh database session."""

    def __init__(self, session_factory, response_rate_formula: str = "messages_over_invites"):
        if response_rate_formula not in RESPONSE_RATE_FORMULAS:
            raise ValueError(
                f"Unknown response rate formula {response_rate_formula!r}; "
                f"expected one of {sorted(RESPONSE_RATE_FORMULAS)}"
            )
        self.session_factory = session_factory
        self.response_rate = RESPONSE_RATE_FORMULAS[response_rate_formula]

    async def compute(self, user_id: str) -> KPISnapshot:
        """Aggregate the user's KPIs. Database errors propagate."""
        async with self.session_factory() as session:
            repo = MetricsRepository(session)
            active_businesses = await repo.count_active_businesses(user_id)
            now = datetime.now(timezone.utc)

            if active_businesses == 0:
                return KPISnapshot(user_id=user_id, computed_at=now)

            totals = await repo.sum_business_metrics(user_id)
            user = await repo.get_user(user_id)

        landlord_views = totals["views"]
        # Landlord views are a paid feature.
        if user is not None and user.subscription_tier == SubscriptionTier.STARTER.value:
            landlord_views = 0

        snapshot = KPISnapshot(
            user_id=user_id,
            active_businesses=active_businesses,
            response_rate=format_rate(self.response_rate(totals)),
            landlord_views=landlord_views,
            messages_total=totals["messages"],
            computed_at=now,
        )
        logger.debug("Computed KPIs for user %s: %s", user_id, snapshot.to_payload())
        return snapshot
