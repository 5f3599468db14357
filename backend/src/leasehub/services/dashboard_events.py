"""Dashboard events: the one place KPI-affecting mutations are reported.

Every write that can change a user's dashboard numbers calls
``kpi_affecting_mutation``: the cached snapshot is dropped first (awaited).
If the user has a dashboard open, a fresh snapshot is computed and pushed
with the ``kpi-invalidated`` event so the cards update without a round
trip.  Pushes are best-effort; the cache invalidation is not.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable

from leasehub.domain.enums import RealtimeEvent
from leasehub.domain.schemas import MatchResponse

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class DashboardEventService:
    """Invalidates KPI snapshots and pushes dashboard events."""

    def __init__(self, kpi_cache, gateway):
        self.kpi_cache = kpi_cache
        self.gateway = gateway

    async def kpi_affecting_mutation(self, user_id: str, reason: str) -> None:
        await self.kpi_cache.invalidate(user_id)
        if not self.gateway.is_user_connected(user_id):
            logger.debug("User %s not connected, skipping %s push", user_id, reason)
            return

        data = {"reason": reason, "timestamp": _timestamp()}
        try:
            snapshot = await self.kpi_cache.get(user_id)
            data["kpis"] = snapshot.to_payload()
        except Exception as e:
            # clients fall back to request:current-state
            logger.warning("KPI recompute for %s push failed: %s", user_id, e)
            data["kpis"] = None
        await self.gateway.emit_to_user(user_id, RealtimeEvent.KPI_INVALIDATED, data)

    async def matches_updated(
        self, user_id: str, demand_id: str, matches: Iterable[MatchResponse],
    ) -> None:
        if not self.gateway.is_user_connected(user_id):
            return
        await self.gateway.emit_to_user(
            user_id,
            RealtimeEvent.MATCHES_UPDATED,
            {
                "demandListingId": demand_id,
                "matches": [m.model_dump(mode="json") for m in matches],
                "timestamp": _timestamp(),
            },
        )

    async def _business_event(
        self, user_id: str, event: RealtimeEvent, business_id: str,
    ) -> None:
        if not self.gateway.is_user_connected(user_id):
            return
        await self.gateway.emit_to_user(
            user_id, event, {"businessId": business_id, "timestamp": _timestamp()},
        )

    # ── Mutation hooks called by the CRUD layer ──

    async def on_business_created(self, user_id: str, business_id: str) -> None:
        await self.kpi_affecting_mutation(user_id, f"business_created:{business_id}")
        await self._business_event(user_id, RealtimeEvent.BUSINESS_CREATED, business_id)

    async def on_business_updated(self, user_id: str, business_id: str) -> None:
        await self.kpi_affecting_mutation(user_id, f"business_updated:{business_id}")
        await self._business_event(user_id, RealtimeEvent.BUSINESS_UPDATED, business_id)

    async def on_business_deleted(self, user_id: str, business_id: str) -> None:
        await self.kpi_affecting_mutation(user_id, f"business_deleted:{business_id}")
        await self._business_event(user_id, RealtimeEvent.BUSINESS_DELETED, business_id)

    async def on_metrics_updated(self, user_id: str, business_id: str) -> None:
        await self.kpi_affecting_mutation(user_id, f"metrics_updated:{business_id}")
        await self._business_event(user_id, RealtimeEvent.METRICS_UPDATED, business_id)

    async def on_message_sent(self, user_id: str) -> None:
        await self.kpi_affecting_mutation(user_id, "message_sent")

    async def on_matches_created(self, user_id: str, *demand_ids: str) -> None:
        """One mutation for a user however many of their demands were rescored."""
        await self.kpi_affecting_mutation(user_id, f"matches_created:{','.join(demand_ids)}")
