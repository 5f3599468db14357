"""Match Orchestrator: reacts to listing changes by rescoring candidate pairs.

Pipeline per trigger:
    1. Load the changed listing (missing -> ``ListingNotFoundError``)
    2. Pick candidates: active listings in the same state (never the full
       cross-product) plus active counterparts that already have a stored
       match, so a listing that moved away is rescored rather than left stale
    3. Score each pair with ``match_scorer.score`` and upsert it
    4. Commit
    5. Per affected owner: one KPI-affecting mutation (cache invalidated
       first), then ``matches-updated`` with the top-N matches per demand

Notifications only ever go out after the commit, so a client that re-pulls
on ``matches-updated`` sees the new rows.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Optional

from leasehub.domain.enums import DemandListingStatus, PropertyListingStatus
from leasehub.domain.errors import ListingNotFoundError
from leasehub.domain.models import DemandListing, PropertyListing
from leasehub.infra.repositories import ListingRepository
from leasehub.services.match_scorer import ScoringConfig, score
from leasehub.services.match_store import MatchStore, to_match_response

logger = logging.getLogger(__name__)


@dataclass
class RescoreSummary:
    """What one orchestrator run did."""

    trigger: str
    listing_id: str
    pairs_scored: int = 0
    pairs_skipped: int = 0
    notified_users: list[str] = field(default_factory=list)
    failed_listings: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _build_demand_dict(demand: DemandListing) -> dict:
    return {
        "city": demand.city,
        "state": demand.state,
        "asset_type": demand.asset_type,
        "sqft_min": demand.sqft_min,
        "sqft_max": demand.sqft_max,
        "budget_min": demand.budget_min,
        "budget_max": demand.budget_max,
        "amenities": demand.amenities or [],
        "locations_of_interest": demand.locations_of_interest or [],
    }


def _build_property_dict(prop: PropertyListing) -> dict:
    return {
        "city": prop.city,
        "state": prop.state,
        "property_type": prop.property_type,
        "sqft": prop.sqft,
        "asking_price": prop.asking_price,
        "amenities": prop.amenities or [],
    }


class MatchOrchestrator:
    """Runs scoring for listing changes and fans out notifications."""

    def __init__(
        self,
        session_factory,
        events,
        config: Optional[ScoringConfig] = None,
        top_n: int = 10,
    ):
        self.session_factory = session_factory
        self.events = events
        self.config = config or ScoringConfig()
        self.top_n = top_n

    async def _upsert_pair(
        self, store: MatchStore, summary: RescoreSummary,
        demand: DemandListing, prop: PropertyListing, demand_data: dict,
    ) -> bool:
        result = score(demand_data, _build_property_dict(prop), self.config)
        try:
            await store.upsert(demand.id, prop.id, result)
        except ListingNotFoundError as e:
            logger.warning("Skipping pair %s x %s: %s", demand.id, prop.id, e)
            summary.pairs_skipped += 1
            return False
        summary.pairs_scored += 1
        return True

    async def _top_matches(self, store: MatchStore, demand_id: str) -> list:
        matches = await store.list_for_demand(demand_id, limit=self.top_n)
        return [to_match_response(m) for m in matches]

    async def _notify(self, summary: RescoreSummary, owners: dict[str, list[tuple[str, list]]]) -> None:
        """Invalidate each owner's KPIs once, then push ``matches-updated`` per demand."""
        for user_id, demands in owners.items():
            await self.events.on_matches_created(user_id, *(demand_id for demand_id, _ in demands))
            for demand_id, top in demands:
                await self.events.matches_updated(user_id, demand_id, top)
            summary.notified_users.append(user_id)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def on_demand_listing_changed(self, demand_id: str) -> RescoreSummary:
        """Rescore a demand listing against active properties in its state.

        Active properties that already hold a match with it are rescored too,
        wherever they are now.
        """
        summary = RescoreSummary(trigger="demand_listing_changed", listing_id=demand_id)
        owners: dict[str, list[tuple[str, list]]] = defaultdict(list)

        async with self.session_factory() as session:
            listings = ListingRepository(session)
            store = MatchStore(session)

            demand = await listings.get_demand_listing(demand_id)
            if demand is None:
                raise ListingNotFoundError("demand", demand_id)
            if demand.status != DemandListingStatus.ACTIVE.value:
                logger.info("Demand listing %s is %s, not scoring", demand_id, demand.status)
                return summary

            candidates = await listings.list_active_properties_by_state(demand.state)
            in_state = {p.id for p in candidates}
            previously_matched = [
                pid for pid in await store.property_ids_matched_to_demand(demand_id)
                if pid not in in_state
            ]
            candidates += await listings.list_active_properties(previously_matched)

            demand_data = _build_demand_dict(demand)
            for prop in candidates:
                await self._upsert_pair(store, summary, demand, prop, demand_data)

            await session.commit()

            owner = await listings.owner_user_id_for_demand(demand_id)
            if owner:
                owners[owner].append((demand_id, await self._top_matches(store, demand_id)))

        logger.info(
            "Rescored demand %s: %d pairs (%d skipped)",
            demand_id, summary.pairs_scored, summary.pairs_skipped,
        )
        await self._notify(summary, owners)
        return summary

    async def on_property_listing_changed(self, property_id: str) -> RescoreSummary:
        """Rescore a property against active demands in its state or already matched to it.

        A property that is no longer active is handled as a retirement.
        """
        summary = RescoreSummary(trigger="property_listing_changed", listing_id=property_id)
        owners: dict[str, list[tuple[str, list]]] = defaultdict(list)

        async with self.session_factory() as session:
            listings = ListingRepository(session)
            store = MatchStore(session)

            prop = await listings.get_property_listing(property_id)
            if prop is None:
                raise ListingNotFoundError("property", property_id)
            retired = prop.status != PropertyListingStatus.ACTIVE.value

            if not retired:
                candidates = await listings.list_active_demands_by_state(prop.state)
                in_state = {d.id for d in candidates}
                previously_matched = [
                    did for did in await store.demand_ids_matched_to_property(
                        property_id, include_dismissed=True,
                    )
                    if did not in in_state
                ]
                candidates += await listings.list_active_demands(previously_matched)

                scored_demands = []
                for demand in candidates:
                    if await self._upsert_pair(store, summary, demand, prop, _build_demand_dict(demand)):
                        scored_demands.append(demand.id)

                await session.commit()

                owner_map = await listings.owner_user_ids_for_demands(scored_demands)
                for demand_id in scored_demands:
                    user_id = owner_map.get(demand_id)
                    if user_id:
                        owners[user_id].append((demand_id, await self._top_matches(store, demand_id)))

        if retired:
            return await self.on_property_listing_retired(property_id)

        logger.info(
            "Rescored property %s: %d pairs (%d skipped)",
            property_id, summary.pairs_scored, summary.pairs_skipped,
        )
        await self._notify(summary, owners)
        return summary

    async def on_property_listing_retired(self, property_id: str) -> RescoreSummary:
        """Notify owners of demands matched to a property that left the market.

        Stored matches are left alone; the active-property filter in
        ``MatchStore`` drops them from every list.
        """
        summary = RescoreSummary(trigger="property_listing_retired", listing_id=property_id)
        owners: dict[str, list[tuple[str, list]]] = defaultdict(list)

        async with self.session_factory() as session:
            listings = ListingRepository(session)
            store = MatchStore(session)

            if await listings.get_property_listing(property_id) is None:
                raise ListingNotFoundError("property", property_id)

            demand_ids = list(dict.fromkeys(await store.demand_ids_matched_to_property(property_id)))
            owner_map = await listings.owner_user_ids_for_demands(demand_ids)
            for demand_id in demand_ids:
                user_id = owner_map.get(demand_id)
                if user_id:
                    owners[user_id].append((demand_id, await self._top_matches(store, demand_id)))

        logger.info("Property %s retired; notifying %d owner(s)", property_id, len(owners))
        await self._notify(summary, owners)
        return summary

    async def refresh_all_matches(self) -> RescoreSummary:
        """Rescore every active demand listing. One failure doesn't stop the rest."""
        summary = RescoreSummary(trigger="refresh_all", listing_id="*")

        async with self.session_factory() as session:
            demand_ids = await ListingRepository(session).list_active_demand_ids()

        for demand_id in demand_ids:
            try:
                result = await self.on_demand_listing_changed(demand_id)
            except Exception as e:
                logger.error("Refresh failed for demand listing %s: %s", demand_id, e)
                summary.failed_listings += 1
                continue
            summary.pairs_scored += result.pairs_scored
            summary.pairs_skipped += result.pairs_skipped
            for user_id in result.notified_users:
                if user_id not in summary.notified_users:
                    summary.notified_users.append(user_id)

        logger.info(
            "Refreshed %d demand listings: %d pairs, %d failed",
            len(demand_ids), summary.pairs_scored, summary.failed_listings,
        )
        return summary
