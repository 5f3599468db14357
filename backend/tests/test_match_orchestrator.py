"""Tests for MatchOrchestrator: candidate selection, commit-then-notify, retirement."""

import itertools
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from leasehub.domain.enums import RealtimeEvent
from leasehub.domain.errors import ListingNotFoundError
from leasehub.domain.models import DemandListing, PropertyListing, PropertyMatch
from leasehub.domain.schemas import KPISnapshot
from leasehub.services.dashboard_events import DashboardEventService
from leasehub.services.kpi_cache import KPICache
from leasehub.services.match_orchestrator import MatchOrchestrator, RescoreSummary
from leasehub.services.match_store import MatchStore


@pytest.fixture
def events():
    return AsyncMock()


@pytest.fixture
def orchestrator(session_factory, events):
    return MatchOrchestrator(session_factory, events, top_n=5)


@pytest.fixture
async def market(db_session, make_user, make_business, make_demand, make_property):
    """One Austin tenant, three TX properties (one leased) and one CO property."""
    tenant = await make_user()
    landlord = await make_user(role="landlord", name="Landlord")
    business = await make_business(tenant)
    demand = await make_demand(business)
    in_city = await make_property(landlord)
    in_state = await make_property(landlord, city="Dallas")
    leased = await make_property(landlord, status="leased")
    out_of_state = await make_property(landlord, city="Denver", state="CO")
    await db_session.commit()
    return {
        "tenant": tenant,
        "landlord": landlord,
        "business": business,
        "demand": demand,
        "in_city": in_city,
        "in_state": in_state,
        "leased": leased,
        "out_of_state": out_of_state,
    }


async def _match_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(PropertyMatch.id)))


# ---------------------------------------------------------------------------
# Demand listing changes
# ---------------------------------------------------------------------------

class TestDemandListingChanged:

    async def test_scores_only_active_same_state_properties(
        self, orchestrator, session_factory, market,
    ):
        summary = await orchestrator.on_demand_listing_changed(market["demand"].id)

        assert isinstance(summary, RescoreSummary)
        assert summary.pairs_scored == 2
        async with session_factory() as session:
            rows = (await session.execute(select(PropertyMatch))).scalars().all()
        assert {r.property_listing_id for r in rows} == {
            market["in_city"].id, market["in_state"].id,
        }

    async def test_notifies_owner_after_commit(
        self, orchestrator, events, session_factory, market,
    ):
        seen_counts = []

        async def _on_matches_updated(user_id, demand_id, matches):
            seen_counts.append(await _match_count(session_factory))

        events.matches_updated.side_effect = _on_matches_updated

        summary = await orchestrator.on_demand_listing_changed(market["demand"].id)

        assert seen_counts == [2]
        assert summary.notified_users == [market["tenant"].id]
        user_id, demand_id, matches = events.matches_updated.await_args.args
        assert user_id == market["tenant"].id
        assert demand_id == market["demand"].id
        assert matches[0].property_listing_id == market["in_city"].id
        events.on_matches_created.assert_awaited_once_with(
            market["tenant"].id, market["demand"].id,
        )

    async def test_kpis_invalidated_before_matches_updated(
        self, orchestrator, events, market,
    ):
        await orchestrator.on_demand_listing_changed(market["demand"].id)

        names = [c[0] for c in events.mock_calls]
        assert names == ["on_matches_created", "matches_updated"]

    async def test_client_repulling_on_matches_updated_sees_fresh_kpis(
        self, session_factory, market,
    ):
        tenant_id = market["tenant"].id
        counter = itertools.count(1)

        async def _compute(user_id):
            return KPISnapshot(
                user_id=user_id,
                messages_total=next(counter),
                computed_at=datetime.now(timezone.utc),
            )

        cache = KPICache(_compute)
        assert (await cache.get(tenant_id)).messages_total == 1

        seen = []
        gateway = MagicMock()
        gateway.is_user_connected.return_value = True

        async def _emit(user_id, event, data):
            if event == RealtimeEvent.MATCHES_UPDATED:
                seen.append((await cache.get(user_id)).messages_total)
            return 1

        gateway.emit_to_user = AsyncMock(side_effect=_emit)
        orchestrator = MatchOrchestrator(session_factory, DashboardEventService(cache, gateway))

        await orchestrator.on_demand_listing_changed(market["demand"].id)

        assert seen == [2]

    async def test_demand_moving_state_rescores_existing_matches(
        self, orchestrator, session_factory, market,
    ):
        demand_id = market["demand"].id
        await orchestrator.on_demand_listing_changed(demand_id)
        async with session_factory() as session:
            demand = await session.get(DemandListing, demand_id)
            demand.city, demand.state = "Denver", "CO"
            await session.commit()

        summary = await orchestrator.on_demand_listing_changed(demand_id)

        assert summary.pairs_scored == 3
        async with session_factory() as session:
            scores = {
                m.property_listing_id: m.location_score
                for m in await MatchStore(session).list_for_demand(demand_id)
            }
        assert scores[market["out_of_state"].id] == 100.0
        assert scores[market["in_city"].id] == 0.0
        assert scores[market["in_state"].id] == 0.0

    async def test_top_n_caps_notification_payload(
        self, session_factory, events, db_session, market, make_property,
    ):
        for _ in range(3):
            await make_property(market["landlord"])
        await db_session.commit()
        orchestrator = MatchOrchestrator(session_factory, events, top_n=2)

        await orchestrator.on_demand_listing_changed(market["demand"].id)

        _, _, matches = events.matches_updated.await_args.args
        assert len(matches) == 2

    async def test_rescore_updates_in_place(self, orchestrator, session_factory, market):
        demand_id = market["demand"].id
        await orchestrator.on_demand_listing_changed(demand_id)
        await orchestrator.on_demand_listing_changed(demand_id)

        assert await _match_count(session_factory) == 2

    async def test_inactive_demand_is_not_scored(
        self, orchestrator, events, db_session, market,
    ):
        market["demand"].status = "closed"
        await db_session.commit()

        summary = await orchestrator.on_demand_listing_changed(market["demand"].id)

        assert summary.pairs_scored == 0
        events.matches_updated.assert_not_awaited()

    async def test_unknown_demand_raises(self, orchestrator, events):
        with pytest.raises(ListingNotFoundError):
            await orchestrator.on_demand_listing_changed("does-not-exist")
        events.matches_updated.assert_not_awaited()

    async def test_vanished_candidate_is_skipped(
        self, orchestrator, monkeypatch, session_factory, market,
    ):
        real_upsert = MatchStore.upsert

        async def _flaky_upsert(self, demand_id, property_id, result):
            if property_id == market["in_state"].id:
                raise ListingNotFoundError("property", property_id)
            return await real_upsert(self, demand_id, property_id, result)

        monkeypatch.setattr(MatchStore, "upsert", _flaky_upsert)

        summary = await orchestrator.on_demand_listing_changed(market["demand"].id)

        assert summary.pairs_scored == 1
        assert summary.pairs_skipped == 1
        assert await _match_count(session_factory) == 1


# ---------------------------------------------------------------------------
# Property listing changes
# ---------------------------------------------------------------------------

class TestPropertyListingChanged:

    async def test_scores_against_active_demands_in_state(
        self, orchestrator, events, db_session, market, make_demand, make_user, make_business,
    ):
        other_tenant = await make_user(name="Other Tenant")
        other_demand = await make_demand(await make_business(other_tenant), city="Houston")
        await make_demand(market["business"], status="closed")
        await db_session.commit()

        summary = await orchestrator.on_property_listing_changed(market["in_city"].id)

        assert summary.pairs_scored == 2
        assert set(summary.notified_users) == {market["tenant"].id, other_tenant.id}
        notified_demands = {c.args[1] for c in events.matches_updated.await_args_list}
        assert notified_demands == {market["demand"].id, other_demand.id}

    async def test_rescore_keeps_saved_flag(
        self, orchestrator, session_factory, market,
    ):
        await orchestrator.on_demand_listing_changed(market["demand"].id)
        async with session_factory() as session:
            store = MatchStore(session)
            [match] = [
                m for m in await store.list_for_demand(market["demand"].id)
                if m.property_listing_id == market["in_city"].id
            ]
            old_score = match.match_score
            await store.mark_saved(match.id)
            prop = await session.get(PropertyListing, market["in_city"].id)
            prop.asking_price = 9000
            await session.commit()

        await orchestrator.on_property_listing_changed(market["in_city"].id)

        async with session_factory() as session:
            refreshed = await MatchStore(session).get(match.id)
        assert refreshed.is_saved is True
        assert refreshed.match_score < old_score

    async def test_non_active_property_is_treated_as_retired(
        self, orchestrator, events, session_factory, market,
    ):
        await orchestrator.on_demand_listing_changed(market["demand"].id)
        events.reset_mock()
        async with session_factory() as session:
            prop = await session.get(PropertyListing, market["in_city"].id)
            prop.status = "off_market"
            await session.commit()

        summary = await orchestrator.on_property_listing_changed(market["in_city"].id)

        assert summary.trigger == "property_listing_retired"
        assert summary.pairs_scored == 0
        assert summary.notified_users == [market["tenant"].id]
        _, _, matches = events.matches_updated.await_args.args
        assert market["in_city"].id not in [m.property_listing_id for m in matches]
        # rows are kept
        assert await _match_count(session_factory) == 2

    async def test_property_moving_state_rescores_existing_matches(
        self, orchestrator, events, session_factory, market,
    ):
        demand_id = market["demand"].id
        await orchestrator.on_demand_listing_changed(demand_id)
        async with session_factory() as session:
            prop = await session.get(PropertyListing, market["in_city"].id)
            prop.city, prop.state = "Denver", "CO"
            await session.commit()
        events.reset_mock()

        summary = await orchestrator.on_property_listing_changed(market["in_city"].id)

        assert summary.pairs_scored == 1
        assert summary.notified_users == [market["tenant"].id]
        async with session_factory() as session:
            [moved] = [
                m for m in await MatchStore(session).list_for_demand(demand_id)
                if m.property_listing_id == market["in_city"].id
            ]
        assert moved.location_score == 0.0
        assert moved.match_score < 100.0

    async def test_one_mutation_per_owner_across_demands(
        self, orchestrator, events, db_session, market, make_demand,
    ):
        second = await make_demand(market["business"], city="Houston")
        await db_session.commit()

        summary = await orchestrator.on_property_listing_changed(market["in_city"].id)

        assert summary.notified_users == [market["tenant"].id]
        events.on_matches_created.assert_awaited_once()
        user_id, *demand_ids = events.on_matches_created.await_args.args
        assert user_id == market["tenant"].id
        assert set(demand_ids) == {market["demand"].id, second.id}
        assert events.matches_updated.await_count == 2

    async def test_unknown_property_raises(self, orchestrator):
        with pytest.raises(ListingNotFoundError):
            await orchestrator.on_property_listing_changed("does-not-exist")


class TestPropertyListingRetired:

    async def test_dismissed_matches_do_not_notify(
        self, orchestrator, events, session_factory, market,
    ):
        await orchestrator.on_demand_listing_changed(market["demand"].id)
        async with session_factory() as session:
            store = MatchStore(session)
            for match in await store.list_for_demand(market["demand"].id):
                if match.property_listing_id == market["in_state"].id:
                    await store.mark_dismissed(match.id)
            await session.commit()
        events.reset_mock()

        summary = await orchestrator.on_property_listing_retired(market["in_state"].id)

        assert summary.notified_users == []
        events.matches_updated.assert_not_awaited()


# ---------------------------------------------------------------------------
# Full refresh
# ---------------------------------------------------------------------------

class TestRefreshAll:

    async def test_refreshes_every_active_demand(
        self, orchestrator, db_session, market, make_demand,
    ):
        await make_demand(market["business"], city="Houston")
        await make_demand(market["business"], status="pending")
        await db_session.commit()

        summary = await orchestrator.refresh_all_matches()

        assert summary.pairs_scored == 4
        assert summary.failed_listings == 0
        assert summary.notified_users == [market["tenant"].id]

    async def test_one_failure_does_not_stop_the_rest(
        self, orchestrator, monkeypatch, db_session, market, make_demand,
    ):
        await make_demand(market["business"], city="Houston")
        await db_session.commit()
        real = orchestrator.on_demand_listing_changed

        async def _sometimes_fails(demand_id):
            if demand_id == market["demand"].id:
                raise RuntimeError("boom")
            return await real(demand_id)

        monkeypatch.setattr(orchestrator, "on_demand_listing_changed", _sometimes_fails)

        summary = await orchestrator.refresh_all_matches()

        assert summary.failed_listings == 1
        assert summary.pairs_scored == 2
