"""Read-side repositories over the CRUD layer's tables.

The matching core never writes listings, businesses or metrics; it reads
them through these two classes so the orchestrator and KPI service can be
exercised against any ``AsyncSession``.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leasehub.domain.enums import (
    BusinessStatus,
    DemandListingStatus,
    PropertyListingStatus,
)
from leasehub.domain.models import (
    Business,
    BusinessMetrics,
    DemandListing,
    PropertyListing,
    User,
)


def _norm_state(state: str | None) -> str:
    return (state or "").strip().lower()


class ListingRepository:
    """Demand and property listing lookups used by the matching pipeline."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_demand_listing(self, demand_id: str) -> DemandListing | None:
        return await self.session.get(DemandListing, demand_id)

    async def get_property_listing(self, property_id: str) -> PropertyListing | None:
        return await self.session.get(PropertyListing, property_id)

    async def list_active_properties_by_state(self, state: str | None) -> list[PropertyListing]:
        """Active properties in *state* (case-insensitive). Empty state matches nothing."""
        wanted = _norm_state(state)
        if not wanted:
            return []
        result = await self.session.execute(
            select(PropertyListing).where(
                PropertyListing.status == PropertyListingStatus.ACTIVE.value,
                func.lower(func.trim(PropertyListing.state)) == wanted,
            )
        )
        return list(result.scalars().all())

    async def list_active_demands_by_state(self, state: str | None) -> list[DemandListing]:
        """Active demand listings in *state* (case-insensitive)."""
        wanted = _norm_state(state)
        if not wanted:
            return []
        result = await self.session.execute(
            select(DemandListing).where(
                DemandListing.status == DemandListingStatus.ACTIVE.value,
                func.lower(func.trim(DemandListing.state)) == wanted,
            )
        )
        return list(result.scalars().all())

    async def list_active_properties(self, property_ids: list[str]) -> list[PropertyListing]:
        """Active properties among *property_ids*, whatever their state."""
        if not property_ids:
            return []
        result = await self.session.execute(
            select(PropertyListing).where(
                PropertyListing.id.in_(property_ids),
                PropertyListing.status == PropertyListingStatus.ACTIVE.value,
            )
        )
        return list(result.scalars().all())

    async def list_active_demands(self, demand_ids: list[str]) -> list[DemandListing]:
        if not demand_ids:
            return []
        result = await self.session.execute(
            select(DemandListing).where(
                DemandListing.id.in_(demand_ids),
                DemandListing.status == DemandListingStatus.ACTIVE.value,
            )
        )
        return list(result.scalars().all())

    async def list_active_demand_ids(self) -> list[str]:
        result = await self.session.execute(
            select(DemandListing.id).where(
                DemandListing.status == DemandListingStatus.ACTIVE.value
            )
        )
        return list(result.scalars().all())

    async def owner_user_id_for_demand(self, demand_id: str) -> str | None:
        """User who owns the business behind a demand listing."""
        result = await self.session.execute(
            select(Business.user_id)
            .join(DemandListing, DemandListing.business_id == Business.id)
            .where(DemandListing.id == demand_id)
        )
        return result.scalar_one_or_none()

    async def owner_user_ids_for_demands(self, demand_ids: list[str]) -> dict[str, str]:
        """Map demand listing id -> owning user id, in one round trip."""
        if not demand_ids:
            return {}
        result = await self.session.execute(
            select(DemandListing.id, Business.user_id)
            .join(Business, DemandListing.business_id == Business.id)
            .where(DemandListing.id.in_(demand_ids))
        )
        return {demand_id: user_id for demand_id, user_id in result.all()}


class MetricsRepository:
    """Aggregate reads feeding the dashboard KPIs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def count_active_businesses(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Business.id)).where(
                Business.user_id == user_id,
                Business.status == BusinessStatus.ACTIVE.value,
            )
        )
        return int(result.scalar_one() or 0)

    async def sum_business_metrics(self, user_id: str) -> dict[str, int]:
        """Summed view/message/invite counters across the user's businesses."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(BusinessMetrics.views_count), 0),
                func.coalesce(func.sum(BusinessMetrics.messages_count), 0),
                func.coalesce(func.sum(BusinessMetrics.property_invites_count), 0),
            )
            .join(Business, BusinessMetrics.business_id == Business.id)
            .where(Business.user_id == user_id)
        )
        views, messages, invites = result.one()
        return {
            "views": int(views or 0),
            "messages": int(messages or 0),
            "invites": int(invites or 0),
        }
