"""Match Store: persistence for scored demand/property pairs.

One ``PropertyMatch`` row per (demand_listing_id, property_listing_id).
Rescoring goes through a single ``INSERT ... ON CONFLICT DO UPDATE`` so two
writers racing on the same pair converge on one row (last writer wins on
the score columns).  The conflict branch never touches the tenant
interaction columns, so a rescore can't erase viewed/saved/dismissed
history.

Methods flush but do not commit; the caller owns the transaction.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from leasehub.domain.enums import PropertyListingStatus
from leasehub.domain.errors import ListingNotFoundError, MatchNotFoundError
from leasehub.domain.models import (
    Business,
    DemandListing,
    PropertyListing,
    PropertyMatch,
)
from leasehub.domain.schemas import MatchDetails, MatchResponse, PropertySummary
from leasehub.services.match_scorer import MatchResult

logger = logging.getLogger(__name__)

# Columns rewritten on every rescore; interaction flags are never in this set.
SCORE_COLUMNS = (
    "match_score",
    "location_score",
    "sqft_score",
    "price_score",
    "asset_type_score",
    "amenities_score",
    "match_details",
)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _score_values(result: MatchResult) -> dict:
    return {
        "match_score": result.match_score,
        "location_score": result.location_score,
        "sqft_score": result.sqft_score,
        "price_score": result.price_score,
        "asset_type_score": result.asset_type_score,
        "amenities_score": result.amenities_score,
        "match_details": result.match_details.model_dump(),
    }


class MatchStore:
    """Reads and writes ``PropertyMatch`` rows on a caller-owned session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(
        self, demand_id: str, property_id: str, result: MatchResult,
    ) -> PropertyMatch:
        """Insert the pair or rewrite its score columns.

        Raises:
            ListingNotFoundError: if either listing id does not resolve.
        """
        if await self.session.get(DemandListing, demand_id) is None:
            raise ListingNotFoundError("demand", demand_id)
        if await self.session.get(PropertyListing, property_id) is None:
            raise ListingNotFoundError("property", property_id)

        dialect = self.session.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Match upsert is not supported on dialect {dialect!r}")

        now = _utcnow()
        values = _score_values(result)
        stmt = insert(PropertyMatch).values(
            id=str(uuid.uuid4()),
            demand_listing_id=demand_id,
            property_listing_id=property_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                PropertyMatch.demand_listing_id,
                PropertyMatch.property_listing_id,
            ],
            set_={
                **{col: getattr(stmt.excluded, col) for col in SCORE_COLUMNS},
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

        row = await self.session.execute(
            select(PropertyMatch)
            .where(
                PropertyMatch.demand_listing_id == demand_id,
                PropertyMatch.property_listing_id == property_id,
            )
            .execution_options(populate_existing=True)
        )
        match = row.scalar_one()
        logger.debug(
            "Upserted match %s (%s x %s) score=%.2f",
            match.id, demand_id, property_id, result.match_score,
        )
        return match

    async def mark_viewed(self, match_id: str) -> PropertyMatch:
        return await self._set_flag(match_id, "is_viewed", "viewed_at")

    async def mark_saved(self, match_id: str) -> PropertyMatch:
        return await self._set_flag(match_id, "is_saved", "saved_at")

    async def mark_dismissed(self, match_id: str) -> PropertyMatch:
        return await self._set_flag(match_id, "is_dismissed", "dismissed_at")

    async def unsave(self, match_id: str) -> PropertyMatch:
        """Clear the saved flag. No-op when the match is not saved."""
        match = await self.get(match_id)
        if match.is_saved:
            match.is_saved = False
            match.saved_at = None
            await self.session.flush()
        return match

    async def _set_flag(self, match_id: str, flag: str, stamp: str) -> PropertyMatch:
        """Set *flag* once; repeating the call keeps the first timestamp."""
        match = await self.get(match_id)
        if not getattr(match, flag):
            setattr(match, flag, True)
            setattr(match, stamp, _utcnow())
            await self.session.flush()
        return match

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, match_id: str) -> PropertyMatch:
        match = await self.session.get(PropertyMatch, match_id)
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    def _active_matches(self):
        """Base query: matches whose property is still active, property eager-loaded."""
        return (
            select(PropertyMatch)
            .join(PropertyListing, PropertyMatch.property_listing_id == PropertyListing.id)
            .where(PropertyListing.status == PropertyListingStatus.ACTIVE.value)
            .options(contains_eager(PropertyMatch.property_listing))
        )

    async def list_for_demand(
        self,
        demand_id: str,
        exclude_dismissed: bool = True,
        limit: Optional[int] = None,
    ) -> list[PropertyMatch]:
        """Ranked matches for one demand listing.

        Retired properties drop out here rather than by deleting rows.
        Equal scores surface the newer match first.
        """
        stmt = self._active_matches().where(PropertyMatch.demand_listing_id == demand_id)
        if exclude_dismissed:
            stmt = stmt.where(PropertyMatch.is_dismissed.is_(False))
        stmt = stmt.order_by(
            PropertyMatch.match_score.desc(),
            PropertyMatch.created_at.desc(),
            PropertyMatch.id.desc(),
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: str, limit: int = 10) -> list[PropertyMatch]:
        """Top non-dismissed matches across every demand listing the user owns."""
        stmt = (
            self._active_matches()
            .join(DemandListing, PropertyMatch.demand_listing_id == DemandListing.id)
            .join(Business, DemandListing.business_id == Business.id)
            .where(
                Business.user_id == user_id,
                PropertyMatch.is_dismissed.is_(False),
            )
            .order_by(
                PropertyMatch.match_score.desc(),
                PropertyMatch.created_at.desc(),
                PropertyMatch.id.desc(),
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_saved(self, user_id: str) -> list[PropertyMatch]:
        """Saved, non-dismissed matches, most recently saved first."""
        stmt = (
            select(PropertyMatch)
            .join(PropertyListing, PropertyMatch.property_listing_id == PropertyListing.id)
            .join(DemandListing, PropertyMatch.demand_listing_id == DemandListing.id)
            .join(Business, DemandListing.business_id == Business.id)
            .where(
                Business.user_id == user_id,
                PropertyMatch.is_saved.is_(True),
                PropertyMatch.is_dismissed.is_(False),
            )
            .options(contains_eager(PropertyMatch.property_listing))
            .order_by(PropertyMatch.saved_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def demand_ids_matched_to_property(
        self, property_id: str, include_dismissed: bool = False,
    ) -> list[str]:
        """Demand listings holding a match against *property_id*."""
        stmt = select(PropertyMatch.demand_listing_id).where(
            PropertyMatch.property_listing_id == property_id,
        )
        if not include_dismissed:
            stmt = stmt.where(PropertyMatch.is_dismissed.is_(False))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def property_ids_matched_to_demand(self, demand_id: str) -> list[str]:
        """Every property with a stored match for *demand_id*, dismissed or not."""
        result = await self.session.execute(
            select(PropertyMatch.property_listing_id).where(
                PropertyMatch.demand_listing_id == demand_id,
            )
        )
        return list(result.scalars().all())


def to_match_response(match: PropertyMatch) -> MatchResponse:
    """Serialize a match; the property summary is included only if already loaded."""
    prop = None
    if "property_listing" not in sa_inspect(match).unloaded and match.property_listing is not None:
        prop = PropertySummary.model_validate(match.property_listing)
    return MatchResponse(
        id=match.id,
        demand_listing_id=match.demand_listing_id,
        property_listing_id=match.property_listing_id,
        match_score=match.match_score,
        location_score=match.location_score,
        sqft_score=match.sqft_score,
        price_score=match.price_score,
        asset_type_score=match.asset_type_score,
        amenities_score=match.amenities_score,
        match_details=MatchDetails.model_validate(match.match_details or {}),
        is_viewed=match.is_viewed,
        is_saved=match.is_saved,
        is_dismissed=match.is_dismissed,
        viewed_at=match.viewed_at,
        saved_at=match.saved_at,
        dismissed_at=match.dismissed_at,
        created_at=match.created_at,
        updated_at=match.updated_at,
        property=prop,
    )
