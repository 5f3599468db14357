"""Matching routes: rescoring triggers, ranked match lists, match interactions."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from leasehub.app.deps import get_current_user_dep, get_orchestrator, require_role
from leasehub.domain.enums import UserRole
from leasehub.domain.errors import ListingNotFoundError, MatchNotFoundError
from leasehub.domain.models import User
from leasehub.domain.schemas import MatchResponse, RescoreResponse
from leasehub.infra.database import get_db
from leasehub.infra.repositories import ListingRepository
from leasehub.services.match_orchestrator import MatchOrchestrator
from leasehub.services.match_store import MatchStore, to_match_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/matching", tags=["matching"])


def _is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


async def _require_demand_access(db: AsyncSession, demand_id: str, user: User) -> None:
    """404 for unknown demand listings, 403 when *user* does not own it."""
    listings = ListingRepository(db)
    if await listings.get_demand_listing(demand_id) is None:
        raise HTTPException(status_code=404, detail="Demand listing not found")
    if _is_admin(user):
        return
    if await listings.owner_user_id_for_demand(demand_id) != user.id:
        raise _forbidden()


async def _get_owned_match(db: AsyncSession, match_id: str, user: User):
    store = MatchStore(db)
    try:
        match = await store.get(match_id)
    except MatchNotFoundError:
        raise HTTPException(status_code=404, detail="Match not found")
    await _require_demand_access(db, match.demand_listing_id, user)
    return store, match


# ---------------------------------------------------------------------------
# Rescoring triggers
# ---------------------------------------------------------------------------


@router.post("/demand-listings/{demand_id}/rescore", response_model=RescoreResponse)
async def rescore_demand_listing(
    demand_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Rescore one demand listing against active properties in its state."""
    await _require_demand_access(db, demand_id, user)
    try:
        summary = await orchestrator.on_demand_listing_changed(demand_id)
    except ListingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RescoreResponse(**summary.to_dict())


@router.post("/property-listings/{property_id}/rescore", response_model=RescoreResponse)
async def rescore_property_listing(
    property_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Rescore a property listing; a retired property notifies matched owners."""
    prop = await ListingRepository(db).get_property_listing(property_id)
    if prop is None:
        raise HTTPException(status_code=404, detail="Property listing not found")
    if prop.user_id != user.id and not _is_admin(user):
        raise _forbidden()
    try:
        summary = await orchestrator.on_property_listing_changed(property_id)
    except ListingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RescoreResponse(**summary.to_dict())


@router.post("/refresh", response_model=RescoreResponse)
async def refresh_all_matches(
    user: User = Depends(require_role(UserRole.ADMIN)),
    orchestrator: MatchOrchestrator = Depends(get_orchestrator),
):
    """Admin only: rescore every active demand listing."""
    logger.info("Full match refresh requested by %s", user.id)
    summary = await orchestrator.refresh_all_matches()
    return RescoreResponse(**summary.to_dict())


# ---------------------------------------------------------------------------
# Match lists
# ---------------------------------------------------------------------------


@router.get("/demand-listings/{demand_id}/matches", response_model=list[MatchResponse])
async def list_demand_matches(
    demand_id: str,
    include_dismissed: bool = False,
    limit: int | None = Query(None, ge=1, le=100),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    await _require_demand_access(db, demand_id, user)
    matches = await MatchStore(db).list_for_demand(
        demand_id, exclude_dismissed=not include_dismissed, limit=limit,
    )
    return [to_match_response(m) for m in matches]


@router.get("/matches", response_model=list[MatchResponse])
async def list_my_matches(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Top matches across all of the current user's demand listings."""
    matches = await MatchStore(db).list_for_user(user.id, limit=limit)
    return [to_match_response(m) for m in matches]


@router.get("/saved", response_model=list[MatchResponse])
async def list_saved_matches(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    matches = await MatchStore(db).list_saved(user.id)
    return [to_match_response(m) for m in matches]


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


@router.post("/matches/{match_id}/view", response_model=MatchResponse)
async def view_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    store, _ = await _get_owned_match(db, match_id, user)
    match = await store.mark_viewed(match_id)
    await db.commit()
    return to_match_response(match)


@router.post("/matches/{match_id}/save", response_model=MatchResponse)
async def save_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    store, _ = await _get_owned_match(db, match_id, user)
    match = await store.mark_saved(match_id)
    await db.commit()
    return to_match_response(match)


@router.delete("/matches/{match_id}/save", response_model=MatchResponse)
async def unsave_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    store, _ = await _get_owned_match(db, match_id, user)
    match = await store.unsave(match_id)
    await db.commit()
    return to_match_response(match)


@router.post("/matches/{match_id}/dismiss", response_model=MatchResponse)
async def dismiss_match(
    match_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    store, _ = await _get_owned_match(db, match_id, user)
    match = await store.mark_dismissed(match_id)
    await db.commit()
    logger.info("User %s dismissed match %s", user.id, match_id)
    return to_match_response(match)
