"""FastAPI dependencies: current user, role checks and the service singletons."""

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leasehub.app.config import get_settings
from leasehub.domain.enums import UserRole
from leasehub.domain.models import User
from leasehub.infra.database import async_session, get_db
from leasehub.services.auth_service import decode_token
from leasehub.services.dashboard_events import DashboardEventService
from leasehub.services.kpi_cache import KPICache, build_kpi_store
from leasehub.services.kpi_service import KPIService
from leasehub.services.match_orchestrator import MatchOrchestrator
from leasehub.services.match_scorer import scoring_config_from_settings
from leasehub.services.realtime_gateway import RealtimeGateway

logger = logging.getLogger(__name__)


async def get_current_user_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency: extract current user from Bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def require_role(*roles: UserRole):
    """Dependency factory: the current user, or 403 unless their role is in *roles*."""
    allowed = {role.value for role in roles}

    async def _require(user: User = Depends(get_current_user_dep)) -> User:
        if user.role not in allowed:
            logger.info("User %s (%s) denied; needs one of %s", user.id, user.role, sorted(allowed))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _require


# ---------------------------------------------------------------------------
# Service singletons (one per process)
# ---------------------------------------------------------------------------


@lru_cache
def get_kpi_cache() -> KPICache:
    settings = get_settings()
    kpi_service = KPIService(async_session, settings.kpi_response_rate_formula)
    return KPICache(
        kpi_service.compute,
        store=build_kpi_store(settings),
        ttl_seconds=settings.kpi_cache_ttl_seconds,
    )


@lru_cache
def get_gateway() -> RealtimeGateway:
    settings = get_settings()
    return RealtimeGateway(
        get_kpi_cache(),
        async_session,
        pull_timeout_seconds=settings.realtime_pull_timeout_seconds,
        top_n=settings.match_notification_top_n,
    )


@lru_cache
def get_event_service() -> DashboardEventService:
    return DashboardEventService(get_kpi_cache(), get_gateway())


@lru_cache
def get_orchestrator() -> MatchOrchestrator:
    settings = get_settings()
    return MatchOrchestrator(
        async_session,
        get_event_service(),
        config=scoring_config_from_settings(settings),
        top_n=settings.match_notification_top_n,
    )
