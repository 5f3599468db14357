"""Dashboard routes: KPI cards."""

from fastapi import APIRouter, Depends

from leasehub.app.deps import get_current_user_dep, get_kpi_cache
from leasehub.domain.models import User
from leasehub.services.kpi_cache import KPICache

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/kpis")
async def get_dashboard_kpis(
    user: User = Depends(get_current_user_dep),
    kpi_cache: KPICache = Depends(get_kpi_cache),
):
    """Current user's KPI snapshot, from cache when fresh."""
    snapshot = await kpi_cache.get(user.id)
    return snapshot.to_payload()
