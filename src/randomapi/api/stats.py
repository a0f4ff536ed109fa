"""请求统计 API."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from randomapi.api.deps import require_admin
from randomapi.core.stats import StatsService
from randomapi.models.database import get_session

router = APIRouter(tags=["stats"])

admin_router = APIRouter(
    prefix="/api/admin/domain-stats",
    tags=["stats"],
    dependencies=[Depends(require_admin)],
)


def get_stats_service(session: AsyncSession = Depends(get_session)) -> StatsService:
    return StatsService(session)


@router.get("/api/stats")
async def get_endpoint_stats(stats: StatsService = Depends(get_stats_service)) -> dict:
    """各端点的累计与当日调用次数."""
    return await stats.endpoint_stats()


@admin_router.get("")
async def get_domain_stats(stats: StatsService = Depends(get_stats_service)) -> dict:
    """访问最多的来源域名（最近 24 小时与累计）."""
    return {
        "top_24_hours": await stats.top_recent_domains(),
        "top_total": await stats.top_total_domains(),
    }
