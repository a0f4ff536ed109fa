"""公开 API 与随机跳转."""

import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from randomapi.api.deps import get_catalog, get_resolver, http_error
from randomapi.core.catalog import CatalogService
from randomapi.core.errors import RandomAPIError
from randomapi.core.resolver import EndpointResolver
from randomapi.core.stats import StatsService
from randomapi.models.database import get_session
from randomapi.models.settings import ConfigItem

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])

# 跳转路由会匹配所有路径，必须最后注册
redirect_router = APIRouter(tags=["redirect"])

HOMEPAGE_CONFIG_KEY = "homepage_content"


@router.get("/api/endpoints")
async def list_public_endpoints(catalog: CatalogService = Depends(get_catalog)) -> dict:
    """首页展示的端点列表."""
    endpoints = await catalog.list_endpoints(active_only=True)
    items = [
        {
            "id": endpoint.id,
            "name": endpoint.name,
            "url": endpoint.url,
            "description": endpoint.description,
        }
        for endpoint in endpoints
        if endpoint.show_on_homepage
    ]
    return {"total": len(items), "items": items}


@router.get("/api/home-config")
async def get_home_config(session: AsyncSession = Depends(get_session)) -> dict:
    """首页内容配置."""
    item = await session.get(ConfigItem, HOMEPAGE_CONFIG_KEY)
    return {"content": item.value if item else ""}


@redirect_router.get("/{endpoint_url:path}")
async def random_redirect(
    endpoint_url: str,
    referer: str | None = Header(default=None),
    resolver: EndpointResolver = Depends(get_resolver),
    session: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """解析端点并 302 跳转到随机选出的 URL."""
    try:
        url = await resolver.resolve(endpoint_url)
    except RandomAPIError as e:
        logger.info(f"解析端点 {endpoint_url!r} 失败: {e}")
        raise http_error(e, cyclic_status=508) from e

    # 统计失败不影响跳转
    try:
        await StatsService(session).record_call(endpoint_url.strip().strip("/"), referer)
    except SQLAlchemyError as e:
        logger.warning(f"记录端点 {endpoint_url!r} 调用统计失败: {e}")

    return RedirectResponse(
        url=url,
        status_code=302,
        headers={"Cache-Control": "no-store"},
    )
