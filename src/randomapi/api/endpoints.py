"""端点管理 API."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from randomapi.api.deps import get_catalog, http_error, require_admin
from randomapi.api.data_sources import data_source_to_dict
from randomapi.core.catalog import CatalogService
from randomapi.core.errors import RandomAPIError
from randomapi.models.endpoint import Endpoint

router = APIRouter(
    prefix="/api/admin/endpoints",
    tags=["endpoints"],
    dependencies=[Depends(require_admin)],
)


class EndpointCreate(BaseModel):
    """创建端点请求."""

    name: str
    url: str
    description: str = ""
    is_active: bool = True
    show_on_homepage: bool = True


class EndpointUpdate(BaseModel):
    """更新端点请求（未传入的字段保持不变）."""

    name: str | None = None
    url: str | None = None
    description: str | None = None
    is_active: bool | None = None
    show_on_homepage: bool | None = None


class EndpointOrder(BaseModel):
    id: int
    sort_order: int


class SortOrderRequest(BaseModel):
    """批量排序请求."""

    endpoint_orders: list[EndpointOrder] = Field(default_factory=list)


class DataSourceCreate(BaseModel):
    """创建数据源请求."""

    name: str
    type: str
    config: str | dict[str, Any]
    cache_duration: int | None = None
    is_active: bool = True


def endpoint_to_dict(endpoint: Endpoint) -> dict:
    return {
        "id": endpoint.id,
        "name": endpoint.name,
        "url": endpoint.url,
        "description": endpoint.description,
        "is_active": endpoint.is_active,
        "show_on_homepage": endpoint.show_on_homepage,
        "sort_order": endpoint.sort_order,
        "created_at": endpoint.created_at.isoformat(),
        "updated_at": endpoint.updated_at.isoformat(),
    }


@router.get("")
async def list_endpoints(catalog: CatalogService = Depends(get_catalog)) -> dict:
    """获取所有端点（按排序）."""
    endpoints = await catalog.list_endpoints()
    return {
        "total": len(endpoints),
        "items": [endpoint_to_dict(endpoint) for endpoint in endpoints],
    }


@router.post("", status_code=201)
async def create_endpoint(
    request: EndpointCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """创建端点."""
    try:
        endpoint = await catalog.create_endpoint(
            name=request.name,
            url=request.url,
            description=request.description,
            is_active=request.is_active,
            show_on_homepage=request.show_on_homepage,
        )
    except RandomAPIError as e:
        raise http_error(e) from e
    return endpoint_to_dict(endpoint)


# 注意: 必须在 /{endpoint_id} 之前注册
@router.put("/sort-order")
async def update_sort_order(
    request: SortOrderRequest,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """批量更新端点排序（整批成功或整批失败）."""
    orders = [(item.id, item.sort_order) for item in request.endpoint_orders]
    try:
        await catalog.reorder_endpoints(orders)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {"success": True, "updated": len(orders)}


@router.get("/{endpoint_id}")
async def get_endpoint(
    endpoint_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """获取端点详情."""
    try:
        endpoint = await catalog.get_endpoint(endpoint_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return endpoint_to_dict(endpoint)


@router.put("/{endpoint_id}")
async def update_endpoint(
    endpoint_id: int,
    request: EndpointUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """更新端点."""
    try:
        endpoint = await catalog.update_endpoint(
            endpoint_id, **request.model_dump(exclude_unset=True)
        )
    except RandomAPIError as e:
        raise http_error(e) from e
    return endpoint_to_dict(endpoint)


@router.delete("/{endpoint_id}")
async def delete_endpoint(
    endpoint_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """删除端点及其全部数据源."""
    try:
        await catalog.delete_endpoint(endpoint_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {"success": True}


@router.get("/{endpoint_id}/data-sources")
async def list_data_sources(
    endpoint_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """获取端点的数据源."""
    try:
        sources = await catalog.list_data_sources(endpoint_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {
        "total": len(sources),
        "items": [data_source_to_dict(source) for source in sources],
    }


@router.post("/{endpoint_id}/data-sources", status_code=201)
async def create_data_source(
    endpoint_id: int,
    request: DataSourceCreate,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """为端点添加数据源."""
    try:
        source = await catalog.create_data_source(
            endpoint_id=endpoint_id,
            name=request.name,
            type=request.type,
            config=request.config,
            cache_duration=request.cache_duration,
            is_active=request.is_active,
        )
    except RandomAPIError as e:
        raise http_error(e) from e
    return data_source_to_dict(source)
