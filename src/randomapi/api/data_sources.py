"""数据源管理 API."""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from randomapi.api.deps import get_catalog, http_error, require_admin
from randomapi.core.catalog import CatalogService
from randomapi.core.errors import FieldPathError, RandomAPIError
from randomapi.core.field_path import DEFAULT_URL_FIELD, collect, parse_json_response
from randomapi.core.source_config import (
    ManualConfig,
    manual_config_to_text,
    manual_text_to_config,
)
from randomapi.core.sync import SyncService, get_sync_service
from randomapi.models.data_source import DataSource

router = APIRouter(
    prefix="/api/admin/data-sources",
    tags=["data-sources"],
    dependencies=[Depends(require_admin)],
)


class DataSourceUpdate(BaseModel):
    """更新数据源请求（未传入的字段保持不变）."""

    name: str | None = None
    type: str | None = None
    config: str | dict[str, Any] | None = None
    cache_duration: int | None = None
    is_active: bool | None = None


class ManualTextRequest(BaseModel):
    text: str


class ManualFormatRequest(BaseModel):
    urls: list[str]


class FieldPathTestRequest(BaseModel):
    """字段路径预览请求: response 为原始 JSON 文本."""

    response: str
    url_field: str = DEFAULT_URL_FIELD


def data_source_to_dict(source: DataSource) -> dict:
    try:
        config: Any = json.loads(source.config)
    except ValueError:
        config = source.config
    return {
        "id": source.id,
        "endpoint_id": source.endpoint_id,
        "name": source.name,
        "type": source.type,
        "config": config,
        "cache_duration": source.cache_duration,
        "is_active": source.is_active,
        "last_sync": source.last_sync.isoformat() if source.last_sync else None,
        "created_at": source.created_at.isoformat(),
        "updated_at": source.updated_at.isoformat(),
    }


@router.post("/manual/parse")
async def parse_manual_text(request: ManualTextRequest) -> dict:
    """将多行文本转换为手动数据源配置."""
    config = manual_text_to_config(request.text)
    return {"config": config.model_dump(), "count": len(config.urls)}


@router.post("/manual/format")
async def format_manual_config(request: ManualFormatRequest) -> dict:
    """将手动数据源配置还原为多行文本."""
    config = ManualConfig(urls=request.urls)
    return {"text": manual_config_to_text(config)}


@router.post("/field-path/test")
async def test_field_path(request: FieldPathTestRequest) -> dict:
    """用示例响应预览字段路径能提取到的 URL."""
    try:
        data = parse_json_response(request.response)
        urls = collect(data, request.url_field)
    except FieldPathError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"urls": urls, "count": len(urls)}


@router.get("/{data_source_id}")
async def get_data_source(
    data_source_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """获取数据源详情."""
    try:
        source = await catalog.get_data_source(data_source_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return data_source_to_dict(source)


@router.put("/{data_source_id}")
async def update_data_source(
    data_source_id: int,
    request: DataSourceUpdate,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """更新数据源（配置按类型重新校验）."""
    fields = request.model_dump(exclude_unset=True)
    if fields.get("config") is None:
        fields.pop("config", None)
    try:
        source = await catalog.update_data_source(data_source_id, **fields)
    except RandomAPIError as e:
        raise http_error(e) from e
    return data_source_to_dict(source)


@router.delete("/{data_source_id}")
async def delete_data_source(
    data_source_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """删除数据源."""
    try:
        await catalog.delete_data_source(data_source_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {"success": True}


@router.post("/{data_source_id}/sync")
async def sync_data_source(
    data_source_id: int,
    sync_service: SyncService = Depends(get_sync_service),
) -> dict:
    """立即同步数据源."""
    try:
        result = await sync_service.sync_now(data_source_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {
        "success": result.succeeded,
        "status": result.status,
        "url_count": len(result.urls),
    }


@router.get("/{data_source_id}/sync-runs")
async def list_sync_runs(
    data_source_id: int,
    limit: int = Query(20, ge=1, le=100),
    sync_service: SyncService = Depends(get_sync_service),
) -> dict:
    """获取最近的同步记录."""
    runs = await sync_service.list_runs(data_source_id, limit=limit)
    return {
        "total": len(runs),
        "items": [
            {
                "id": run.id,
                "trigger": run.trigger,
                "status": run.status,
                "url_count": run.url_count,
                "error_message": run.error_message,
                "started_at": run.started_at.isoformat(),
                "completed_at": run.completed_at.isoformat() if run.completed_at else None,
            }
            for run in runs
        ],
    }
