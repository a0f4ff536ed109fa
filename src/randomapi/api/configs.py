"""通用配置 API（首页内容等）."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from randomapi.api.deps import require_admin
from randomapi.models.database import get_session
from randomapi.models.settings import ConfigItem
from randomapi.utils.timeutil import utcnow

router = APIRouter(
    prefix="/api/admin/configs",
    tags=["configs"],
    dependencies=[Depends(require_admin)],
)


class ConfigRequest(BaseModel):
    """配置项."""

    key: str
    value: str = ""
    type: Literal["string", "json", "number", "boolean"] = "string"


def config_to_dict(item: ConfigItem) -> dict:
    return {
        "key": item.key,
        "value": item.value,
        "type": item.type,
        "updated_at": item.updated_at.isoformat(),
    }


@router.get("")
async def list_configs(session: AsyncSession = Depends(get_session)) -> dict:
    """获取所有配置项."""
    result = await session.execute(select(ConfigItem).order_by(col(ConfigItem.key)))
    items = result.scalars().all()
    return {"total": len(items), "items": [config_to_dict(item) for item in items]}


@router.post("")
async def upsert_config(
    request: ConfigRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """创建或更新配置项."""
    key = request.key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="配置键不能为空")

    item = await session.get(ConfigItem, key)
    if item is None:
        item = ConfigItem(key=key)
        session.add(item)
    item.value = request.value
    item.type = request.type
    item.updated_at = utcnow()

    await session.commit()
    return config_to_dict(item)


@router.delete("/{key}")
async def delete_config(
    key: str,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """删除配置项."""
    item = await session.get(ConfigItem, key)
    if item is None:
        raise HTTPException(status_code=404, detail="配置项不存在")

    await session.delete(item)
    await session.commit()
    return {"success": True}
