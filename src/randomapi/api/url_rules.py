"""URL 替换规则 API."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from randomapi.api.deps import get_catalog, http_error, require_admin
from randomapi.core.catalog import CatalogService
from randomapi.core.errors import RandomAPIError
from randomapi.models.url_rule import URLReplaceRule

router = APIRouter(
    prefix="/api/admin/url-replace-rules",
    tags=["url-replace-rules"],
    dependencies=[Depends(require_admin)],
)


class RuleRequest(BaseModel):
    """替换规则，endpoint_id 为空表示全局规则."""

    name: str
    from_url: str
    to_url: str
    endpoint_id: int | None = None
    is_active: bool = True


def rule_to_dict(rule: URLReplaceRule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "endpoint_id": rule.endpoint_id,
        "from_url": rule.from_url,
        "to_url": rule.to_url,
        "is_active": rule.is_active,
        "created_at": rule.created_at.isoformat(),
        "updated_at": rule.updated_at.isoformat(),
    }


@router.get("")
async def list_rules(catalog: CatalogService = Depends(get_catalog)) -> dict:
    """获取所有替换规则."""
    rules = await catalog.list_rules()
    return {"total": len(rules), "items": [rule_to_dict(rule) for rule in rules]}


@router.post("", status_code=201)
async def create_rule(
    request: RuleRequest,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """创建替换规则."""
    try:
        rule = await catalog.create_rule(**request.model_dump())
    except RandomAPIError as e:
        raise http_error(e) from e
    return rule_to_dict(rule)


@router.put("/{rule_id}")
async def update_rule(
    rule_id: int,
    request: RuleRequest,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """更新替换规则."""
    try:
        rule = await catalog.update_rule(rule_id, **request.model_dump())
    except RandomAPIError as e:
        raise http_error(e) from e
    return rule_to_dict(rule)


@router.delete("/{rule_id}")
async def delete_rule(
    rule_id: int,
    catalog: CatalogService = Depends(get_catalog),
) -> dict:
    """删除替换规则."""
    try:
        await catalog.delete_rule(rule_id)
    except RandomAPIError as e:
        raise http_error(e) from e
    return {"success": True}
