"""目录服务 - 端点、数据源、替换规则的增删改查."""

import logging
from typing import Any

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from randomapi.config import get_settings
from randomapi.core.coordinator import SyncCoordinator, get_coordinator
from randomapi.core.errors import NotFoundError, ValidationError
from randomapi.core.pool import clear_pool
from randomapi.core.source_config import (
    EndpointRefConfig,
    normalize_config,
    parse_config,
    to_source_type,
)
from randomapi.models.cached_url import CachedURL
from randomapi.models.data_source import DataSource
from randomapi.models.endpoint import Endpoint
from randomapi.models.sync import SyncRun
from randomapi.models.url_rule import URLReplaceRule
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

# 这些路径前缀被应用自身的路由占用
RESERVED_PREFIXES = frozenset({"api", "admin", "health", "docs", "redoc", "openapi.json"})

_UNSET: Any = object()


def normalize_endpoint_url(url: str) -> str:
    """规范化端点路径: 去掉首尾空白和 /，拒绝空路径、空白字符与保留前缀."""
    normalized = url.strip().strip("/")
    if not normalized:
        msg = "端点路径不能为空"
        raise ValidationError(msg)
    if any(ch.isspace() for ch in normalized):
        msg = "端点路径不能包含空白字符"
        raise ValidationError(msg)
    segments = normalized.split("/")
    if any(not segment for segment in segments):
        msg = "端点路径不能包含连续的 /"
        raise ValidationError(msg)
    if segments[0].lower() in RESERVED_PREFIXES:
        msg = f"端点路径不能以保留前缀 {segments[0]!r} 开头"
        raise ValidationError(msg)
    return normalized


def _require_text(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        msg = f"{label}不能为空"
        raise ValidationError(msg)
    return value


class CatalogService:
    """
    管理端写操作.

    所有写操作在单个事务内完成；任何一步失败都会整体回滚，
    不会留下部分修改。
    """

    def __init__(
        self,
        session: AsyncSession,
        coordinator: SyncCoordinator | None = None,
    ) -> None:
        self.session = session
        self.coordinator = coordinator or get_coordinator()

    # ===== 端点 =====

    async def list_endpoints(self, active_only: bool = False) -> list[Endpoint]:
        """按 sort_order 升序列出端点."""
        stmt = select(Endpoint)
        if active_only:
            stmt = stmt.where(col(Endpoint.is_active).is_(True))
        stmt = stmt.order_by(col(Endpoint.sort_order), col(Endpoint.id))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_endpoint(self, endpoint_id: int) -> Endpoint:
        endpoint = await self.session.get(Endpoint, endpoint_id)
        if endpoint is None:
            msg = f"端点 {endpoint_id} 不存在"
            raise NotFoundError(msg)
        return endpoint

    async def get_endpoint_by_url(self, url: str) -> Endpoint | None:
        """按路径查找端点（路径先规范化）."""
        stmt = select(Endpoint).where(Endpoint.url == url.strip().strip("/"))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _check_endpoint_unique(
        self, name: str, url: str, exclude_id: int | None = None
    ) -> None:
        stmt = select(Endpoint).where(
            (Endpoint.name == name) | (Endpoint.url == url)
        )
        if exclude_id is not None:
            stmt = stmt.where(Endpoint.id != exclude_id)
        result = await self.session.execute(stmt)
        existing = result.scalars().first()
        if existing is None:
            return
        if existing.url == url:
            msg = f"端点路径 {url!r} 已被使用"
        else:
            msg = f"端点名称 {name!r} 已被使用"
        raise ValidationError(msg)

    async def create_endpoint(
        self,
        name: str,
        url: str,
        description: str = "",
        is_active: bool = True,
        show_on_homepage: bool = True,
    ) -> Endpoint:
        """创建端点，排在现有端点之后."""
        name = _require_text(name, "端点名称")
        url = normalize_endpoint_url(url)
        await self._check_endpoint_unique(name, url)

        result = await self.session.execute(select(func.max(Endpoint.sort_order)))
        max_order = result.scalar_one_or_none()

        endpoint = Endpoint(
            name=name,
            url=url,
            description=description.strip(),
            is_active=is_active,
            show_on_homepage=show_on_homepage,
            sort_order=0 if max_order is None else max_order + 1,
        )
        self.session.add(endpoint)
        await self.session.commit()
        await self.session.refresh(endpoint)

        logger.info(f"创建端点 {endpoint.id}: {endpoint.url}")
        return endpoint

    async def update_endpoint(
        self,
        endpoint_id: int,
        name: str | None = None,
        url: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        show_on_homepage: bool | None = None,
    ) -> Endpoint:
        """部分更新端点，未传入的字段保持不变."""
        endpoint = await self.get_endpoint(endpoint_id)

        new_name = _require_text(name, "端点名称") if name is not None else endpoint.name
        new_url = normalize_endpoint_url(url) if url is not None else endpoint.url
        if new_name != endpoint.name or new_url != endpoint.url:
            await self._check_endpoint_unique(new_name, new_url, exclude_id=endpoint_id)

        endpoint.name = new_name
        endpoint.url = new_url
        if description is not None:
            endpoint.description = description.strip()
        if is_active is not None:
            endpoint.is_active = is_active
        if show_on_homepage is not None:
            endpoint.show_on_homepage = show_on_homepage
        endpoint.updated_at = utcnow()

        await self.session.commit()
        await self.session.refresh(endpoint)
        return endpoint

    async def delete_endpoint(self, endpoint_id: int) -> None:
        """
        删除端点及其全部数据源.

        引用该端点的替换规则保留，但不再生效。
        正在进行的同步会被标记作废，结果不会写回。
        """
        await self.get_endpoint(endpoint_id)

        result = await self.session.execute(
            select(DataSource.id).where(DataSource.endpoint_id == endpoint_id)
        )
        source_ids = [source_id for source_id in result.scalars().all() if source_id is not None]

        try:
            if source_ids:
                await self.session.execute(
                    delete(CachedURL).where(col(CachedURL.data_source_id).in_(source_ids))
                )
                await self.session.execute(
                    delete(SyncRun).where(col(SyncRun.data_source_id).in_(source_ids))
                )
                await self.session.execute(
                    delete(DataSource).where(col(DataSource.id).in_(source_ids))
                )
            await self.session.execute(delete(Endpoint).where(Endpoint.id == endpoint_id))
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        for source_id in source_ids:
            self.coordinator.cancel(source_id)

        logger.info(f"删除端点 {endpoint_id}，同时删除 {len(source_ids)} 个数据源")

    def _apply_sort_order(self, endpoint: Endpoint, sort_order: int) -> None:
        endpoint.sort_order = sort_order
        endpoint.updated_at = utcnow()

    async def reorder_endpoints(self, orders: list[tuple[int, int]]) -> None:
        """
        批量调整端点顺序.

        整批校验后在一个事务内写入：ID 或位置重复、ID 不存在、
        与批次外端点的位置冲突都会拒绝整批；写入中途失败则全部回滚。
        """
        if not orders:
            return

        ids = [endpoint_id for endpoint_id, _ in orders]
        positions = [position for _, position in orders]
        if len(set(ids)) != len(ids):
            msg = "排序列表中存在重复的端点 ID"
            raise ValidationError(msg)
        if len(set(positions)) != len(positions):
            msg = "排序列表中存在重复的位置"
            raise ValidationError(msg)

        result = await self.session.execute(select(Endpoint))
        endpoints = {endpoint.id: endpoint for endpoint in result.scalars().all()}

        missing = [endpoint_id for endpoint_id in ids if endpoint_id not in endpoints]
        if missing:
            msg = f"端点不存在: {missing}"
            raise NotFoundError(msg)

        batch = set(ids)
        taken = {
            endpoint.sort_order
            for endpoint_id, endpoint in endpoints.items()
            if endpoint_id not in batch
        }
        conflicts = sorted(set(positions) & taken)
        if conflicts:
            msg = f"位置已被其他端点占用: {conflicts}"
            raise ValidationError(msg)

        try:
            for endpoint_id, position in orders:
                self._apply_sort_order(endpoints[endpoint_id], position)
                await self.session.flush()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception("端点排序写入失败，已回滚")
            raise

        logger.info(f"更新了 {len(orders)} 个端点的排序")

    # ===== 数据源 =====

    async def list_data_sources(self, endpoint_id: int) -> list[DataSource]:
        await self.get_endpoint(endpoint_id)
        stmt = (
            select(DataSource)
            .where(DataSource.endpoint_id == endpoint_id)
            .order_by(col(DataSource.id))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_data_source(self, data_source_id: int) -> DataSource:
        source = await self.session.get(DataSource, data_source_id)
        if source is None:
            msg = f"数据源 {data_source_id} 不存在"
            raise NotFoundError(msg)
        return source

    async def _check_references(self, source_type: str, config: str) -> None:
        """endpoint 类型的数据源只能引用已存在的端点."""
        if source_type != "endpoint":
            return
        ref = parse_config(source_type, config)
        if not isinstance(ref, EndpointRefConfig):
            return
        wanted = set(ref.endpoint_ids)
        result = await self.session.execute(
            select(Endpoint.id).where(col(Endpoint.id).in_(wanted))
        )
        found = set(result.scalars().all())
        missing = sorted(wanted - found)
        if missing:
            msg = f"引用的端点不存在: {missing}"
            raise ValidationError(msg)

    async def create_data_source(
        self,
        endpoint_id: int,
        name: str,
        type: str,
        config: str | dict[str, Any],
        cache_duration: int | None = None,
        is_active: bool = True,
    ) -> DataSource:
        """创建数据源，配置按类型校验后存储."""
        await self.get_endpoint(endpoint_id)
        name = _require_text(name, "数据源名称")
        source_type = to_source_type(type)
        normalized = normalize_config(source_type, config)
        await self._check_references(source_type, normalized)

        if cache_duration is None:
            cache_duration = get_settings().default_cache_duration
        if cache_duration < 0:
            msg = "缓存时长不能为负数"
            raise ValidationError(msg)

        source = DataSource(
            endpoint_id=endpoint_id,
            name=name,
            type=source_type.value,
            config=normalized,
            cache_duration=cache_duration,
            is_active=is_active,
        )
        self.session.add(source)
        await self.session.commit()
        await self.session.refresh(source)

        logger.info(f"端点 {endpoint_id} 新增 {source.type} 数据源 {source.id}")
        return source

    async def update_data_source(
        self,
        data_source_id: int,
        name: str | None = None,
        type: str | None = None,
        config: Any = _UNSET,
        cache_duration: int | None = None,
        is_active: bool | None = None,
    ) -> DataSource:
        """
        部分更新数据源.

        每次写入都按最终类型重新校验配置；类型或配置变化时清空候选池，
        last_sync 只由成功的同步更新。
        """
        source = await self.get_data_source(data_source_id)

        source_type = to_source_type(type) if type is not None else source.source_type
        raw_config = source.config if config is _UNSET else config
        normalized = normalize_config(source_type, raw_config)
        await self._check_references(source_type, normalized)

        content_changed = source_type.value != source.type or normalized != source.config
        new_name = _require_text(name, "数据源名称") if name is not None else source.name
        if cache_duration is not None and cache_duration < 0:
            msg = "缓存时长不能为负数"
            raise ValidationError(msg)

        source.name = new_name
        if cache_duration is not None:
            source.cache_duration = cache_duration
        if is_active is not None:
            source.is_active = is_active
        source.type = source_type.value
        source.config = normalized
        source.updated_at = utcnow()

        if content_changed:
            await clear_pool(self.session, data_source_id)
            source.pool_invalidated = True
            logger.info(f"数据源 {data_source_id} 配置已变更，候选池已清空")

        await self.session.commit()
        await self.session.refresh(source)
        return source

    async def delete_data_source(self, data_source_id: int) -> None:
        """删除数据源及其候选池和同步记录."""
        await self.get_data_source(data_source_id)
        try:
            await clear_pool(self.session, data_source_id)
            await self.session.execute(
                delete(SyncRun).where(SyncRun.data_source_id == data_source_id)
            )
            await self.session.execute(
                delete(DataSource).where(DataSource.id == data_source_id)
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        self.coordinator.cancel(data_source_id)
        logger.info(f"删除数据源 {data_source_id}")

    # ===== 替换规则 =====

    async def list_rules(self) -> list[URLReplaceRule]:
        result = await self.session.execute(
            select(URLReplaceRule).order_by(col(URLReplaceRule.id))
        )
        return list(result.scalars().all())

    async def get_rule(self, rule_id: int) -> URLReplaceRule:
        rule = await self.session.get(URLReplaceRule, rule_id)
        if rule is None:
            msg = f"替换规则 {rule_id} 不存在"
            raise NotFoundError(msg)
        return rule

    async def create_rule(
        self,
        name: str,
        from_url: str,
        to_url: str,
        endpoint_id: int | None = None,
        is_active: bool = True,
    ) -> URLReplaceRule:
        """创建替换规则，endpoint_id 为空表示全局规则."""
        if endpoint_id is not None:
            await self.get_endpoint(endpoint_id)
        rule = URLReplaceRule(
            name=_require_text(name, "规则名称"),
            from_url=_require_text(from_url, "被替换内容"),
            to_url=to_url.strip(),
            endpoint_id=endpoint_id,
            is_active=is_active,
        )
        self.session.add(rule)
        await self.session.commit()
        await self.session.refresh(rule)
        return rule

    async def update_rule(
        self,
        rule_id: int,
        name: str,
        from_url: str,
        to_url: str,
        endpoint_id: int | None = None,
        is_active: bool = True,
    ) -> URLReplaceRule:
        """整体替换规则内容."""
        rule = await self.get_rule(rule_id)
        if endpoint_id is not None:
            await self.get_endpoint(endpoint_id)

        rule.name = _require_text(name, "规则名称")
        rule.from_url = _require_text(from_url, "被替换内容")
        rule.to_url = to_url.strip()
        rule.endpoint_id = endpoint_id
        rule.is_active = is_active
        rule.updated_at = utcnow()

        await self.session.commit()
        await self.session.refresh(rule)
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        rule = await self.get_rule(rule_id)
        await self.session.delete(rule)
        await self.session.commit()
