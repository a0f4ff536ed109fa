"""端点解析 - 汇总候选池并随机选出一个 URL."""

import asyncio
import logging
import random
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from randomapi.config import Settings, get_settings
from randomapi.core.errors import (
    CyclicReferenceError,
    EmptyPoolError,
    NotFoundError,
    RandomAPIError,
    ValidationError,
)
from randomapi.core.pool import dedupe, load_pools
from randomapi.core.rewrite import apply_rewrite_rules
from randomapi.core.source_config import EndpointRefConfig, SourceConfig, SourceType
from randomapi.core.sync import SyncResult, SyncService
from randomapi.models.data_source import DataSource
from randomapi.models.endpoint import Endpoint
from randomapi.models.url_rule import URLReplaceRule
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class CatalogSnapshot:
    """一次解析使用的目录快照（在同一个事务中读取）."""

    endpoints: dict[int, Endpoint] = field(default_factory=dict)
    sources: dict[int, list[DataSource]] = field(default_factory=dict)
    rules: list[URLReplaceRule] = field(default_factory=list)
    pools: dict[int, list[str]] = field(default_factory=dict)

    def active_endpoint(self, endpoint_id: int) -> Endpoint | None:
        endpoint = self.endpoints.get(endpoint_id)
        if endpoint is None or not endpoint.is_active:
            return None
        return endpoint

    def active_sources(self, endpoint_id: int) -> list[DataSource]:
        return [source for source in self.sources.get(endpoint_id, []) if source.is_active]

    def references(self, endpoint_id: int) -> list[int]:
        """端点的 endpoint 类型数据源引用的端点 ID（按出现顺序去重）."""
        referenced: list[int] = []
        for source in self.active_sources(endpoint_id):
            if source.type != SourceType.ENDPOINT.value:
                continue
            try:
                config = source.parsed_config()
            except RandomAPIError as e:
                logger.warning(f"数据源 {source.id} 配置无效，已跳过: {e}")
                continue
            if isinstance(config, EndpointRefConfig):
                referenced.extend(config.endpoint_ids)
        return list(dict.fromkeys(referenced))


async def load_snapshot(session: AsyncSession) -> CatalogSnapshot:
    """在一个事务中读取端点、数据源、规则和候选池."""
    snapshot = CatalogSnapshot()

    result = await session.execute(select(Endpoint))
    snapshot.endpoints = {endpoint.id: endpoint for endpoint in result.scalars().all()}

    result = await session.execute(select(DataSource).order_by(col(DataSource.id)))
    for source in result.scalars().all():
        snapshot.sources.setdefault(source.endpoint_id, []).append(source)

    result = await session.execute(select(URLReplaceRule))
    snapshot.rules = list(result.scalars().all())

    source_ids = [
        source.id
        for sources in snapshot.sources.values()
        for source in sources
        if source.id is not None
    ]
    snapshot.pools = await load_pools(session, source_ids)
    return snapshot


def reference_order(snapshot: CatalogSnapshot, root_id: int) -> list[int]:
    """
    返回从 root 出发可达的活跃端点，被引用者在引用者之前（root 在最后）.

    使用显式栈做深度优先遍历，遇到回边抛出 CyclicReferenceError。
    """
    if snapshot.active_endpoint(root_id) is None:
        return []

    order: list[int] = []
    done: set[int] = set()
    # 当前路径上的端点
    path: list[int] = [root_id]
    on_path: set[int] = {root_id}
    stack: list[list[int]] = [snapshot.references(root_id)]

    while stack:
        pending = stack[-1]
        if not pending:
            stack.pop()
            finished = path.pop()
            on_path.discard(finished)
            done.add(finished)
            order.append(finished)
            continue

        next_id = pending.pop(0)
        if next_id in on_path:
            chain = path[path.index(next_id):] + [next_id]
            raise CyclicReferenceError(chain)
        if next_id in done or snapshot.active_endpoint(next_id) is None:
            continue

        path.append(next_id)
        on_path.add(next_id)
        stack.append(snapshot.references(next_id))

    return order


class EndpointResolver:
    """
    将端点解析为一个随机 URL.

    缓存未过期时直接使用候选池；过期或没有候选池时启动（或加入正在运行的）
    同步，最多等待 resolve_timeout_seconds，超时则使用上一次成功的候选池。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sync_service: SyncService,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.sync_service = sync_service
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()

    async def snapshot(self) -> CatalogSnapshot:
        async with self.session_factory() as session:
            return await load_snapshot(session)

    async def resolve(self, endpoint_url: str) -> str:
        """按访问路径解析端点，返回经过替换规则处理的 URL."""
        snapshot = await self.snapshot()
        path = endpoint_url.strip().strip("/")
        endpoint = next(
            (item for item in snapshot.endpoints.values() if item.url == path),
            None,
        )
        if endpoint is None or not endpoint.is_active:
            msg = f"端点 {path!r} 不存在或未启用"
            raise NotFoundError(msg)
        return await self.resolve_endpoint(snapshot, endpoint.id)

    async def resolve_endpoint(self, snapshot: CatalogSnapshot, endpoint_id: int) -> str:
        """在快照上解析端点并随机选择 URL."""
        if snapshot.active_endpoint(endpoint_id) is None:
            msg = f"端点 {endpoint_id} 不存在或未启用"
            raise NotFoundError(msg)

        _, by_source = await self._collect(snapshot, reference_order(snapshot, endpoint_id))
        candidates = [
            by_source[source.id]
            for source in snapshot.active_sources(endpoint_id)
            if by_source.get(source.id)
        ]
        if not candidates:
            msg = f"端点 {endpoint_id} 没有可用的 URL"
            raise EmptyPoolError(msg)

        # 先随机选数据源，再随机选 URL
        url = self.rng.choice(self.rng.choice(candidates))
        return apply_rewrite_rules(url, endpoint_id, snapshot.rules, snapshot.endpoints.keys())

    async def endpoint_pool(self, endpoint_id: int) -> list[str]:
        """端点的有效候选池（未经替换规则处理）."""
        snapshot = await self.snapshot()
        if snapshot.active_endpoint(endpoint_id) is None:
            msg = f"端点 {endpoint_id} 不存在或未启用"
            raise NotFoundError(msg)
        effective, _ = await self._collect(snapshot, reference_order(snapshot, endpoint_id))
        return effective.get(endpoint_id, [])

    async def reference_pool(self, owner_endpoint_id: int, config: SourceConfig) -> list[str]:
        """
        endpoint 类型数据源的候选池: 被引用端点有效候选池的并集.

        被引用端点（间接）引用回所属端点时抛出 CyclicReferenceError。
        """
        if not isinstance(config, EndpointRefConfig):
            msg = "配置不是端点引用类型"
            raise ValidationError(msg)

        snapshot = await self.snapshot()
        order: list[int] = []
        for ref_id in config.endpoint_ids:
            if ref_id == owner_endpoint_id:
                raise CyclicReferenceError([owner_endpoint_id, owner_endpoint_id])
            ref_order = reference_order(snapshot, ref_id)
            if owner_endpoint_id in ref_order:
                raise CyclicReferenceError([owner_endpoint_id, ref_id, owner_endpoint_id])
            order.extend(item for item in ref_order if item not in order)

        effective, _ = await self._collect(snapshot, order)
        return dedupe(url for ref_id in config.endpoint_ids for url in effective.get(ref_id, []))

    async def _collect(
        self, snapshot: CatalogSnapshot, order: list[int]
    ) -> tuple[dict[int, list[str]], dict[int, list[str]]]:
        """
        按引用顺序计算候选池（被引用者先算）.

        返回 (端点 ID -> 有效候选池, 数据源 ID -> 候选池)。
        """
        fetchable = [
            source
            for endpoint_id in order
            for source in snapshot.active_sources(endpoint_id)
            if source.id is not None and source.type != SourceType.ENDPOINT.value
        ]
        pools = await asyncio.gather(
            *(self._source_pool(source, snapshot.pools.get(source.id)) for source in fetchable)
        )
        by_source: dict[int, list[str]] = {
            source.id: pool for source, pool in zip(fetchable, pools, strict=True)
        }

        effective: dict[int, list[str]] = {}
        for endpoint_id in order:
            sources = snapshot.active_sources(endpoint_id)
            for source in sources:
                if source.id is not None and source.type == SourceType.ENDPOINT.value:
                    by_source[source.id] = self._reference_union(source, effective)
            effective[endpoint_id] = dedupe(
                url for source in sources for url in by_source.get(source.id, [])
            )
        return effective, by_source

    def _reference_union(
        self, source: DataSource, effective: dict[int, list[str]]
    ) -> list[str]:
        try:
            config = source.parsed_config()
        except RandomAPIError:
            return []
        if not isinstance(config, EndpointRefConfig):
            return []
        return dedupe(
            url for ref_id in config.endpoint_ids for url in effective.get(ref_id, [])
        )

    async def _source_pool(self, source: DataSource, cached: list[str] | None) -> list[str]:
        """单个数据源的候选池，必要时触发同步."""
        if source.pool_is_fresh(utcnow()):
            return cached or []

        data_source_id = source.id
        if data_source_id is None:
            return cached or []

        task = await self.sync_service.coordinator.start(
            data_source_id,
            lambda ticket: self.sync_service.run(ticket, trigger="resolve"),
            join=True,
        )
        try:
            result: SyncResult = await asyncio.wait_for(
                asyncio.shield(task), timeout=self.settings.resolve_timeout_seconds
            )
        except TimeoutError:
            logger.warning(f"数据源 {data_source_id} 同步超时，使用上次缓存的结果")
            return cached or []
        except RandomAPIError as e:
            logger.warning(f"数据源 {data_source_id} 同步异常: {e}")
            return cached or []

        if result.succeeded:
            return result.urls
        return cached or []
