"""同步服务 - 从外部来源刷新数据源候选池."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from randomapi.config import Settings, get_settings
from randomapi.core.coordinator import SyncCoordinator, SyncTicket, get_coordinator
from randomapi.core.errors import FetchError, NotFoundError, RandomAPIError
from randomapi.core.pool import dedupe, replace_pool
from randomapi.core.source_config import SourceConfig, SourceType, parse_config
from randomapi.fetcher.base import SourceFetcher
from randomapi.fetcher.factory import create_fetcher
from randomapi.models.data_source import DataSource
from randomapi.models.database import async_session_maker
from randomapi.models.sync import SyncRun
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """一次同步的结果."""

    data_source_id: int
    status: str
    urls: list[str] = field(default_factory=list)
    error: RandomAPIError | None = None
    run_id: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class SyncService:
    """
    数据源同步服务.

    同步分三步：短会话读取数据源，无会话请求外部来源，
    再开一个短会话确认数据源仍存在后写回结果。
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        coordinator: SyncCoordinator | None = None,
        fetchers: dict[SourceType, SourceFetcher] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.coordinator = coordinator or get_coordinator()
        self._fetchers: dict[SourceType, SourceFetcher] = dict(fetchers or {})

    def get_fetcher(self, source_type: SourceType) -> SourceFetcher:
        """获取（必要时创建）对应类型的获取器."""
        fetcher = self._fetchers.get(source_type)
        if fetcher is None:
            fetcher = create_fetcher(source_type, self.settings)
            self._fetchers[source_type] = fetcher
        return fetcher

    async def close(self) -> None:
        """关闭所有获取器."""
        for fetcher in self._fetchers.values():
            await fetcher.close()
        self._fetchers.clear()

    async def sync_now(self, data_source_id: int) -> SyncResult:
        """
        立即同步（管理端手动触发）.

        同一数据源已在同步时抛出 SyncInFlightError；同步失败时抛出对应错误。
        """
        task = await self.coordinator.start(
            data_source_id, lambda ticket: self.run(ticket, trigger="manual")
        )
        result: SyncResult = await task
        if result.error is not None:
            raise result.error
        return result

    async def run(self, ticket: SyncTicket, trigger: str = "resolve") -> SyncResult:
        """执行一次同步（由协调器调度，不直接调用）."""
        data_source_id = ticket.data_source_id

        async with self.session_factory() as session:
            source = await session.get(DataSource, data_source_id)
            if source is None:
                msg = f"数据源 {data_source_id} 不存在"
                raise NotFoundError(msg)

            source_type = source.source_type
            raw_config = source.config
            endpoint_id = source.endpoint_id

            sync_run = SyncRun(data_source_id=data_source_id, trigger=trigger, status="running")
            session.add(sync_run)
            await session.commit()
            run_id = sync_run.id

        logger.info(f"开始同步数据源 {data_source_id} ({source_type.value}, 触发: {trigger})")

        urls: list[str] = []
        error: RandomAPIError | None = None
        try:
            config = parse_config(source_type, raw_config)
            urls = dedupe(await self._fetch(source_type, config, endpoint_id))
        except RandomAPIError as e:
            error = e
            logger.warning(f"数据源 {data_source_id} 同步失败: {e}")
        except Exception as e:
            # 获取器内部的意外错误同样记为同步失败
            logger.exception(f"数据源 {data_source_id} 同步出错: {e}")
            error = FetchError(f"同步出错: {type(e).__name__}: {e}")

        return await self._commit(ticket, source_type, raw_config, run_id, urls, error)

    async def _fetch(
        self, source_type: SourceType, config: SourceConfig, endpoint_id: int
    ) -> list[str]:
        if source_type == SourceType.ENDPOINT:
            # 避免循环导入: resolver 依赖本模块
            from randomapi.core.resolver import EndpointResolver

            resolver = EndpointResolver(self.session_factory, self, self.settings)
            return await resolver.reference_pool(endpoint_id, config)

        return await self.get_fetcher(source_type).fetch(config)

    async def _commit(
        self,
        ticket: SyncTicket,
        source_type: SourceType,
        raw_config: str,
        run_id: int | None,
        urls: list[str],
        error: RandomAPIError | None,
    ) -> SyncResult:
        """确认数据源仍然有效后写回同步结果."""
        data_source_id = ticket.data_source_id
        now = utcnow()

        async with self.session_factory() as session:
            source = await session.get(DataSource, data_source_id)
            sync_run = await session.get(SyncRun, run_id) if run_id is not None else None

            # 数据源已删除或配置已被修改，本次结果作废
            if (
                source is None
                or ticket.cancelled
                or source.type != source_type.value
                or source.config != raw_config
            ):
                logger.info(f"数据源 {data_source_id} 已删除或已修改，丢弃本次同步结果")
                if sync_run is not None:
                    sync_run.status = "discarded"
                    sync_run.completed_at = now
                    await session.commit()
                return SyncResult(data_source_id, "discarded", urls, error, run_id)

            if error is None:
                await replace_pool(session, data_source_id, urls)
                source.record_sync(True, len(urls), now)
                status = "success"
            else:
                source.record_sync(False, 0, now)
                status = "failed"

            if sync_run is not None:
                sync_run.status = status
                sync_run.url_count = len(urls)
                sync_run.error_message = str(error) if error is not None else None
                sync_run.completed_at = now
            await session.commit()

        return SyncResult(data_source_id, status, urls, error, run_id)

    async def list_runs(self, data_source_id: int, limit: int = 20) -> list[SyncRun]:
        """最近的同步记录."""
        async with self.session_factory() as session:
            stmt = (
                select(SyncRun)
                .where(SyncRun.data_source_id == data_source_id)
                .order_by(col(SyncRun.started_at).desc(), col(SyncRun.id).desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())


_sync_service: SyncService | None = None


def get_sync_service() -> SyncService:
    """获取全局同步服务."""
    global _sync_service
    if _sync_service is None:
        _sync_service = SyncService(async_session_maker())
    return _sync_service


async def close_sync_service() -> None:
    """关闭全局同步服务."""
    global _sync_service
    if _sync_service is not None:
        await _sync_service.close()
    _sync_service = None
