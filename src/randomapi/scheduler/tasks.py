"""定时任务定义."""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import col, select

from randomapi.config import Settings
from randomapi.core.coordinator import SyncCoordinator
from randomapi.core.errors import SyncInFlightError
from randomapi.core.source_config import SourceType
from randomapi.core.stats import StatsService
from randomapi.core.sync import SyncService
from randomapi.models.data_source import DataSource
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


def select_preload_candidates(
    sources: Iterable[DataSource],
    now: datetime,
    coordinator: SyncCoordinator,
) -> list[DataSource]:
    """
    需要预加载的数据源.

    跳过 endpoint 类型（进程内解析）、cache_duration 为 0 的实时数据源、
    缓存未过期的以及正在同步的数据源。
    """
    return [
        source
        for source in sources
        if source.id is not None
        and source.is_active
        and source.type != SourceType.ENDPOINT.value
        and source.cache_duration > 0
        and not source.pool_is_fresh(now)
        and not coordinator.is_running(source.id)
    ]


async def preload_task(sync_service: SyncService) -> None:
    """预加载任务：刷新缓存已过期的数据源."""
    async with sync_service.session_factory() as session:
        result = await session.execute(
            select(DataSource).where(col(DataSource.is_active).is_(True))
        )
        sources = list(result.scalars().all())

    candidates = select_preload_candidates(sources, utcnow(), sync_service.coordinator)
    if not candidates:
        logger.info("没有需要预加载的数据源")
        return

    logger.info(f"开始预加载 {len(candidates)} 个数据源...")

    started: list[DataSource] = []
    tasks = []
    for source in candidates:
        try:
            task = await sync_service.coordinator.start(
                source.id,
                lambda ticket: sync_service.run(ticket, trigger="schedule"),
            )
        except SyncInFlightError:
            # 在筛选之后被其他请求抢先启动
            continue
        started.append(source)
        tasks.append(task)

    results = await asyncio.gather(*tasks, return_exceptions=True)

    succeeded = 0
    for source, result in zip(started, results, strict=True):
        if isinstance(result, BaseException):
            logger.error(f"预加载数据源 {source.id} 出错: {result}")
        elif result.succeeded:
            succeeded += 1
    logger.info(f"预加载完成: 成功={succeeded}, 总数={len(tasks)}")


async def run_preload(sync_service: SyncService) -> None:
    """调度入口，异常只记录不抛出."""
    try:
        await preload_task(sync_service)
    except Exception as e:
        logger.exception(f"预加载任务失败: {e}")


async def run_stats_cleanup(sync_service: SyncService) -> None:
    """清理过期的每日域名统计，异常只记录不抛出."""
    try:
        async with sync_service.session_factory() as session:
            await StatsService(session).cleanup_daily()
    except Exception as e:
        logger.exception(f"清理统计数据失败: {e}")


def create_scheduler(settings: Settings, sync_service: SyncService) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    global _scheduler

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        run_preload,
        "interval",
        minutes=settings.preload_interval_minutes,
        args=[sync_service],
        id="preload_task",
        name="数据源预加载",
        replace_existing=True,
    )

    # 启动时立即执行一次预加载
    _scheduler.add_job(
        run_preload,
        "date",  # 一次性任务
        args=[sync_service],
        id="preload_task_initial",
        name="初始预加载",
    )

    _scheduler.add_job(
        run_stats_cleanup,
        "interval",
        hours=24,
        args=[sync_service],
        id="stats_cleanup",
        name="每日统计清理",
        replace_existing=True,
    )

    _scheduler.start()
    logger.info(
        f"定时任务调度器已启动，预加载间隔: {settings.preload_interval_minutes} 分钟"
    )

    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
