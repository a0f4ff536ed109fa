"""测试预加载任务."""

import asyncio
from datetime import datetime, timedelta

from sqlmodel import select

from randomapi.core.coordinator import SyncCoordinator
from randomapi.core.stats import StatsService
from randomapi.models.data_source import DataSource
from randomapi.models.stats import DailyDomainStat
from randomapi.scheduler.tasks import preload_task, run_stats_cleanup, select_preload_candidates

NOW = datetime(2024, 1, 1, 12, 0, 0)


def source(source_id: int, **overrides) -> DataSource:
    values = {
        "id": source_id,
        "endpoint_id": 1,
        "name": f"source-{source_id}",
        "type": "api_get",
        "config": '{"url": "https://api.example.com"}',
        "cache_duration": 3600,
        "is_active": True,
        "last_sync": None,
    }
    values.update(overrides)
    return DataSource(**values)


class TestSelectPreloadCandidates:
    """预加载筛选."""

    def test_expired_and_never_synced(self):
        sources = [
            source(1),
            source(2, last_sync=NOW - timedelta(hours=2)),
            source(3, last_sync=NOW - timedelta(minutes=5)),
        ]
        selected = select_preload_candidates(sources, NOW, SyncCoordinator())
        assert [s.id for s in selected] == [1, 2]

    def test_skips_realtime_endpoint_and_inactive(self):
        """实时数据源、引用类型和已禁用的数据源不预加载."""
        sources = [
            source(1, cache_duration=0),
            source(2, type="endpoint", config='{"endpoint_ids": [3]}'),
            source(3, is_active=False),
        ]
        assert select_preload_candidates(sources, NOW, SyncCoordinator()) == []

    def test_invalidated_pool_is_reloaded(self):
        """配置修改后即使缓存未过期也要重新同步."""
        sources = [
            source(1, last_sync=NOW - timedelta(minutes=5), pool_invalidated=True),
            source(2, last_sync=NOW - timedelta(minutes=5)),
        ]
        selected = select_preload_candidates(sources, NOW, SyncCoordinator())
        assert [s.id for s in selected] == [1]

    async def test_skips_running(self):
        coordinator = SyncCoordinator()
        gate = asyncio.Event()

        async def blocked(ticket):
            await gate.wait()

        task = await coordinator.start(1, blocked)
        selected = select_preload_candidates([source(1), source(2)], NOW, coordinator)
        gate.set()
        await task

        assert [s.id for s in selected] == [2]


class TestPreloadTask:
    """预加载执行."""

    async def test_refreshes_stale_sources(
        self, sync_service, catalog, session_factory, api_fetcher, sample_endpoint
    ):
        await catalog.create_data_source(
            endpoint_id=sample_endpoint.id,
            name="接口",
            type="api_get",
            config={"url": "https://api.example.com/random"},
        )

        await preload_task(sync_service)

        # 手动数据源和接口数据源都从未同步过
        assert api_fetcher.calls == 1
        runs = []
        for item in await catalog.list_data_sources(sample_endpoint.id):
            runs.extend(await sync_service.list_runs(item.id))
        assert len(runs) == 2
        assert all(run.trigger == "schedule" for run in runs)


class TestStatsCleanup:
    """每日统计清理任务."""

    async def test_removes_old_daily_rows(self, session, sync_service):
        stats = StatsService(session)
        await stats.record_call("pic/a", "https://old.example.com/", now=datetime(2000, 1, 1))
        await stats.record_call("pic/a", "https://new.example.com/")

        await run_stats_cleanup(sync_service)

        session.expire_all()
        result = await session.execute(select(DailyDomainStat))
        assert [row.domain for row in result.scalars().all()] == ["new.example.com"]
