"""测试端点解析."""

import asyncio

import httpx
import pytest
from sqlmodel import select

from randomapi.core.catalog import CatalogService
from randomapi.core.errors import CyclicReferenceError, EmptyPoolError, NotFoundError
from randomapi.core.pool import replace_pool
from randomapi.core.resolver import EndpointResolver, reference_order
from randomapi.core.source_config import SourceType
from randomapi.core.sync import SyncService
from randomapi.fetcher import APIFetcher, ManualFetcher
from randomapi.models.endpoint import Endpoint
from randomapi.models.sync import SyncRun

MANUAL_URLS = {"https://img.example.com/1.jpg", "https://img.example.com/2.jpg"}


@pytest.fixture
def resolver(session_factory, sync_service, settings) -> EndpointResolver:
    return EndpointResolver(session_factory, sync_service, settings)


async def add_reference(catalog: CatalogService, owner: Endpoint, *targets: Endpoint) -> None:
    await catalog.create_data_source(
        endpoint_id=owner.id,
        name=f"引用-{owner.url}",
        type="endpoint",
        config={"endpoint_ids": [target.id for target in targets]},
    )


class TestResolve:
    """基本解析."""

    async def test_manual_endpoint(self, resolver: EndpointResolver, sample_endpoint):
        url = await resolver.resolve("pic/landscape")
        assert url in MANUAL_URLS

    async def test_path_normalized(self, resolver: EndpointResolver, sample_endpoint):
        assert await resolver.resolve("/pic/landscape/") in MANUAL_URLS

    async def test_unknown_endpoint(self, resolver: EndpointResolver):
        with pytest.raises(NotFoundError):
            await resolver.resolve("nope")

    async def test_inactive_endpoint(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        await catalog.update_endpoint(sample_endpoint.id, is_active=False)
        with pytest.raises(NotFoundError):
            await resolver.resolve("pic/landscape")

    async def test_empty_endpoint(self, resolver: EndpointResolver, catalog: CatalogService):
        await catalog.create_endpoint(name="空", url="empty")
        with pytest.raises(EmptyPoolError):
            await resolver.resolve("empty")

    async def test_inactive_source_ignored(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        source = (await catalog.list_data_sources(sample_endpoint.id))[0]
        await catalog.update_data_source(source.id, is_active=False)
        with pytest.raises(EmptyPoolError):
            await resolver.resolve("pic/landscape")

    async def test_rewrite_applied(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        await catalog.create_rule(
            name="换 CDN", from_url="img.example.com", to_url="cdn.example.com"
        )
        url = await resolver.resolve("pic/landscape")
        assert url.startswith("https://cdn.example.com/")

    async def test_rule_of_other_endpoint_ignored(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        other = await catalog.create_endpoint(name="其他", url="other")
        await catalog.create_rule(
            name="仅其他端点", from_url="img.", to_url="cdn.", endpoint_id=other.id
        )
        assert await resolver.resolve("pic/landscape") in MANUAL_URLS


class TestReferences:
    """端点引用."""

    async def test_union_of_referenced_pools(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        other = await catalog.create_endpoint(name="其他", url="other")
        await catalog.create_data_source(
            endpoint_id=other.id, name="m", type="manual", config={"urls": ["https://o/1"]}
        )
        combined = await catalog.create_endpoint(name="合集", url="all")
        await add_reference(catalog, combined, sample_endpoint, other)

        pool = await resolver.endpoint_pool(combined.id)
        assert set(pool) == MANUAL_URLS | {"https://o/1"}
        assert await resolver.resolve("all") in set(pool)

    async def test_cycle_detected(self, resolver: EndpointResolver, catalog: CatalogService):
        """A -> B -> A."""
        a = await catalog.create_endpoint(name="A", url="a")
        b = await catalog.create_endpoint(name="B", url="b")
        await add_reference(catalog, a, b)
        await add_reference(catalog, b, a)

        with pytest.raises(CyclicReferenceError) as exc_info:
            await resolver.resolve("a")
        assert exc_info.value.chain == [a.id, b.id, a.id]

    async def test_self_reference(self, resolver: EndpointResolver, catalog: CatalogService):
        a = await catalog.create_endpoint(name="A", url="a")
        await add_reference(catalog, a, a)
        with pytest.raises(CyclicReferenceError):
            await resolver.resolve("a")

    async def test_cycle_only_aborts_affected_endpoint(
        self, resolver: EndpointResolver, catalog: CatalogService, sample_endpoint
    ):
        a = await catalog.create_endpoint(name="A", url="a")
        await add_reference(catalog, a, a)
        assert await resolver.resolve("pic/landscape") in MANUAL_URLS

    async def test_inactive_reference_not_traversed(
        self, resolver: EndpointResolver, catalog: CatalogService
    ):
        """引用的端点未启用时不参与遍历."""
        a = await catalog.create_endpoint(name="A", url="a")
        b = await catalog.create_endpoint(name="B", url="b")
        await add_reference(catalog, a, b)
        await add_reference(catalog, b, a)
        await catalog.update_endpoint(b.id, is_active=False)

        snapshot = await resolver.snapshot()
        assert reference_order(snapshot, a.id) == [a.id]

    async def test_reference_order_puts_dependencies_first(
        self, resolver: EndpointResolver, catalog: CatalogService
    ):
        a = await catalog.create_endpoint(name="A", url="a")
        b = await catalog.create_endpoint(name="B", url="b")
        c = await catalog.create_endpoint(name="C", url="c")
        await add_reference(catalog, a, b, c)
        await add_reference(catalog, b, c)

        snapshot = await resolver.snapshot()
        assert reference_order(snapshot, a.id) == [c.id, b.id, a.id]

    async def test_sync_now_on_reference_source(
        self, sync_service, catalog: CatalogService, sample_endpoint
    ):
        """手动同步引用类型的数据源时重新计算并集."""
        combined = await catalog.create_endpoint(name="合集", url="all")
        await add_reference(catalog, combined, sample_endpoint)
        source = (await catalog.list_data_sources(combined.id))[0]

        result = await sync_service.sync_now(source.id)
        assert set(result.urls) == MANUAL_URLS

    async def test_sync_now_reports_cycle(self, sync_service, catalog: CatalogService):
        a = await catalog.create_endpoint(name="A", url="a")
        b = await catalog.create_endpoint(name="B", url="b")
        await add_reference(catalog, a, b)
        await add_reference(catalog, b, a)
        source = (await catalog.list_data_sources(a.id))[0]

        with pytest.raises(CyclicReferenceError):
            await sync_service.sync_now(source.id)


class TestCacheAndFallback:
    """缓存与降级."""

    @pytest.fixture
    async def api_endpoint(self, catalog: CatalogService) -> Endpoint:
        endpoint = await catalog.create_endpoint(name="接口", url="api-pics")
        await catalog.create_data_source(
            endpoint_id=endpoint.id,
            name="接口",
            type="api_get",
            config={"url": "https://api.example.com/random"},
        )
        return endpoint

    async def test_fresh_cache_not_refetched(
        self, resolver: EndpointResolver, api_fetcher, api_endpoint
    ):
        await resolver.resolve("api-pics")
        await resolver.resolve("api-pics")
        assert api_fetcher.calls == 1

    async def test_timeout_uses_last_known_good(
        self,
        resolver: EndpointResolver,
        catalog: CatalogService,
        session,
        api_fetcher,
        api_endpoint,
    ):
        """同步超时时使用上一次的候选池."""
        source = (await catalog.list_data_sources(api_endpoint.id))[0]
        await replace_pool(session, source.id, ["https://cached/1.jpg"])
        await session.commit()

        api_fetcher.gate = asyncio.Event()
        url = await resolver.resolve("api-pics")
        assert url == "https://cached/1.jpg"

        api_fetcher.gate.set()

    async def test_failed_sync_without_pool(
        self, resolver: EndpointResolver, api_fetcher, api_endpoint
    ):
        """没有缓存且同步失败时没有可用 URL."""
        api_fetcher.fail()
        with pytest.raises(EmptyPoolError):
            await resolver.resolve("api-pics")

    async def test_concurrent_resolves_share_sync(
        self, resolver: EndpointResolver, api_fetcher, api_endpoint
    ):
        """并发解析只触发一次同步."""
        api_fetcher.gate = asyncio.Event()
        pending = [asyncio.create_task(resolver.resolve("api-pics")) for _ in range(3)]
        await api_fetcher.started.wait()
        await asyncio.sleep(0.1)
        api_fetcher.gate.set()

        urls = await asyncio.gather(*pending)
        assert api_fetcher.calls == 1
        assert set(urls) <= {"https://api.example.com/a.jpg", "https://api.example.com/b.jpg"}

    async def test_empty_sync_result_is_cached(
        self, resolver: EndpointResolver, api_fetcher, sample_endpoint, catalog: CatalogService
    ):
        """同步成功但没有 URL 时，缓存有效期内不重复请求外部接口."""
        await catalog.create_data_source(
            endpoint_id=sample_endpoint.id,
            name="空接口",
            type="api_get",
            config={"url": "https://api.example.com/empty"},
            cache_duration=3600,
        )
        api_fetcher.urls = []

        for _ in range(3):
            assert await resolver.resolve("pic/landscape") in MANUAL_URLS
        assert api_fetcher.calls == 1

    async def test_config_edit_triggers_resync(
        self, resolver: EndpointResolver, api_fetcher, api_endpoint, catalog: CatalogService
    ):
        """修改配置后即使 last_sync 未过期也会重新同步."""
        await resolver.resolve("api-pics")
        source = (await catalog.list_data_sources(api_endpoint.id))[0]
        await catalog.update_data_source(source.id, config={"url": "https://api.example.com/v2"})

        api_fetcher.urls = ["https://api.example.com/v2.jpg"]
        assert await resolver.resolve("api-pics") == "https://api.example.com/v2.jpg"
        assert api_fetcher.calls == 2


class TestFailingSourceIsolation:
    """单个数据源出错不影响端点."""

    async def test_transport_error_does_not_break_endpoint(
        self, session_factory, settings, coordinator, catalog: CatalogService, sample_endpoint
    ):
        """请求头无法编码时该数据源记为失败，端点仍从其他数据源返回."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"url": "https://api.example.com/x.jpg"})

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = SyncService(
            session_factory,
            settings=settings,
            coordinator=coordinator,
            fetchers={
                SourceType.MANUAL: ManualFetcher(),
                SourceType.API_GET: APIFetcher(client=http),
            },
        )
        await catalog.create_data_source(
            endpoint_id=sample_endpoint.id,
            name="带中文请求头",
            type="api_get",
            config={"url": "https://api.example.com", "headers": {"X-Tag": "图片"}},
        )
        resolver = EndpointResolver(session_factory, service, settings)

        assert await resolver.resolve("pic/landscape") in MANUAL_URLS

        await coordinator.wait_all()
        async with session_factory() as session:
            result = await session.execute(select(SyncRun))
            statuses = sorted(run.status for run in result.scalars().all())
        assert statuses == ["failed", "success"]
        assert requests == []
        await http.aclose()
