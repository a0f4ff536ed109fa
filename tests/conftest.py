"""测试配置和 fixtures."""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

import randomapi.models  # noqa: F401
from randomapi.api.deps import require_admin
from randomapi.config import Settings
from randomapi.core.catalog import CatalogService
from randomapi.core.coordinator import SyncCoordinator, get_coordinator, reset_coordinator
from randomapi.core.errors import FetchError
from randomapi.core.source_config import SourceConfig, SourceType
from randomapi.core.sync import SyncService, get_sync_service
from randomapi.fetcher.base import SourceFetcher
from randomapi.fetcher.manual import ManualFetcher
from randomapi.main import app
from randomapi.models.database import (
    create_engine,
    create_session_factory,
    get_session,
    get_session_factory,
)
from randomapi.models.endpoint import Endpoint


class FakeFetcher(SourceFetcher[SourceConfig]):
    """可控的获取器: 返回预设结果，可用 gate 挂起，可设置为失败."""

    def __init__(self, urls: list[str] | None = None) -> None:
        self.urls = urls or []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.calls = 0

    async def fetch(self, config: SourceConfig) -> list[str]:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.urls)

    def fail(self, message: str = "连接被拒绝") -> None:
        self.error = FetchError(message)


@pytest.fixture(autouse=True)
def _fresh_coordinator():
    """每个测试使用独立的同步协调器."""
    reset_coordinator()
    yield
    reset_coordinator()


@pytest.fixture
def settings() -> Settings:
    """测试配置."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        resolve_timeout_seconds=0.5,
        admin_auth_enabled=False,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    """创建测试数据库引擎（文件数据库，多个会话共享数据）."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """创建测试会话工厂."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """创建测试会话."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def coordinator() -> SyncCoordinator:
    return get_coordinator()


@pytest.fixture
def catalog(session: AsyncSession, coordinator: SyncCoordinator) -> CatalogService:
    return CatalogService(session, coordinator)


@pytest.fixture
def api_fetcher() -> FakeFetcher:
    """api_get 类型使用的可控获取器."""
    return FakeFetcher(["https://api.example.com/a.jpg", "https://api.example.com/b.jpg"])


@pytest_asyncio.fixture
async def sync_service(
    session_factory, settings: Settings, coordinator: SyncCoordinator, api_fetcher: FakeFetcher
) -> AsyncGenerator[SyncService, None]:
    service = SyncService(
        session_factory,
        settings=settings,
        coordinator=coordinator,
        fetchers={
            SourceType.MANUAL: ManualFetcher(),
            SourceType.API_GET: api_fetcher,
        },
    )
    yield service
    await coordinator.wait_all()
    await service.close()


@pytest_asyncio.fixture
async def sample_endpoint(catalog: CatalogService) -> Endpoint:
    """创建带一个手动数据源的端点."""
    endpoint = await catalog.create_endpoint(name="风景", url="pic/landscape")
    await catalog.create_data_source(
        endpoint_id=endpoint.id,
        name="手动列表",
        type="manual",
        config={"urls": ["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"]},
    )
    return endpoint


@pytest_asyncio.fixture
async def client(
    session_factory, sync_service: SyncService
) -> AsyncGenerator[AsyncClient, None]:
    """创建测试客户端."""

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[require_admin] = lambda: {}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
