"""RandomAPI 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import update

from randomapi.api import auth, configs, data_sources, endpoints, public, stats, url_rules
from randomapi.config import get_settings
from randomapi.core.coordinator import get_coordinator
from randomapi.core.sync import close_sync_service, get_sync_service
from randomapi.models.database import async_session_maker, close_db, init_db
from randomapi.models.sync import SyncRun
from randomapi.scheduler import create_scheduler, shutdown_scheduler
from randomapi.utils.timeutil import utcnow

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _reset_stuck_runs() -> None:
    """将上次进程退出时未完成的同步记录标记为失败."""
    session_factory = async_session_maker()
    async with session_factory() as session:
        result = await session.execute(
            update(SyncRun)
            .where(SyncRun.status == "running")
            .values(status="failed", error_message="服务重启，同步中断", completed_at=utcnow())
        )
        await session.commit()

        if result.rowcount:
            logger.info(f"已重置 {result.rowcount} 条中断的同步记录")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    await init_db(app_settings.database_url)

    logger.info("正在检查中断的同步记录...")
    await _reset_stuck_runs()

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings, get_sync_service())

    logger.info("RandomAPI 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await shutdown_scheduler()
    await get_coordinator().wait_all()
    await close_sync_service()
    await close_db()
    logger.info("RandomAPI 已关闭")


app = FastAPI(
    title="RandomAPI",
    description="随机资源跳转服务 - 按端点从多个数据源中随机选取 URL",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应该限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "RandomAPI",
        "version": "0.1.0",
        "description": "随机资源跳转服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


# 注册路由
app.include_router(auth.router)
app.include_router(endpoints.router)
app.include_router(data_sources.router)
app.include_router(url_rules.router)
app.include_router(configs.router)
app.include_router(public.router)
app.include_router(stats.router)
app.include_router(stats.admin_router)
# 随机跳转匹配所有路径，最后注册
app.include_router(public.redirect_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "randomapi.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
