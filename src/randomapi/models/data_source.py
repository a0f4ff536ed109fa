"""DataSource 数据源模型."""

import logging
from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.core.source_config import SourceConfig, SourceType, parse_config
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class DataSource(SQLModel, table=True):
    """端点下的一个候选 URL 来源."""

    __tablename__ = "data_sources"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    endpoint_id: int = Field(foreign_key="endpoints.id", index=True)
    name: str = Field(description="数据源名称")
    type: str = Field(
        description="类型: manual|lankong|api_get|api_post|endpoint|s3"
    )
    config: str = Field(description="按 type 序列化的 JSON 配置")
    cache_duration: int = Field(
        default=3600, ge=0, description="缓存时长（秒），0 表示每次实时获取"
    )
    is_active: bool = Field(default=True)
    last_sync: datetime | None = Field(default=None, description="最近一次成功同步")
    pool_invalidated: bool = Field(
        default=False, description="类型或配置变更后候选池已清空，等待重新同步"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def source_type(self) -> SourceType:
        """类型枚举."""
        return SourceType(self.type)

    def parsed_config(self) -> SourceConfig:
        """按 type 解析配置（存储内容不被信任，每次重新校验）."""
        return parse_config(self.type, self.config)

    def needs_refresh(self, now: datetime) -> bool:
        """候选池是否需要刷新."""
        if self.cache_duration == 0 or self.last_sync is None:
            return True
        return (now - self.last_sync).total_seconds() >= self.cache_duration

    def pool_is_fresh(self, now: datetime) -> bool:
        """已缓存的候选池（可能为空）是否可以直接使用."""
        return not self.pool_invalidated and not self.needs_refresh(now)

    def record_sync(
        self, success: bool, candidate_count: int, timestamp: datetime
    ) -> bool:
        """
        记录一次同步结果.

        只有成功时才更新 last_sync；失败时保持不变，下次请求会重新尝试。
        返回是否采用了新的时间戳。
        """
        if not success:
            logger.info(f"数据源 {self.id} 同步失败，保留上次同步时间")
            return False

        self.last_sync = timestamp
        self.pool_invalidated = False
        logger.info(f"数据源 {self.id} 同步成功，共 {candidate_count} 个 URL")
        return True
