"""CachedURL 候选池缓存模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class CachedURL(SQLModel, table=True):
    """数据源最近一次成功同步得到的候选 URL."""

    __tablename__ = "cached_urls"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    data_source_id: int = Field(index=True, description="关联数据源")
    url: str = Field(description="候选 URL")
    position: int = Field(default=0, description="在候选池中的顺序")
    created_at: datetime = Field(default_factory=utcnow)
