"""ConfigItem 通用配置存储模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class ConfigItem(SQLModel, table=True):
    """键值配置项，例如首页内容 homepage_content."""

    __tablename__ = "configs"  # type: ignore[assignment]

    key: str = Field(primary_key=True, description="配置键")
    value: str = Field(default="", description="配置值")
    type: str = Field(default="string", description="值类型: string|json|number|boolean")
    updated_at: datetime = Field(default_factory=utcnow)
