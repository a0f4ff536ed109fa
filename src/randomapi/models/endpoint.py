"""Endpoint 端点模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class Endpoint(SQLModel, table=True):
    """可路由的随机资源端点."""

    __tablename__ = "endpoints"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, description="显示名称")
    url: str = Field(unique=True, index=True, description="访问路径，如 pic/all")
    description: str = Field(default="", description="描述")
    is_active: bool = Field(default=True, description="是否启用")
    show_on_homepage: bool = Field(default=True, description="是否在首页展示")
    sort_order: int = Field(default=0, index=True, description="排序，越小越靠前")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
