"""SyncRun 同步记录模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class SyncRun(SQLModel, table=True):
    """一次数据源同步的执行记录."""

    __tablename__ = "sync_runs"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    data_source_id: int = Field(index=True, description="关联数据源")
    trigger: str = Field(default="manual", description="触发方式: manual|resolve|schedule")
    status: str = Field(description="状态: running|success|failed|discarded")
    url_count: int = Field(default=0, description="获取到的 URL 数")
    error_message: str | None = Field(default=None, description="错误信息")
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = Field(default=None)
