"""请求统计模型."""

from datetime import date, datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class EndpointStat(SQLModel, table=True):
    """端点调用次数（按访问路径统计，端点删除后保留）."""

    __tablename__ = "endpoint_stats"  # type: ignore[assignment]

    endpoint_url: str = Field(primary_key=True, description="端点访问路径")
    total_calls: int = Field(default=0, description="累计调用次数")
    today_calls: int = Field(default=0, description="当日调用次数")
    last_reset_date: date = Field(description="today_calls 对应的日期")
    updated_at: datetime = Field(default_factory=utcnow)


class DomainStat(SQLModel, table=True):
    """来源域名累计访问次数."""

    __tablename__ = "domain_stats"  # type: ignore[assignment]

    domain: str = Field(primary_key=True, description="Referer 域名，direct 表示直接访问")
    count: int = Field(default=0)
    last_seen: datetime = Field(default_factory=utcnow)


class DailyDomainStat(SQLModel, table=True):
    """来源域名每日访问次数."""

    __tablename__ = "daily_domain_stats"  # type: ignore[assignment]

    domain: str = Field(primary_key=True)
    day: date = Field(primary_key=True, description="统计日期（UTC）")
    count: int = Field(default=0)
