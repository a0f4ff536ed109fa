"""请求统计 - 端点调用次数与来源域名.

计数使用 SQLite 的 INSERT ... ON CONFLICT DO UPDATE 原子累加，
并发的跳转请求不会互相覆盖。当日次数在日期变化后的第一次调用时归零。
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any
from urllib.parse import urlsplit

from sqlalchemy import case, delete, func
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from randomapi.models.stats import DailyDomainStat, DomainStat, EndpointStat
from randomapi.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

DIRECT_DOMAIN = "direct"
UNKNOWN_DOMAIN = "unknown"

TOP_DOMAINS_LIMIT = 30
DAILY_RETENTION_DAYS = 30


def extract_domain(referer: str | None) -> str:
    """从 Referer 中提取域名，没有 Referer 视为直接访问."""
    referer = (referer or "").strip()
    if not referer:
        return DIRECT_DOMAIN
    try:
        hostname = urlsplit(referer).hostname
    except ValueError:
        return UNKNOWN_DOMAIN
    return hostname or UNKNOWN_DOMAIN


def effective_today_calls(stat: EndpointStat, today: date) -> int:
    """统计日期不是今天时，当日次数为 0."""
    return stat.today_calls if stat.last_reset_date == today else 0


class StatsService:
    """请求统计读写."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record_call(
        self, endpoint_url: str, referer: str | None = None, now: datetime | None = None
    ) -> None:
        """记录一次成功的跳转."""
        now = now or utcnow()
        today = now.date()
        domain = extract_domain(referer)

        endpoint_stmt = insert(EndpointStat).values(
            endpoint_url=endpoint_url,
            total_calls=1,
            today_calls=1,
            last_reset_date=today,
            updated_at=now,
        )
        endpoint_stmt = endpoint_stmt.on_conflict_do_update(
            index_elements=["endpoint_url"],
            set_={
                "total_calls": col(EndpointStat.total_calls) + 1,
                "today_calls": case(
                    (col(EndpointStat.last_reset_date) == today, col(EndpointStat.today_calls) + 1),
                    else_=1,
                ),
                "last_reset_date": today,
                "updated_at": now,
            },
        )

        domain_stmt = insert(DomainStat).values(domain=domain, count=1, last_seen=now)
        domain_stmt = domain_stmt.on_conflict_do_update(
            index_elements=["domain"],
            set_={"count": col(DomainStat.count) + 1, "last_seen": now},
        )

        daily_stmt = insert(DailyDomainStat).values(domain=domain, day=today, count=1)
        daily_stmt = daily_stmt.on_conflict_do_update(
            index_elements=["domain", "day"],
            set_={"count": col(DailyDomainStat.count) + 1},
        )

        try:
            await self.session.execute(endpoint_stmt)
            await self.session.execute(domain_stmt)
            await self.session.execute(daily_stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def endpoint_stats(self, now: datetime | None = None) -> dict[str, dict[str, Any]]:
        """所有端点的调用次数，按访问路径索引."""
        today = (now or utcnow()).date()
        result = await self.session.execute(
            select(EndpointStat).order_by(col(EndpointStat.endpoint_url))
        )
        return {
            stat.endpoint_url: {
                "total_calls": stat.total_calls,
                "today_calls": effective_today_calls(stat, today),
                "last_reset_date": stat.last_reset_date.isoformat(),
            }
            for stat in result.scalars().all()
        }

    async def top_recent_domains(
        self, now: datetime | None = None, limit: int = TOP_DOMAINS_LIMIT
    ) -> list[dict[str, Any]]:
        """最近 24 小时（昨天和今天）访问最多的来源域名."""
        today = (now or utcnow()).date()
        total = func.sum(col(DailyDomainStat.count)).label("total")
        stmt = (
            select(col(DailyDomainStat.domain), total)
            .where(col(DailyDomainStat.day) >= today - timedelta(days=1))
            .group_by(col(DailyDomainStat.domain))
            .order_by(total.desc(), col(DailyDomainStat.domain))
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [{"domain": domain, "count": count} for domain, count in result.all()]

    async def top_total_domains(self, limit: int = TOP_DOMAINS_LIMIT) -> list[dict[str, Any]]:
        """累计访问最多的来源域名."""
        stmt = (
            select(DomainStat)
            .order_by(col(DomainStat.count).desc(), col(DomainStat.domain))
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [{"domain": stat.domain, "count": stat.count} for stat in result.scalars().all()]

    async def cleanup_daily(
        self, now: datetime | None = None, keep_days: int = DAILY_RETENTION_DAYS
    ) -> int:
        """删除超过保留期的每日域名统计，返回删除的行数."""
        cutoff = (now or utcnow()).date() - timedelta(days=keep_days)
        result = await self.session.execute(
            delete(DailyDomainStat).where(col(DailyDomainStat.day) < cutoff)
        )
        await self.session.commit()
        if result.rowcount:
            logger.info(f"已清理 {result.rowcount} 条过期的每日域名统计")
        return result.rowcount or 0
